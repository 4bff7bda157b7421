# Core Module - Structured Logging
#
# Operational logging for the vault core. Events are emitted as JSON
# through structlog on top of the stdlib logging tree, so the host can
# attach its own handlers. Events carry usernames, user ids and labels;
# passwords, keys, plaintext and ciphertext are never logged.

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

import structlog


class LogEvent(str, Enum):
    """Names of the structured events emitted by the vault core."""

    ACCOUNT_CREATED = "account.created"
    ACCOUNT_DELETED = "account.deleted"

    LOGIN_SUCCEEDED = "session.login"
    LOGIN_FAILED = "session.login.failed"
    LOGOUT = "session.logout"
    SESSION_EXPIRED = "session.expired"
    SESSION_CLOSED = "session.closed"

    SECRET_STORED = "secret.stored"
    SECRET_ACCESSED = "secret.accessed"
    SECRET_EDITED = "secret.edited"
    SECRET_DELETED = "secret.deleted"

    STORE_OPENED = "store.opened"
    STORE_CLOSED = "store.closed"

    WATCHER_STARTED = "watcher.started"
    WATCHER_STOPPED = "watcher.stopped"


_file_handler: Optional[logging.Handler] = None

# Silent until the host attaches a handler or calls configure_logging()
logging.getLogger("lockkey").addHandler(logging.NullHandler())


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(log_dir: Optional[Path] = None, level: int = logging.INFO) -> None:
    """
    Configure structlog JSON output.

    Args:
        log_dir: If given, also append events to a daily file
                 ``lockkey_YYYY-MM-DD.log`` in this directory.
        level: Minimum stdlib log level for the lockkey loggers.
    """
    global _file_handler

    _configure_structlog()

    package_logger = logging.getLogger("lockkey")
    package_logger.setLevel(level)

    if _file_handler is not None:
        package_logger.removeHandler(_file_handler)
        _file_handler.close()
        _file_handler = None

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        today = datetime.now().strftime("%Y-%m-%d")
        handler = logging.FileHandler(
            log_dir / f"lockkey_{today}.log", mode="a", encoding="utf-8"
        )
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter("%(message)s"))  # structlog renders
        package_logger.addHandler(handler)
        _file_handler = handler


def get_logger(name: str):
    """
    Return a structlog logger bound to a stdlib logger name.

    If structlog has not been configured yet, events are routed through
    stdlib logging rather than structlog's default stdout printer.
    """
    if not structlog.is_configured():
        _configure_structlog()
    return structlog.get_logger(name)
