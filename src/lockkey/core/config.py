# Core Module - Configuration
#
# Settings come from constructor arguments, falling back to LOCKKEY_*
# environment variables (optionally loaded from a .env file).
#
#   LOCKKEY_DB_PATH          database file         (default: data/lockkey.db)
#   LOCKKEY_SESSION_TIMEOUT  idle seconds, 0 = off (default: 300)
#   LOCKKEY_WATCH_INTERVAL   watcher poll seconds  (default: 5)
#   LOCKKEY_LOG_DIR          daily log directory   (default: unset)
#   LOCKKEY_KDF_TIME_COST / LOCKKEY_KDF_MEMORY_COST / LOCKKEY_KDF_PARALLELISM

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from ..vault.encryption import KdfParams

DEFAULT_DB_PATH = Path("data") / "lockkey.db"
DEFAULT_SESSION_TIMEOUT = 300.0
DEFAULT_WATCH_INTERVAL = 5.0


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {raw!r}")
    return value


@dataclass
class VaultConfig:
    """Runtime settings for a vault session."""

    db_path: Path = DEFAULT_DB_PATH
    session_timeout: float = DEFAULT_SESSION_TIMEOUT
    watch_interval: float = DEFAULT_WATCH_INTERVAL
    log_dir: Optional[Path] = None
    kdf: KdfParams = field(default_factory=KdfParams)

    def __post_init__(self):
        self.db_path = Path(self.db_path)
        if self.log_dir is not None:
            self.log_dir = Path(self.log_dir)
        if self.session_timeout < 0:
            raise ValueError("session_timeout must not be negative")
        if self.watch_interval <= 0:
            raise ValueError("watch_interval must be positive")

    @property
    def timeout_enabled(self) -> bool:
        return self.session_timeout > 0

    @classmethod
    def from_env(cls, dotenv_path: Optional[Path] = None) -> "VaultConfig":
        """Build a config from LOCKKEY_* variables (after loading .env)."""
        load_dotenv(dotenv_path=dotenv_path, override=False)

        defaults = KdfParams()
        log_dir = os.environ.get("LOCKKEY_LOG_DIR", "").strip()

        return cls(
            db_path=Path(os.environ.get("LOCKKEY_DB_PATH", "").strip() or DEFAULT_DB_PATH),
            session_timeout=_env_float("LOCKKEY_SESSION_TIMEOUT", DEFAULT_SESSION_TIMEOUT),
            watch_interval=_env_float("LOCKKEY_WATCH_INTERVAL", DEFAULT_WATCH_INTERVAL),
            log_dir=Path(log_dir) if log_dir else None,
            kdf=KdfParams(
                time_cost=_env_int("LOCKKEY_KDF_TIME_COST", defaults.time_cost),
                memory_cost=_env_int("LOCKKEY_KDF_MEMORY_COST", defaults.memory_cost),
                parallelism=_env_int("LOCKKEY_KDF_PARALLELISM", defaults.parallelism),
            ),
        )
