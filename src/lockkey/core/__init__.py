# Core Module - Shared Utilities
#
# - SQLite connection helper
# - Structured logging
# - Configuration

from .db import connect
from .log import LogEvent, configure_logging, get_logger

__all__ = [
    "connect",
    "LogEvent",
    "configure_logging",
    "get_logger",
]
