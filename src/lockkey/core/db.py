# Core Module - Vault Database Connection
#
# Opens the SQLite file that backs the secret store. The store deletes a
# user's secrets through ON DELETE CASCADE, so a connection on which
# foreign keys could not be switched on is refused outright rather than
# handed back.
#
# Connections are opened with check_same_thread=False: a Session is used
# from the host's threads and from its timeout watcher, and the Session
# lock serializes every statement.

import sqlite3
from pathlib import Path
from typing import Union

BUSY_TIMEOUT_MS = 5000


def connect(
    db_path: Union[str, Path],
    *,
    busy_timeout_ms: int = BUSY_TIMEOUT_MS,
) -> sqlite3.Connection:
    """Open the vault database.

    WAL journaling is requested for file databases (":memory:" keeps its
    own journal mode).

    Raises:
        sqlite3.Error: The file could not be opened, or foreign key
            enforcement is unavailable.
    """
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    try:
        if str(db_path) != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        conn.execute("PRAGMA foreign_keys=ON")
        if conn.execute("PRAGMA foreign_keys").fetchone()[0] != 1:
            raise sqlite3.DatabaseError("foreign key enforcement unavailable")
    except sqlite3.Error:
        conn.close()
        raise
    return conn
