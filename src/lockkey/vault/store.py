# Vault - Secret Store
#
# SQLite persistence for users and encrypted secrets.
# The store only ever sees opaque envelope bytes; encryption happens in
# SecretCipher before anything reaches this layer.
#
# Uniqueness (usernames, per-user labels) is enforced by UNIQUE
# constraints and mapped from sqlite3.IntegrityError, never by a
# check-then-insert. user_id is AUTOINCREMENT so an id is never handed to
# a second account, and secrets are removed with their owner through
# ON DELETE CASCADE.

import sqlite3
from enum import Enum
from pathlib import Path
from typing import List, NamedTuple, Optional, Tuple, Union

from ..core.db import connect as db_connect
from ..core.log import LogEvent, get_logger
from .encryption import ENVELOPE_HEADER_LENGTH
from .exceptions import (
    ConnectionFailedError,
    ConstraintViolationError,
    DuplicateLabelError,
    NotFoundError,
    StorageError,
    UsernameTakenError,
    ValidationError,
)

logger = get_logger(__name__)

USERNAME_MAX_LENGTH = 24
LABEL_MIN_LENGTH = 3
LABEL_MAX_LENGTH = 32
ENC_SALT_LENGTH = 16

_SCHEMA = (
    f"""
    CREATE TABLE IF NOT EXISTS users (
        user_id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT NOT NULL UNIQUE
            CHECK (length(username) BETWEEN 1 AND {USERNAME_MAX_LENGTH}),
        passwd_hash TEXT NOT NULL,
        enc_salt BLOB NOT NULL CHECK (length(enc_salt) = {ENC_SALT_LENGTH})
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS secrets (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL
            REFERENCES users (user_id) ON DELETE CASCADE,
        kind TEXT NOT NULL CHECK (kind IN ('text', 'password')),
        label TEXT NOT NULL
            CHECK (length(label) BETWEEN {LABEL_MIN_LENGTH} AND {LABEL_MAX_LENGTH}),
        data BLOB NOT NULL CHECK (length(data) > {ENVELOPE_HEADER_LENGTH}),
        UNIQUE (user_id, label)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_secrets_user_id ON secrets (user_id)",
)


class SecretKind(str, Enum):
    """What a stored secret holds."""

    PASSWORD = "password"
    TEXT = "text"

    @classmethod
    def parse(cls, value: Union[str, "SecretKind"]) -> "SecretKind":
        """Accept an enum member or its name/value in any case."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                f"unknown secret kind {value!r} (expected 'password' or 'text')"
            ) from None


class LabelEntry(NamedTuple):
    """One row of a user's label listing."""

    kind: SecretKind
    label: str


def validate_username(username: str) -> None:
    if not isinstance(username, str) or not username:
        raise ValidationError("username must be a non-empty string")
    if len(username) > USERNAME_MAX_LENGTH:
        raise ValidationError(
            f"username must be at most {USERNAME_MAX_LENGTH} characters"
        )
    if "\x00" in username:
        raise ValidationError("username must not contain NUL characters")


def validate_label(label: str) -> None:
    if not isinstance(label, str) or not (
        LABEL_MIN_LENGTH <= len(label) <= LABEL_MAX_LENGTH
    ):
        raise ValidationError(
            f"label must be {LABEL_MIN_LENGTH}-{LABEL_MAX_LENGTH} characters"
        )
    if "\x00" in label:
        raise ValidationError("label must not contain NUL characters")


def validate_ciphertext(data: bytes) -> None:
    if not isinstance(data, (bytes, bytearray)) or len(data) <= ENVELOPE_HEADER_LENGTH:
        raise ValidationError(
            f"ciphertext must be bytes longer than {ENVELOPE_HEADER_LENGTH}"
        )


class SecretStore:
    """
    Durable store of users and their encrypted secrets.

    Owns exactly one sqlite3 connection for its whole life. The connection
    is opened with check_same_thread=False; callers serialize access (the
    Session holds a lock around every operation).

    Usage::

        with SecretStore("data/lockkey.db") as store:
            store.create_user("alice", passwd_hash, enc_salt)
            user_id = store.get_user_id("alice")
    """

    def __init__(self, db_path: Union[str, Path]):
        """
        Open (and if needed create) the database.

        Args:
            db_path: Path to the SQLite file, or ":memory:"

        Raises:
            ConnectionFailedError: If the file cannot be opened or the
                schema cannot be created
        """
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        try:
            if str(db_path) != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = db_connect(db_path)
            self._create_schema()
        except (sqlite3.Error, OSError) as e:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
            raise ConnectionFailedError(f"cannot open secret store: {e}") from e

        logger.info(LogEvent.STORE_OPENED.value, db_path=str(db_path))

    def _create_schema(self) -> None:
        """Create both tables and the index in one transaction."""
        conn = self._conn
        conn.execute("BEGIN")
        try:
            for statement in _SCHEMA:
                conn.execute(statement)
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise

    # ── Lifecycle ────────────────────────────────────────────────────

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def close(self) -> None:
        """Close the connection. Safe to call any number of times."""
        conn, self._conn = self._conn, None
        if conn is None:
            return
        conn.close()
        logger.info(LogEvent.STORE_CLOSED.value, db_path=str(self.db_path))

    def __enter__(self) -> "SecretStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise ConnectionFailedError("secret store is closed")
        return self._conn

    def _write(self, sql: str, params: tuple) -> sqlite3.Cursor:
        """Run one write statement and commit, translating sqlite errors."""
        conn = self._connection()
        try:
            cursor = conn.execute(sql, params)
            conn.commit()
            return cursor
        except sqlite3.IntegrityError as e:
            conn.rollback()
            raise _translate_integrity_error(e) from e
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"database write failed: {e}") from e

    def _fetchone(self, sql: str, params: tuple) -> Optional[tuple]:
        try:
            return self._connection().execute(sql, params).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"database read failed: {e}") from e

    # ── Users ────────────────────────────────────────────────────────

    def create_user(self, username: str, passwd_hash: str, enc_salt: bytes) -> int:
        """
        Insert a user row.

        Returns:
            The new user_id

        Raises:
            ValidationError: Bad username or salt length
            UsernameTakenError: Username already exists
        """
        validate_username(username)
        if not isinstance(enc_salt, (bytes, bytearray)) or len(enc_salt) != ENC_SALT_LENGTH:
            raise ValidationError(f"enc_salt must be {ENC_SALT_LENGTH} bytes")
        if not passwd_hash:
            raise ValidationError("passwd_hash must not be empty")

        cursor = self._write(
            "INSERT INTO users (username, passwd_hash, enc_salt) VALUES (?, ?, ?)",
            (username, passwd_hash, bytes(enc_salt)),
        )
        return cursor.lastrowid

    def user_exists(self, username: str) -> bool:
        return self.get_user_id(username) is not None

    def get_user_id(self, username: str) -> Optional[int]:
        row = self._fetchone("SELECT user_id FROM users WHERE username = ?", (username,))
        return row[0] if row else None

    def get_username(self, user_id: int) -> Optional[str]:
        row = self._fetchone("SELECT username FROM users WHERE user_id = ?", (user_id,))
        return row[0] if row else None

    def get_passwd_hash(self, username: str) -> Optional[str]:
        row = self._fetchone(
            "SELECT passwd_hash FROM users WHERE username = ?", (username,)
        )
        return row[0] if row else None

    def get_enc_salt(self, username: str) -> Optional[bytes]:
        row = self._fetchone("SELECT enc_salt FROM users WHERE username = ?", (username,))
        return bytes(row[0]) if row else None

    def delete_user(self, username: str) -> bool:
        """Delete a user and (by cascade) all of their secrets."""
        cursor = self._write("DELETE FROM users WHERE username = ?", (username,))
        return cursor.rowcount > 0

    # ── Secrets ──────────────────────────────────────────────────────

    def store_secret(
        self,
        user_id: int,
        kind: Union[str, SecretKind],
        label: str,
        ciphertext: bytes,
    ) -> int:
        """
        Insert an encrypted secret.

        Returns:
            The new secret id

        Raises:
            ValidationError: Bad kind, label or ciphertext (nothing written)
            DuplicateLabelError: The user already has this label
        """
        kind = SecretKind.parse(kind)
        validate_label(label)
        validate_ciphertext(ciphertext)

        cursor = self._write(
            "INSERT INTO secrets (user_id, kind, label, data) VALUES (?, ?, ?, ?)",
            (user_id, kind.value, label, bytes(ciphertext)),
        )
        return cursor.lastrowid

    def edit_secret(
        self, user_id: int, old_label: str, new_label: str, new_ciphertext: bytes
    ) -> None:
        """
        Rename and replace a secret in one statement.

        Raises:
            ValidationError: Bad new label or ciphertext
            NotFoundError: (user_id, old_label) does not exist
            DuplicateLabelError: new_label is taken by another secret
        """
        validate_label(new_label)
        validate_ciphertext(new_ciphertext)

        cursor = self._write(
            "UPDATE secrets SET label = ?, data = ? WHERE user_id = ? AND label = ?",
            (new_label, bytes(new_ciphertext), user_id, old_label),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"no secret labelled {old_label!r}")

    def get_labels(self, user_id: int) -> List[LabelEntry]:
        """List (kind, label) pairs owned by user_id, ordered by label."""
        try:
            rows = self._connection().execute(
                "SELECT kind, label FROM secrets WHERE user_id = ? ORDER BY label",
                (user_id,),
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"database read failed: {e}") from e
        return [LabelEntry(SecretKind(kind), label) for kind, label in rows]

    def get_secret(self, user_id: int, label: str) -> Optional[Tuple[SecretKind, bytes]]:
        """Return (kind, ciphertext) or None if the user has no such label."""
        row = self._fetchone(
            "SELECT kind, data FROM secrets WHERE user_id = ? AND label = ?",
            (user_id, label),
        )
        if row is None:
            return None
        return SecretKind(row[0]), bytes(row[1])

    def delete_secret(self, user_id: int, label: str) -> bool:
        cursor = self._write(
            "DELETE FROM secrets WHERE user_id = ? AND label = ?", (user_id, label)
        )
        return cursor.rowcount > 0

    def count_secrets(self, user_id: int) -> int:
        row = self._fetchone("SELECT COUNT(*) FROM secrets WHERE user_id = ?", (user_id,))
        return row[0]


def _translate_integrity_error(error: sqlite3.IntegrityError) -> StorageError:
    message = str(error)
    if "users.username" in message:
        return UsernameTakenError("username is already taken")
    if "secrets.user_id, secrets.label" in message:
        return DuplicateLabelError("label already exists for this user")
    if "FOREIGN KEY" in message:
        return NotFoundError("owning user does not exist")
    return ConstraintViolationError(message)
