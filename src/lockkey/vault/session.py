# Vault - Session
#
# Turns one (username, password) pair into a live authenticated context.
#
# State is a sum type:
#   Unauthenticated                   no key, no user
#   Authenticated(user, key, ...)     master key held in a KeyMaterial
#
# Every path out of Authenticated (logout, timeout, a new login, close)
# goes through _replace_state(), which wipes the old key buffer before
# dropping it. All public operations run under one re-entrant lock, so a
# host calling from several threads, and the timeout watcher, see one
# operation at a time.

import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
from uuid import uuid4

from ..core.log import LogEvent, configure_logging, get_logger
from .auth import Authenticator
from .encryption import KeyDerivation, KeyMaterial, SecretCipher
from .exceptions import (
    InvalidCredentialsError,
    NotAuthenticatedError,
    NotFoundError,
)
from .store import (
    LabelEntry,
    SecretKind,
    SecretStore,
    validate_label,
    validate_username,
)
from .watcher import DEFAULT_INTERVAL, TimeoutWatcher

logger = get_logger(__name__)


@dataclass(frozen=True)
class Unauthenticated:
    """No login is active."""


@dataclass
class Authenticated:
    """An active login and the master key it derived."""

    user_id: int
    username: str
    key: KeyMaterial
    identity: str
    last_activity: float


SessionState = Union[Unauthenticated, Authenticated]

UNAUTHENTICATED = Unauthenticated()


@dataclass(frozen=True)
class RevealedSecret:
    """A decrypted secret handed back to the host."""

    label: str
    kind: SecretKind
    data: str

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "kind": self.kind.value, "data": self.data}


class Session:
    """
    Authenticated access to one user's secrets.

    Usage::

        with Session.open("data/lockkey.db", timeout=300) as session:
            session.create_account("alice", "S3cr3t!")
            session.login("alice", "S3cr3t!")
            session.store_secret("password", "gmail", "hunter2")
            session.retrieve_secret("gmail").data   # "hunter2"

    Args:
        store: An open SecretStore; the session owns and closes it
        authenticator: Password hasher (default Argon2id parameters)
        kdf: Key derivation for master and cipher keys
        timeout: Idle seconds before a forced logout; 0/None disables
        watch_interval: Seconds between timeout checks
        on_timeout: Called with the username when a login times out
        clock: Monotonic time source
    """

    def __init__(
        self,
        store: SecretStore,
        authenticator: Optional[Authenticator] = None,
        kdf: Optional[KeyDerivation] = None,
        timeout: Optional[float] = None,
        watch_interval: float = DEFAULT_INTERVAL,
        on_timeout: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self._auth = authenticator or Authenticator()
        self._kdf = kdf or KeyDerivation()
        self._cipher = SecretCipher(self._kdf)
        self.timeout = timeout or 0
        self.watch_interval = watch_interval
        self.on_timeout = on_timeout
        self._clock = clock

        self._lock = threading.RLock()
        self._state: SessionState = UNAUTHENTICATED
        self._watcher: Optional[TimeoutWatcher] = None

    @classmethod
    def open(cls, db_path: Union[str, Path], **kwargs) -> "Session":
        """
        Open the store at db_path and wrap it in a session.

        Raises:
            ConnectionFailedError: If the database cannot be opened
        """
        return cls(SecretStore(db_path), **kwargs)

    @classmethod
    def from_config(cls, config, **kwargs) -> "Session":
        """Build a session from a VaultConfig.

        Also points the lockkey loggers at ``config.log_dir`` when one is set.
        """
        if config.log_dir is not None:
            configure_logging(log_dir=config.log_dir)
        kwargs.setdefault("kdf", KeyDerivation(config.kdf))
        return cls.open(
            config.db_path,
            timeout=config.session_timeout if config.timeout_enabled else 0,
            watch_interval=config.watch_interval,
            **kwargs,
        )

    # ── State ────────────────────────────────────────────────────────

    @property
    def lock(self) -> threading.RLock:
        """The lock every operation takes; hold it to group several calls."""
        return self._lock

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return isinstance(self._state, Authenticated)

    @property
    def user_id(self) -> Optional[int]:
        state = self._state
        return state.user_id if isinstance(state, Authenticated) else None

    @property
    def username(self) -> Optional[str]:
        state = self._state
        return state.username if isinstance(state, Authenticated) else None

    @property
    def identity(self) -> Optional[str]:
        """Token unique to the current login; changes on every login."""
        with self._lock:
            state = self._state
            return state.identity if isinstance(state, Authenticated) else None

    @property
    def idle_seconds(self) -> Optional[float]:
        with self._lock:
            state = self._state
            if not isinstance(state, Authenticated):
                return None
            return self._clock() - state.last_activity

    def _require_auth(self) -> Authenticated:
        state = self._state
        if not isinstance(state, Authenticated):
            raise NotAuthenticatedError()
        return state

    def _mark_active(self, state: Authenticated) -> None:
        state.last_activity = self._clock()

    def _replace_state(self, new_state: SessionState) -> Optional[TimeoutWatcher]:
        """Swap state, wiping the old key. Returns the cancelled watcher."""
        old_state, self._state = self._state, new_state
        if isinstance(old_state, Authenticated):
            old_state.key.wipe()

        old_watcher, self._watcher = self._watcher, None
        if old_watcher is not None:
            old_watcher.cancel()
        return old_watcher

    # ── Accounts ─────────────────────────────────────────────────────

    def create_account(self, username: str, password: str) -> int:
        """
        Create a user. Does not log in or change session state.

        Returns:
            The new user_id

        Raises:
            ValidationError: Bad username
            UsernameTakenError: Username already exists
        """
        validate_username(username)
        with self._lock:
            enc_salt = self._kdf.generate_salt()
            passwd_hash = self._auth.hash_password(password)
            user_id = self._store.create_user(username, passwd_hash, enc_salt)

        logger.info(LogEvent.ACCOUNT_CREATED.value, username=username, user_id=user_id)
        return user_id

    def login(self, username: str, password: str) -> None:
        """
        Authenticate and derive the master key.

        On success any previous login is replaced (its key wiped). On
        failure the session is left exactly as it was.

        Raises:
            InvalidCredentialsError: Unknown user or wrong password
        """
        with self._lock:
            passwd_hash = self._store.get_passwd_hash(username)
            if passwd_hash is None:
                self._auth.dummy_verify(password)
                logger.warning(LogEvent.LOGIN_FAILED.value, username=username)
                raise InvalidCredentialsError()

            if not self._auth.verify_password(password, passwd_hash):
                logger.warning(LogEvent.LOGIN_FAILED.value, username=username)
                raise InvalidCredentialsError()

            enc_salt = self._store.get_enc_salt(username)
            user_id = self._store.get_user_id(username)
            if enc_salt is None or user_id is None:
                raise NotFoundError("user record is incomplete")

            key = self._kdf.derive_master_key(password, enc_salt)
            new_state = Authenticated(
                user_id=user_id,
                username=username,
                key=key,
                identity=uuid4().hex,
                last_activity=self._clock(),
            )
            self._replace_state(new_state)

            if self.timeout > 0:
                self._watcher = TimeoutWatcher(
                    self,
                    new_state.identity,
                    interval=self.watch_interval,
                    on_timeout=self.on_timeout,
                )
                self._watcher.start()

        logger.info(LogEvent.LOGIN_SUCCEEDED.value, username=username, user_id=user_id)

    def logout(self) -> None:
        """Wipe the key and return to Unauthenticated. Idempotent."""
        with self._lock:
            username = self.username
            self._replace_state(UNAUTHENTICATED)

        if username is not None:
            logger.info(LogEvent.LOGOUT.value, username=username)

    def delete_account(self, password: str) -> None:
        """
        Delete the logged-in user and all their secrets, then log out.

        The password is checked again so a hijacked session alone cannot
        destroy the account.

        Raises:
            NotAuthenticatedError: No active login
            InvalidCredentialsError: Wrong password
        """
        with self._lock:
            state = self._require_auth()
            passwd_hash = self._store.get_passwd_hash(state.username)
            if passwd_hash is None or not self._auth.verify_password(password, passwd_hash):
                raise InvalidCredentialsError("invalid password")

            self._store.delete_user(state.username)
            self._replace_state(UNAUTHENTICATED)

        logger.info(
            LogEvent.ACCOUNT_DELETED.value, username=state.username, user_id=state.user_id
        )

    # ── Secrets ──────────────────────────────────────────────────────

    def store_secret(self, kind: Union[str, SecretKind], label: str, data: str) -> None:
        """
        Encrypt and store a new secret.

        Raises:
            NotAuthenticatedError: No active login
            ValidationError: Bad kind or label
            DuplicateLabelError: Label already used by this user
        """
        with self._lock:
            state = self._require_auth()
            kind = SecretKind.parse(kind)
            validate_label(label)

            envelope = self._cipher.encrypt(state.key, data)
            self._store.store_secret(state.user_id, kind, label, envelope)
            self._mark_active(state)

        logger.info(
            LogEvent.SECRET_STORED.value, user_id=state.user_id, label=label, kind=kind.value
        )

    def edit_secret(self, old_label: str, new_label: str, new_data: str) -> None:
        """
        Rename a secret and replace its contents.

        Raises:
            NotAuthenticatedError: No active login
            NotFoundError: old_label does not exist
            DuplicateLabelError: new_label is already used
        """
        with self._lock:
            state = self._require_auth()
            validate_label(new_label)

            envelope = self._cipher.encrypt(state.key, new_data)
            self._store.edit_secret(state.user_id, old_label, new_label, envelope)
            self._mark_active(state)

        logger.info(
            LogEvent.SECRET_EDITED.value,
            user_id=state.user_id,
            old_label=old_label,
            new_label=new_label,
        )

    def retrieve_secret(self, label: str) -> Optional[RevealedSecret]:
        """
        Decrypt one secret.

        Returns:
            The secret, or None if the user has no such label

        Raises:
            NotAuthenticatedError: No active login
            DecryptionFailedError: Stored envelope failed authentication
        """
        with self._lock:
            state = self._require_auth()
            row = self._store.get_secret(state.user_id, label)
            if row is None:
                self._mark_active(state)
                return None

            kind, envelope = row
            data = self._cipher.decrypt_text(state.key, envelope)
            self._mark_active(state)

        logger.info(LogEvent.SECRET_ACCESSED.value, user_id=state.user_id, label=label)
        return RevealedSecret(label=label, kind=kind, data=data)

    def list_labels(self) -> List[LabelEntry]:
        """List the logged-in user's (kind, label) pairs."""
        with self._lock:
            state = self._require_auth()
            labels = self._store.get_labels(state.user_id)
            self._mark_active(state)
        return labels

    def delete_secret(self, label: str) -> bool:
        """
        Delete one secret.

        Returns:
            True if a secret was removed
        """
        with self._lock:
            state = self._require_auth()
            removed = self._store.delete_secret(state.user_id, label)
            self._mark_active(state)

        if removed:
            logger.info(LogEvent.SECRET_DELETED.value, user_id=state.user_id, label=label)
        return removed

    # ── Activity & timeout ───────────────────────────────────────────

    def touch(self) -> bool:
        """
        Refresh the activity timestamp (host calls this on user input).

        Returns:
            False if there is no active login to refresh
        """
        with self._lock:
            state = self._state
            if not isinstance(state, Authenticated):
                return False
            self._mark_active(state)
            return True

    def expire_if_idle(self, identity: str) -> Optional[str]:
        """
        Log out the login identified by `identity` if it has been idle for
        at least `timeout` seconds.

        Returns:
            The expired username, or None if nothing was done
        """
        with self._lock:
            state = self._state
            if not isinstance(state, Authenticated) or state.identity != identity:
                return None
            if self.timeout <= 0 or self._clock() - state.last_activity < self.timeout:
                return None

            self._replace_state(UNAUTHENTICATED)

        logger.info(LogEvent.SESSION_EXPIRED.value, username=state.username)
        return state.username

    # ── Teardown ─────────────────────────────────────────────────────

    def close(self) -> None:
        """Wipe any key, stop the watcher and close the store. Idempotent."""
        with self._lock:
            was_open = self._store.is_open
            watcher = self._replace_state(UNAUTHENTICATED)
            self._store.close()

        if watcher is not None:
            watcher.stop()
        if was_open:
            logger.info(LogEvent.SESSION_CLOSED.value)

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self):
        # Last-resort cleanup for sessions dropped without close()
        if getattr(self, "_lock", None) is not None and self._store.is_open:
            self.close()
