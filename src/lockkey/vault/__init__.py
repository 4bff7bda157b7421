# Vault Module - Encrypted Secret Vault
#
# Master password verified with Argon2id (PHC hash string)
# Master key re-derived per login from the password + stored salt
# Per-secret AES-256-GCM envelopes under Argon2id-derived cipher keys

from .auth import Authenticator
from .encryption import KdfParams, KeyDerivation, KeyMaterial, SecretCipher
from .exceptions import (
    AuthError,
    ConnectionFailedError,
    ConstraintViolationError,
    CryptoError,
    DecryptionFailedError,
    DuplicateLabelError,
    EncryptionError,
    HashingError,
    InvalidCredentialsError,
    InvalidEnvelopeError,
    InvalidUtf8Error,
    KeyDerivationError,
    LockkeyError,
    MalformedHashError,
    NotAuthenticatedError,
    NotFoundError,
    SessionError,
    StorageError,
    UsernameTakenError,
    ValidationError,
)
from .session import Authenticated, RevealedSecret, Session, Unauthenticated
from .store import LabelEntry, SecretKind, SecretStore
from .watcher import TimeoutWatcher

__all__ = [
    "Authenticator",
    "KdfParams",
    "KeyDerivation",
    "KeyMaterial",
    "SecretCipher",
    "SecretStore",
    "SecretKind",
    "LabelEntry",
    "Session",
    "Authenticated",
    "Unauthenticated",
    "RevealedSecret",
    "TimeoutWatcher",
    # Errors
    "LockkeyError",
    "AuthError",
    "InvalidCredentialsError",
    "UsernameTakenError",
    "MalformedHashError",
    "HashingError",
    "CryptoError",
    "KeyDerivationError",
    "EncryptionError",
    "DecryptionFailedError",
    "InvalidEnvelopeError",
    "InvalidUtf8Error",
    "StorageError",
    "ConnectionFailedError",
    "ConstraintViolationError",
    "DuplicateLabelError",
    "ValidationError",
    "NotFoundError",
    "SessionError",
    "NotAuthenticatedError",
]
