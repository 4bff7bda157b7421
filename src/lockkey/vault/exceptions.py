"""
Vault Exception Classes
"""


class LockkeyError(Exception):
    """Base exception for all vault operations"""
    pass


# ── Authentication ──────────────────────────────────────────────────


class AuthError(LockkeyError):
    """Base exception for password hashing and verification"""
    pass


class InvalidCredentialsError(AuthError):
    """Raised when a username/password pair does not authenticate.

    The same error is raised for an unknown username and for a wrong
    password so callers cannot enumerate accounts.
    """

    def __init__(self, message: str = "invalid username or password"):
        super().__init__(message)


class MalformedHashError(AuthError):
    """Raised when a stored password hash is not a recognized PHC string"""
    pass


class HashingError(AuthError):
    """Raised when the password hashing backend fails"""
    pass


# ── Cryptography ────────────────────────────────────────────────────


class CryptoError(LockkeyError):
    """Base exception for key derivation and secret encryption"""
    pass


class KeyDerivationError(CryptoError):
    """Raised when a key cannot be derived (bad salt/key length, backend failure)"""
    pass


class EncryptionError(CryptoError):
    """Raised when a plaintext cannot be sealed into an envelope"""
    pass


class DecryptionFailedError(CryptoError):
    """Raised when an envelope fails authentication (tampered or wrong key)"""

    def __init__(self, message: str = "decryption failed"):
        super().__init__(message)


class InvalidEnvelopeError(CryptoError):
    """Raised when an envelope is too short to hold salt, nonce and tag"""
    pass


class InvalidUtf8Error(CryptoError):
    """Raised when authenticated plaintext is not valid UTF-8"""
    pass


# ── Storage ─────────────────────────────────────────────────────────


class StorageError(LockkeyError):
    """Base exception for the secret store"""
    pass


class ConnectionFailedError(StorageError):
    """Raised when the database cannot be opened or initialized"""
    pass


class ConstraintViolationError(StorageError):
    """Raised when a write breaks a storage constraint"""
    pass


class DuplicateLabelError(ConstraintViolationError):
    """Raised when a user already owns a secret with the given label"""
    pass


class ValidationError(ConstraintViolationError):
    """Raised when input is rejected before anything is written"""
    pass


class NotFoundError(StorageError):
    """Raised when an operation targets a row that does not exist"""
    pass


class UsernameTakenError(AuthError, ConstraintViolationError):
    """Raised when an account is created with a username already in use"""
    pass


# ── Session ─────────────────────────────────────────────────────────


class SessionError(LockkeyError):
    """Base exception for session state"""
    pass


class NotAuthenticatedError(SessionError):
    """Raised when a secret operation is attempted without a login"""

    def __init__(self, message: str = "session is not authenticated"):
        super().__init__(message)
