# Vault - Master Password Authentication
#
# Argon2id password hashing, encoded as a PHC string:
#   $argon2id$v=19$m=...,t=...,p=...$<salt>$<hash>
# The string carries its own parameters, so hashes made under older cost
# settings keep verifying after the defaults change.

from argon2 import PasswordHasher
from argon2.exceptions import (
    HashingError as Argon2HashingError,
    InvalidHashError,
    VerificationError,
    VerifyMismatchError,
)
from argon2.profiles import RFC_9106_LOW_MEMORY

from .exceptions import HashingError, MalformedHashError


class Authenticator:
    """
    Hashes and verifies master passwords.

    Independent of encryption: the hash proves the password is right, the
    separately derived master key is what decrypts secrets.
    """

    def __init__(
        self,
        time_cost: int = RFC_9106_LOW_MEMORY.time_cost,
        memory_cost: int = RFC_9106_LOW_MEMORY.memory_cost,
        parallelism: int = RFC_9106_LOW_MEMORY.parallelism,
    ):
        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
        )
        # Precomputed so every unknown-username login costs exactly one verify
        self._dummy_hash = self.hash_password("lockkey-dummy-password")

    def hash_password(self, password: str) -> str:
        """
        Hash a password with a fresh random salt.

        Returns:
            Self-describing PHC hash string

        Raises:
            HashingError: If the argon2 backend fails
        """
        try:
            return self._hasher.hash(password)
        except Argon2HashingError as e:
            raise HashingError(f"password hashing failed: {e}") from e

    def verify_password(self, password: str, hash_string: str) -> bool:
        """
        Check a password against a stored hash string.

        Comparison happens inside argon2 in constant time.

        Raises:
            MalformedHashError: If hash_string is not a valid argon2 hash
        """
        try:
            return self._hasher.verify(hash_string, password)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, VerificationError) as e:
            # Anything other than a clean mismatch means the hash could not be decoded
            raise MalformedHashError("stored password hash is malformed") from e

    def dummy_verify(self, password: str) -> None:
        """Spend one verification's worth of work against a throwaway hash."""
        self.verify_password(password, self._dummy_hash)
