# Vault - Encryption Service
#
# Master password + stored user salt → master key (Argon2id)
# Master key + fresh per-secret salt → cipher key (Argon2id)
# Secret encryption with the cipher key (AES-256-GCM)
#
# Envelope layout:  salt[0:16) ‖ nonce[16:28) ‖ ciphertext+tag[28:)
#
# Salts (128-bit) and nonces (96-bit) are drawn independently at random for
# every encryption. A nonce repeat would also need the same salt to reuse a
# cipher key, so collisions stay far below the birthday bound of either
# value for any realistic number of secrets.

import os
from dataclasses import dataclass
from typing import Tuple, Union

from argon2.exceptions import HashingError as Argon2HashingError
from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import (
    DecryptionFailedError,
    EncryptionError,
    InvalidEnvelopeError,
    InvalidUtf8Error,
    KeyDerivationError,
)

KEY_LENGTH = 32  # 256 bits for AES-256
SALT_LENGTH = 16
NONCE_LENGTH = 12  # 96-bit nonce for GCM (recommended)
TAG_LENGTH = 16
ENVELOPE_HEADER_LENGTH = SALT_LENGTH + NONCE_LENGTH

BytesLike = Union[bytes, bytearray, memoryview]


@dataclass(frozen=True)
class KdfParams:
    """Argon2id cost parameters (memory_cost in KiB)."""

    time_cost: int = 2
    memory_cost: int = 19456
    parallelism: int = 1


class KeyMaterial:
    """
    Mutable key buffer that can be overwritten in place.

    The bytes live in a bytearray so ``wipe()`` zeroes the actual storage
    instead of dropping a reference to an immutable object. Used as a
    context manager it wipes on every exit path::

        with KeyMaterial(raw) as key:
            cipher.encrypt(key, b"...")
    """

    __slots__ = ("_buffer",)

    def __init__(self, data: BytesLike):
        self._buffer = bytearray(data)

    def __len__(self) -> int:
        return len(self._buffer)

    def __bytes__(self) -> bytes:
        return bytes(self._buffer)

    def __repr__(self) -> str:
        state = "wiped" if self.is_wiped else f"{len(self._buffer)} bytes"
        return f"KeyMaterial(<{state}>)"

    def __enter__(self) -> "KeyMaterial":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    @property
    def buffer(self) -> bytearray:
        """The live buffer. Do not keep references past the key's lifetime."""
        return self._buffer

    @property
    def is_wiped(self) -> bool:
        return not any(self._buffer)

    def wipe(self) -> None:
        """Overwrite every byte with zero."""
        for i in range(len(self._buffer)):
            self._buffer[i] = 0


def _as_key_buffer(key: Union[KeyMaterial, BytesLike]) -> BytesLike:
    return key.buffer if isinstance(key, KeyMaterial) else key


class KeyDerivation:
    """
    Deterministic, memory-hard key derivation (Argon2id raw output).

    The same password and salt always produce the same 32 bytes, which is
    what lets a later login rebuild the master key without storing it.
    """

    def __init__(self, params: KdfParams = KdfParams()):
        self.params = params

    @staticmethod
    def generate_salt() -> bytes:
        """Generate a cryptographically random 16-byte salt."""
        return os.urandom(SALT_LENGTH)

    def _derive(self, secret: BytesLike, salt: BytesLike) -> KeyMaterial:
        if len(salt) != SALT_LENGTH:
            raise KeyDerivationError(
                f"salt must be {SALT_LENGTH} bytes, got {len(salt)}"
            )
        try:
            raw = hash_secret_raw(
                secret=bytes(secret),
                salt=bytes(salt),
                time_cost=self.params.time_cost,
                memory_cost=self.params.memory_cost,
                parallelism=self.params.parallelism,
                hash_len=KEY_LENGTH,
                type=Type.ID,
            )
        except Argon2HashingError as e:
            raise KeyDerivationError(f"key derivation failed: {e}") from e
        return KeyMaterial(raw)

    def derive_master_key(self, password: str, user_salt: BytesLike) -> KeyMaterial:
        """
        Derive the session master key from the master password.

        Args:
            password: User's master password
            user_salt: The user's stored 16-byte encryption salt

        Returns:
            256-bit master key
        """
        return self._derive(password.encode("utf-8"), user_salt)

    def derive_cipher_key(
        self, master_key: Union[KeyMaterial, BytesLike], secret_salt: BytesLike
    ) -> KeyMaterial:
        """
        Derive a per-secret cipher key from the master key.

        Args:
            master_key: 32-byte master key
            secret_salt: Fresh 16-byte salt stored in the envelope

        Returns:
            256-bit cipher key
        """
        key = _as_key_buffer(master_key)
        if len(key) != KEY_LENGTH:
            raise KeyDerivationError(
                f"master key must be {KEY_LENGTH} bytes, got {len(key)}"
            )
        return self._derive(key, secret_salt)


class SecretCipher:
    """
    Seals secrets into self-describing envelopes.

    Flow:
    1. Pick a random salt and nonce
    2. Derive a cipher key from the master key and the salt
    3. AES-256-GCM encrypt (tag appended by the primitive)
    4. Concatenate salt, nonce and ciphertext
    """

    def __init__(self, kdf: KeyDerivation = None):
        self.kdf = kdf or KeyDerivation()

    @staticmethod
    def split_envelope(envelope: BytesLike) -> Tuple[bytes, bytes, bytes]:
        """
        Split an envelope into (secret_salt, nonce, ciphertext).

        Raises:
            InvalidEnvelopeError: If there is no room for any ciphertext
        """
        if len(envelope) <= ENVELOPE_HEADER_LENGTH:
            raise InvalidEnvelopeError(
                f"envelope must be longer than {ENVELOPE_HEADER_LENGTH} bytes, "
                f"got {len(envelope)}"
            )
        envelope = bytes(envelope)
        return (
            envelope[:SALT_LENGTH],
            envelope[SALT_LENGTH:ENVELOPE_HEADER_LENGTH],
            envelope[ENVELOPE_HEADER_LENGTH:],
        )

    def encrypt(
        self, master_key: Union[KeyMaterial, BytesLike], plaintext: Union[str, bytes]
    ) -> bytes:
        """
        Encrypt a secret under the master key.

        Args:
            master_key: 32-byte master key
            plaintext: Secret text (UTF-8 encoded) or raw bytes

        Returns:
            Envelope bytes; never the same twice for the same input
        """
        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")

        secret_salt = KeyDerivation.generate_salt()
        nonce = os.urandom(NONCE_LENGTH)

        with self.kdf.derive_cipher_key(master_key, secret_salt) as cipher_key:
            try:
                ciphertext = AESGCM(cipher_key.buffer).encrypt(nonce, plaintext, None)
            except (ValueError, OverflowError) as e:
                raise EncryptionError(f"encryption failed: {e}") from e

        return secret_salt + nonce + ciphertext

    def decrypt(self, master_key: Union[KeyMaterial, BytesLike], envelope: BytesLike) -> bytes:
        """
        Decrypt an envelope back to the original bytes.

        Raises:
            InvalidEnvelopeError: If the envelope is too short
            DecryptionFailedError: If authentication fails (tampered or wrong key)
        """
        secret_salt, nonce, ciphertext = self.split_envelope(envelope)

        with self.kdf.derive_cipher_key(master_key, secret_salt) as cipher_key:
            try:
                return AESGCM(cipher_key.buffer).decrypt(nonce, ciphertext, None)
            except InvalidTag:
                # Never say where or why the tag failed
                raise DecryptionFailedError() from None

    def decrypt_text(self, master_key: Union[KeyMaterial, BytesLike], envelope: BytesLike) -> str:
        """
        Decrypt an envelope holding UTF-8 text.

        Raises:
            InvalidUtf8Error: If authenticated plaintext is not UTF-8
        """
        plaintext = self.decrypt(master_key, envelope)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidUtf8Error("decrypted secret is not valid UTF-8") from e
