# lockkey - Local Encrypted Secret Vault
#
# Stores user-labelled secrets on disk so that no plaintext ever touches
# storage; only the right master password can decrypt them.

__version__ = "0.1.0"
__description__ = "Local encrypted secret vault"

from .core.config import VaultConfig
from .vault import Session, SecretKind, RevealedSecret

__all__ = [
    "__version__",
    "VaultConfig",
    "Session",
    "SecretKind",
    "RevealedSecret",
]
