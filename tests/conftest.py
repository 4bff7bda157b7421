"""
Shared pytest fixtures for the lockkey test suite.

Autouse fixtures below isolate tests from the live environment:
  - Logging  -> temp directory  (no stray lockkey_*.log files in the repo)

Cheap Argon2 parameters keep the suite fast. They are only ever used
here; library defaults are exercised in a handful of dedicated tests.
"""

import pytest

from lockkey.core.log import configure_logging
from lockkey.vault import Authenticator, KdfParams, KeyDerivation, SecretCipher, Session

CHEAP_KDF = KdfParams(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture(autouse=True)
def _isolate_logs(tmp_path):
    """Route structured logs to a temp directory for every test."""
    configure_logging(log_dir=tmp_path / "logs")
    yield
    configure_logging(log_dir=None)


@pytest.fixture
def cheap_kdf():
    return KeyDerivation(CHEAP_KDF)


@pytest.fixture
def cheap_auth():
    return Authenticator(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def cipher(cheap_kdf):
    return SecretCipher(cheap_kdf)


@pytest.fixture
def master_key():
    return bytes(range(32))


@pytest.fixture
def session(tmp_path, cheap_auth, cheap_kdf):
    """A fresh, unauthenticated session over a temp database."""
    sess = Session.open(tmp_path / "vault.db", authenticator=cheap_auth, kdf=cheap_kdf)
    yield sess
    sess.close()


@pytest.fixture
def alice(session):
    """Session logged in as alice."""
    session.create_account("alice", "S3cr3t!")
    session.login("alice", "S3cr3t!")
    return session
