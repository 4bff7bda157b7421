"""Tests for the SQLite secret store: schema, uniqueness, isolation, lifecycle."""

import sqlite3

import pytest

from lockkey.vault import (
    ConnectionFailedError,
    DuplicateLabelError,
    LabelEntry,
    NotFoundError,
    SecretKind,
    SecretStore,
    StorageError,
    UsernameTakenError,
    ValidationError,
)
from lockkey.vault.exceptions import AuthError, ConstraintViolationError

HASH = "$argon2id$v=19$m=8,t=1,p=1$c2FsdHNhbHQ$aGFzaGhhc2g"
SALT = b"\x01" * 16
BLOB = b"\xaa" * 45  # salt + nonce + 1 byte + tag


@pytest.fixture
def store(tmp_path):
    s = SecretStore(tmp_path / "store.db")
    yield s
    s.close()


@pytest.fixture
def two_users(store):
    return store.create_user("alice", HASH, SALT), store.create_user("bob", HASH, SALT)


# ── Schema ──────────────────────────────────────────────────────────


class TestSchema:

    def test_tables_and_index_created(self, tmp_path):
        SecretStore(tmp_path / "s.db").close()
        conn = sqlite3.connect(str(tmp_path / "s.db"))
        names = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type IN ('table', 'index')")
        }
        conn.close()
        assert {"users", "secrets", "idx_secrets_user_id"} <= names

    def test_reopen_keeps_data(self, tmp_path):
        path = tmp_path / "s.db"
        with SecretStore(path) as s:
            s.create_user("alice", HASH, SALT)
        with SecretStore(path) as s:
            assert s.get_user_id("alice") is not None

    def test_creates_parent_directory(self, tmp_path):
        with SecretStore(tmp_path / "nested" / "dir" / "s.db") as s:
            assert s.is_open

    def test_memory_database(self):
        with SecretStore(":memory:") as s:
            uid = s.create_user("alice", HASH, SALT)
            assert s.get_username(uid) == "alice"

    def test_unopenable_path_raises_connection_failed(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(ConnectionFailedError):
            SecretStore(blocker / "s.db")


# ── Users ───────────────────────────────────────────────────────────


class TestUsers:

    def test_create_and_lookup(self, store):
        uid = store.create_user("alice", HASH, SALT)
        assert store.get_user_id("alice") == uid
        assert store.get_username(uid) == "alice"
        assert store.get_passwd_hash("alice") == HASH
        assert store.get_enc_salt("alice") == SALT
        assert store.user_exists("alice")

    def test_missing_user_returns_none(self, store):
        assert store.get_user_id("ghost") is None
        assert store.get_username(999) is None
        assert store.get_passwd_hash("ghost") is None
        assert store.get_enc_salt("ghost") is None
        assert not store.user_exists("ghost")

    def test_duplicate_username(self, store):
        store.create_user("alice", HASH, SALT)
        with pytest.raises(UsernameTakenError) as exc:
            store.create_user("alice", HASH, b"\x02" * 16)
        assert isinstance(exc.value, AuthError)
        assert isinstance(exc.value, ConstraintViolationError)

    @pytest.mark.parametrize("username", ["", "x" * 25, "ali\x00ce"])
    def test_bad_username_rejected(self, store, username):
        with pytest.raises(ValidationError):
            store.create_user(username, HASH, SALT)

    def test_24_char_username_allowed(self, store):
        assert store.create_user("u" * 24, HASH, SALT) > 0

    def test_bad_salt_rejected(self, store):
        with pytest.raises(ValidationError):
            store.create_user("alice", HASH, b"short")

    def test_delete_user_cascades_secrets(self, store):
        uid = store.create_user("alice", HASH, SALT)
        store.store_secret(uid, SecretKind.TEXT, "note", BLOB)
        assert store.delete_user("alice") is True
        assert store.get_user_id("alice") is None
        assert store.count_secrets(uid) == 0

    def test_delete_missing_user(self, store):
        assert store.delete_user("ghost") is False

    def test_user_id_not_reused(self, store):
        uid = store.create_user("alice", HASH, SALT)
        store.store_secret(uid, "text", "note", BLOB)
        store.delete_user("alice")
        new_uid = store.create_user("mallory", HASH, SALT)
        assert new_uid != uid
        assert store.get_labels(new_uid) == []


# ── Secrets ─────────────────────────────────────────────────────────


class TestSecrets:

    def test_store_and_get(self, store, two_users):
        alice, _ = two_users
        store.store_secret(alice, "password", "gmail", BLOB)
        assert store.get_secret(alice, "gmail") == (SecretKind.PASSWORD, BLOB)

    def test_get_missing_returns_none(self, store, two_users):
        alice, _ = two_users
        assert store.get_secret(alice, "nothing") is None

    def test_duplicate_label_same_user(self, store, two_users):
        alice, _ = two_users
        store.store_secret(alice, "text", "note", BLOB)
        with pytest.raises(DuplicateLabelError):
            store.store_secret(alice, "password", "note", BLOB)

    def test_same_label_across_users(self, store, two_users):
        alice, bob = two_users
        store.store_secret(alice, "text", "note", BLOB)
        store.store_secret(bob, "text", "note", b"\xbb" * 45)
        assert store.get_secret(alice, "note")[1] == BLOB
        assert store.get_secret(bob, "note")[1] == b"\xbb" * 45

    @pytest.mark.parametrize("label", ["", "ab", "x" * 33, "ab\x00cd", "\x00\x00\x00"])
    def test_invalid_label_rejected(self, store, two_users, label):
        alice, _ = two_users
        with pytest.raises(ValidationError):
            store.store_secret(alice, "text", label, BLOB)
        assert store.count_secrets(alice) == 0

    @pytest.mark.parametrize("label", ["abc", "x" * 32])
    def test_label_length_bounds_allowed(self, store, two_users, label):
        alice, _ = two_users
        store.store_secret(alice, "text", label, BLOB)
        assert store.get_secret(alice, label) is not None

    @pytest.mark.parametrize("data", [b"", b"\x00" * 28, "not-bytes"])
    def test_trivial_ciphertext_rejected(self, store, two_users, data):
        alice, _ = two_users
        with pytest.raises(ValidationError):
            store.store_secret(alice, "text", "note", data)
        assert store.count_secrets(alice) == 0

    def test_unknown_kind_rejected(self, store, two_users):
        alice, _ = two_users
        with pytest.raises(ValidationError):
            store.store_secret(alice, "creditcard", "note", BLOB)

    def test_kind_parsed_case_insensitively(self, store, two_users):
        alice, _ = two_users
        store.store_secret(alice, "Password", "gmail", BLOB)
        assert store.get_secret(alice, "gmail")[0] is SecretKind.PASSWORD

    def test_unknown_owner_rejected(self, store):
        with pytest.raises(NotFoundError):
            store.store_secret(12345, "text", "note", BLOB)

    def test_labels_are_isolated_per_user(self, store, two_users):
        alice, bob = two_users
        store.store_secret(alice, "password", "gmail", BLOB)
        store.store_secret(alice, "text", "diary", BLOB)
        store.store_secret(bob, "text", "bobnote", BLOB)

        assert store.get_labels(alice) == [
            LabelEntry(SecretKind.TEXT, "diary"),
            LabelEntry(SecretKind.PASSWORD, "gmail"),
        ]
        assert store.get_labels(bob) == [LabelEntry(SecretKind.TEXT, "bobnote")]
        assert store.get_secret(bob, "gmail") is None

    def test_delete_secret(self, store, two_users):
        alice, bob = two_users
        store.store_secret(alice, "text", "note", BLOB)
        store.store_secret(bob, "text", "note", BLOB)
        assert store.delete_secret(alice, "note") is True
        assert store.delete_secret(alice, "note") is False
        assert store.get_secret(alice, "note") is None
        assert store.get_secret(bob, "note") is not None


class TestEditSecret:

    def test_rename_and_replace(self, store, two_users):
        alice, _ = two_users
        store.store_secret(alice, "password", "gmail", BLOB)
        new_blob = b"\xcc" * 50
        store.edit_secret(alice, "gmail", "gmail2", new_blob)
        assert store.get_secret(alice, "gmail") is None
        assert store.get_secret(alice, "gmail2") == (SecretKind.PASSWORD, new_blob)

    def test_replace_keeping_label(self, store, two_users):
        alice, _ = two_users
        store.store_secret(alice, "text", "note", BLOB)
        store.edit_secret(alice, "note", "note", b"\xdd" * 45)
        assert store.get_secret(alice, "note")[1] == b"\xdd" * 45

    def test_missing_old_label(self, store, two_users):
        alice, _ = two_users
        with pytest.raises(NotFoundError):
            store.edit_secret(alice, "ghost", "ghost2", BLOB)

    def test_cannot_edit_other_users_secret(self, store, two_users):
        alice, bob = two_users
        store.store_secret(alice, "text", "note", BLOB)
        with pytest.raises(NotFoundError):
            store.edit_secret(bob, "note", "stolen", BLOB)
        assert store.get_secret(alice, "note")[1] == BLOB

    def test_rename_onto_existing_label(self, store, two_users):
        alice, _ = two_users
        store.store_secret(alice, "text", "one", BLOB)
        store.store_secret(alice, "text", "two", BLOB)
        with pytest.raises(DuplicateLabelError):
            store.edit_secret(alice, "one", "two", b"\xee" * 45)
        assert store.get_secret(alice, "one")[1] == BLOB

    def test_invalid_new_label(self, store, two_users):
        alice, _ = two_users
        store.store_secret(alice, "text", "note", BLOB)
        with pytest.raises(ValidationError):
            store.edit_secret(alice, "note", "no", BLOB)

    def test_nul_in_new_label_rejected(self, store, two_users):
        alice, _ = two_users
        store.store_secret(alice, "text", "note", BLOB)
        with pytest.raises(ValidationError):
            store.edit_secret(alice, "note", "no\x00te", BLOB)
        assert store.get_labels(alice) == [LabelEntry(SecretKind.TEXT, "note")]


# ── Lifecycle ───────────────────────────────────────────────────────


class TestLifecycle:

    def test_close_is_idempotent(self, tmp_path):
        s = SecretStore(tmp_path / "s.db")
        s.close()
        s.close()
        s.close()
        assert not s.is_open

    def test_use_after_close(self, tmp_path):
        s = SecretStore(tmp_path / "s.db")
        s.close()
        with pytest.raises(StorageError):
            s.get_user_id("alice")

    def test_context_manager_closes(self, tmp_path):
        with SecretStore(tmp_path / "s.db") as s:
            pass
        assert not s.is_open
