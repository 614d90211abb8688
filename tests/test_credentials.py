"""Unit tests for auth/credentials.py -- password hashing and persistent tokens.

Covers:
- hash/verify round trip, wrong password, malformed hash, empty input
- the 72-byte bcrypt input limit is applied the same way on both sides
- issue_token/verify_token: valid while the email is unchanged, invalid after
  an email change, after deletion, and for a tampered token
"""

import pytest

from accounts.models import UserRecord
from auth.credentials import CredentialManager
from conftest import SECRET


def _add_user(store, credentials, email="a@x.com", password="password1") -> int:
    return store.insert(
        UserRecord(
            full_name="A",
            email=email,
            password_hash=credentials.hash(password),
            phone_number="123-456",
            country="X",
            interests=["tech"],
        )
    )


class TestPasswords:
    def test_hash_then_verify(self, credentials):
        hashed = credentials.hash("password1")
        assert hashed != "password1"
        assert hashed.startswith("$2")
        assert credentials.verify("password1", hashed) is True

    def test_wrong_password_fails(self, credentials):
        assert credentials.verify("password2", credentials.hash("password1")) is False

    def test_hashes_are_salted(self, credentials):
        assert credentials.hash("password1") != credentials.hash("password1")

    @pytest.mark.parametrize("hashed", [None, "", "not-a-bcrypt-hash"])
    def test_malformed_hash_is_false_not_error(self, credentials, hashed):
        assert credentials.verify("password1", hashed) is False

    def test_empty_password_rejected(self, credentials):
        with pytest.raises(ValueError):
            credentials.hash("")
        assert credentials.verify("", credentials.hash("password1")) is False

    def test_long_password_truncated_consistently(self, credentials):
        long_password = "x" * 100
        hashed = credentials.hash(long_password)
        assert credentials.verify(long_password, hashed) is True
        # Beyond 72 bytes bcrypt sees the same input.
        assert credentials.verify("x" * 72, hashed) is True
        assert credentials.verify("x" * 71, hashed) is False

    def test_burn_does_not_raise(self, credentials):
        credentials.burn("anything")
        credentials.burn("")

    def test_secret_key_required(self, store):
        with pytest.raises(ValueError):
            CredentialManager("", store)


class TestPersistentTokens:
    def test_round_trip(self, store, credentials):
        user_id = _add_user(store, credentials)
        token = credentials.issue_token(user_id, "a@x.com")
        assert credentials.verify_token(user_id, token) is True

    def test_token_is_deterministic(self, credentials):
        assert credentials.issue_token(1, "a@x.com") == credentials.issue_token(1, "a@x.com")
        assert credentials.issue_token(1, "a@x.com") != credentials.issue_token(2, "a@x.com")

    def test_invalid_after_email_change(self, store, credentials):
        user_id = _add_user(store, credentials)
        token = credentials.issue_token(user_id, "a@x.com")
        store.update(user_id, email="changed@x.com")
        assert credentials.verify_token(user_id, token) is False

    def test_invalid_after_delete(self, store, credentials):
        user_id = _add_user(store, credentials)
        token = credentials.issue_token(user_id, "a@x.com")
        store.delete_by_ids([user_id])
        assert credentials.verify_token(user_id, token) is False

    def test_tampered_token_rejected(self, store, credentials):
        user_id = _add_user(store, credentials)
        token = credentials.issue_token(user_id, "a@x.com")
        tampered = ("0" if token[0] != "0" else "1") + token[1:]
        assert credentials.verify_token(user_id, tampered) is False
        assert credentials.verify_token(user_id, "") is False
        assert credentials.verify_token(user_id, None) is False

    def test_token_for_other_user_rejected(self, store, credentials):
        first = _add_user(store, credentials, email="a@x.com")
        second = _add_user(store, credentials, email="b@x.com")
        token = credentials.issue_token(first, "a@x.com")
        assert credentials.verify_token(second, token) is False

    def test_different_secret_rejected(self, store, credentials):
        user_id = _add_user(store, credentials)
        other = CredentialManager(SECRET + "-rotated", store, bcrypt_rounds=4)
        token = other.issue_token(user_id, "a@x.com")
        assert credentials.verify_token(user_id, token) is False
