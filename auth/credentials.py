"""
auth/credentials.py -- Password hashing and persistent-login token cryptography.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). Bcrypt's cost factor makes
       brute-force of low-entropy secrets expensive; the salt is generated per
       hash and embedded in the output. verify() delegates the comparison to
       bcrypt.checkpw and returns False -- never raises -- on a malformed hash.

       bcrypt only reads the first 72 bytes of its input and bcrypt>=5 raises
       instead of truncating silently. Both hash() and verify() truncate the
       UTF-8 bytes at 72 so they always agree on what was hashed.

  Persistent tokens: HMAC-SHA256(secret_key, "<user_id>:<email>") as hex.
       Deterministic, so nothing is stored server-side: verify_token()
       recomputes it from the record's *current* email and compares with
       hmac.compare_digest. Changing a user's email therefore invalidates
       every token issued before the change. There is no way to revoke one
       token early short of changing the email or the secret key.

  _dummy_hash: a bcrypt hash computed once per manager so login can run a
       full verification even when the email is unknown, keeping response
       time from revealing whether an account exists.

The manager holds no per-request state. It is built once at startup with the
secret key and the account store and passed to whoever needs it.

Layer rule: no imports from api/ or uploads/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from typing import TYPE_CHECKING

import bcrypt

if TYPE_CHECKING:
    from accounts.store import AccountStore

logger = logging.getLogger("doregister.auth")

_BCRYPT_MAX_BYTES = 72


def _password_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class CredentialManager:
    """One-way password handling plus remember-me token issue/verify."""

    def __init__(self, secret_key: str, store: AccountStore, bcrypt_rounds: int = 12) -> None:
        if not secret_key:
            raise ValueError("secret_key is required")
        self._secret = secret_key.encode("utf-8")
        self._store = store
        self._rounds = bcrypt_rounds
        self._dummy_hash = self.hash(secrets.token_hex(16))

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def hash(self, plain: str) -> str:
        """Return a salted bcrypt hash of the plaintext password."""
        if not plain:
            raise ValueError("Refusing to hash an empty password")
        return bcrypt.hashpw(_password_bytes(plain), bcrypt.gensalt(rounds=self._rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str | None) -> bool:
        """Return True if the plaintext password matches the bcrypt hash."""
        if not plain or not hashed:
            return False
        try:
            return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def burn(self, plain: str) -> None:
        """Spend one verification's worth of time against a throwaway hash."""
        self.verify(plain or "x", self._dummy_hash)

    # ------------------------------------------------------------------
    # Persistent-login tokens
    # ------------------------------------------------------------------

    def issue_token(self, user_id: int, email: str) -> str:
        """Return the remember-me token bound to (user_id, email)."""
        message = f"{int(user_id)}:{email}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def verify_token(self, user_id: int, token: str | None) -> bool:
        """Return True if token is the current token for user_id.

        Fails closed: unknown user, empty token, or any mismatch is False.
        """
        if not token:
            return False
        record = self._store.find_by_id(user_id)
        if record is None:
            return False
        expected = self.issue_token(user_id, record.email)
        return hmac.compare_digest(expected.encode("utf-8"), str(token).encode("utf-8"))
