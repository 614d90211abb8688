"""
auth/csrf.py -- Per-action anti-forgery tokens bound to the session.

Every mutating entry point (register, login, logout, photo upload) requires a
token that was issued to the same browser session for that specific action.
A token for "login" is useless for "register" and vice versa.

  token = HMAC-SHA256(secret_key, "<session nonce>:<action>")

The nonce is a random value created lazily in the session the first time a
token is issued. Logging out clears the session and with it the nonce, so
tokens issued before logout stop working.

Verification happens before any business logic; a failure raises
ForgeryDetected and the request goes no further.

Layer rule: no imports from api/, accounts/, or uploads/.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from collections.abc import MutableMapping
from typing import Any

from core.errors import ForgeryDetected

ACTIONS = frozenset({"register", "login", "logout", "upload_photo"})

_NONCE_KEY = "doregister_csrf_nonce"


class CsrfGuard:
    def __init__(self, secret_key: str) -> None:
        self._secret = secret_key.encode("utf-8")

    def issue(self, session: MutableMapping[str, Any], action: str) -> str:
        """Return the token for action, creating the session nonce if needed."""
        if action not in ACTIONS:
            raise ValueError(f"Unknown anti-forgery action: {action!r}")
        nonce = session.get(_NONCE_KEY)
        if not nonce:
            nonce = secrets.token_hex(16)
            session[_NONCE_KEY] = nonce
        return self._sign(nonce, action)

    def verify(self, session: MutableMapping[str, Any], action: str, token: str | None) -> None:
        """Raise ForgeryDetected unless token is the session's token for action."""
        nonce = session.get(_NONCE_KEY)
        if not token or not nonce or action not in ACTIONS:
            raise ForgeryDetected()
        expected = self._sign(nonce, action)
        if not hmac.compare_digest(expected.encode("utf-8"), token.encode("utf-8")):
            raise ForgeryDetected()

    def _sign(self, nonce: str, action: str) -> str:
        return hmac.new(self._secret, f"{nonce}:{action}".encode("utf-8"), hashlib.sha256).hexdigest()
