"""
auth/identity.py -- Session and identity lifecycle for registration and login.

State per browser context:

  Anonymous ----register()/login()----> Authenticated (session holds id+email)
  Anonymous + persistent token --restore()--> Authenticated when the token
      verifies against the current record; otherwise the token is cleared
      and the context stays Anonymous.
  Authenticated ----logout()----> Anonymous (session cleared, token cleared)

The session is any MutableMapping. In the API it is Starlette's signed-cookie
session (request.session); tests pass a plain dict. This service never
touches cookies itself: login() and restore() return a CookieAction and the
transport layer applies it.

Error policy:
  Gate failures short-circuit before any write.
  Conflict from the store becomes a ValidationFailure on "email" -- the race
      where the email was taken between the gate's check and the insert.
  StoreError is re-raised with the generic message; the store already
      logged the backend detail.
  Login failures raise AuthFailure with one message for both unknown email
      and wrong password. Only the field the message is attached to differs.
  Token verification fails closed.

Layer rule: no imports from api/ or uploads/.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, MutableMapping
from typing import Any

from accounts.models import UserRecord
from accounts.store import AccountStore
from auth.credentials import CredentialManager
from auth.models import CookieAction, LoginResult, PersistentToken, RestoreResult, SessionContext
from auth.validation import ValidationGate
from core.errors import AuthFailure, Conflict, NotFound, StoreError, ValidationFailure

logger = logging.getLogger("doregister.auth")

SESSION_USER_ID = "doregister_user_id"
SESSION_USER_EMAIL = "doregister_user_email"

INVALID_CREDENTIALS = "Invalid email or password."


class IdentityService:
    """Register, log in, restore and log out. Stateless between requests."""

    def __init__(self, store: AccountStore, credentials: CredentialManager, gate: ValidationGate) -> None:
        self.store = store
        self.credentials = credentials
        self.gate = gate

    # ------------------------------------------------------------------
    # Register
    # ------------------------------------------------------------------

    def register(self, raw: Mapping[str, Any], session: MutableMapping[str, Any]) -> SessionContext:
        """Validate, hash, persist, and sign the new user straight in."""
        fields = self.gate.validate_registration(raw)

        record = UserRecord(
            full_name=fields.full_name,
            email=fields.email,
            password_hash=self.credentials.hash(fields.password),
            phone_number=fields.phone_number,
            country=fields.country,
            city=fields.city,
            gender=fields.gender,
            date_of_birth=fields.date_of_birth,
            interests=list(fields.interests),
            profile_photo=fields.profile_photo,
        )
        try:
            user_id = self.store.insert(record)
        except Conflict as exc:
            raise ValidationFailure(errors={"email": "Email already exists."}) from exc
        except StoreError as exc:
            raise StoreError("Registration failed. Please try again.") from exc

        context = SessionContext(user_id=user_id, email=fields.email)
        _establish(session, context)
        logger.info("Registered user_id=%d", user_id)
        return context

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(
        self,
        email: Any,
        password: Any,
        remember_me: bool,
        session: MutableMapping[str, Any],
    ) -> LoginResult:
        """Check credentials and establish a session.

        With remember_me the result carries a PersistentToken and
        CookieAction.set. Without it the result says CookieAction.clear so a
        browser that was remembered before does not keep the old token alive.
        """
        fields = self.gate.validate_login(email, password)

        record = self.store.find_by_email(fields.email)
        if record is None:
            # Same bcrypt cost as a real check so timing does not reveal existence.
            self.credentials.burn(fields.password)
            raise AuthFailure(errors={"email": INVALID_CREDENTIALS})

        if not self.credentials.verify(fields.password, record.password_hash):
            raise AuthFailure(errors={"password": INVALID_CREDENTIALS})

        context = SessionContext(user_id=record.id, email=record.email)
        _establish(session, context)
        logger.info("Login user_id=%d remember_me=%s", record.id, bool(remember_me))

        if remember_me:
            token = PersistentToken(user_id=record.id, token=self.credentials.issue_token(record.id, record.email))
            return LoginResult(context=context, cookie_action=CookieAction.set, token=token)
        return LoginResult(context=context, cookie_action=CookieAction.clear)

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def restore(
        self,
        session: MutableMapping[str, Any],
        cookie_user_id: Any = None,
        cookie_token: Any = None,
    ) -> RestoreResult:
        """Work out who the request belongs to.

        An existing session wins. Otherwise a persistent token, if both
        cookies are present, is verified against the current record and the
        session is re-established from it. A token that fails verification
        yields CookieAction.clear.
        """
        context = current_context(session)
        if context is not None:
            return RestoreResult(context=context)

        if not cookie_user_id or not cookie_token:
            return RestoreResult(context=None)

        user_id = _parse_user_id(cookie_user_id)
        if user_id is None or not self.credentials.verify_token(user_id, str(cookie_token)):
            logger.info("Rejected persistent token for user_id=%r", cookie_user_id)
            return RestoreResult(context=None, cookie_action=CookieAction.clear)

        record = self.store.find_by_id(user_id)
        if record is None:
            return RestoreResult(context=None, cookie_action=CookieAction.clear)

        context = SessionContext(user_id=record.id, email=record.email)
        _establish(session, context)
        return RestoreResult(context=context, restored_from_token=True)

    def current_record(self, context: SessionContext, session: MutableMapping[str, Any]) -> UserRecord:
        """Load the record behind an authenticated context.

        A session that points at a deleted record is cleared and NotFound is
        raised rather than letting a stale identity linger.
        """
        record = self.store.find_by_id(context.user_id)
        if record is None:
            session.clear()
            raise NotFound()
        return record

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    def logout(self, session: MutableMapping[str, Any]) -> CookieAction:
        """Destroy the session. The caller must clear the persistent cookies."""
        session.clear()
        return CookieAction.clear


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------


def current_context(session: Mapping[str, Any]) -> SessionContext | None:
    """Return the SessionContext stored in session, or None if anonymous."""
    user_id = _parse_user_id(session.get(SESSION_USER_ID))
    if user_id is None:
        return None
    return SessionContext(user_id=user_id, email=str(session.get(SESSION_USER_EMAIL) or ""))


def _establish(session: MutableMapping[str, Any], context: SessionContext) -> None:
    session[SESSION_USER_ID] = context.user_id
    session[SESSION_USER_EMAIL] = context.email


def _parse_user_id(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        user_id = int(str(value).strip())
    except ValueError:
        return None
    return user_id if user_id > 0 else None
