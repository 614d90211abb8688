"""
auth/models.py -- Dataclasses for validated input and identity state.

Pattern: Data class (pure data container, zero logic). The validation gate
produces RegistrationFields / LoginFields; the identity lifecycle produces
SessionContext and the result objects that tell the transport layer what to
do with the persistent-login cookies.

Layer rule: no imports from api/ or uploads/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class RegistrationFields:
    """Sanitized registration input. Only produced when every rule passed.

    Optional fields are None when the caller left them blank.
    password is the raw password (it is hashed next and then dropped);
    confirm_password is not carried past the gate.
    """

    full_name: str
    email: str
    password: str
    phone_number: str
    country: str
    interests: list[str]
    profile_photo: str
    city: str | None = None
    gender: str | None = None
    date_of_birth: str | None = None


@dataclass(frozen=True)
class LoginFields:
    email: str
    password: str


@dataclass(frozen=True)
class SessionContext:
    """Who the current request is authenticated as. Never persisted."""

    user_id: int
    email: str


@dataclass(frozen=True)
class PersistentToken:
    """Client-held remember-me credential. Verified by recomputation only."""

    user_id: int
    token: str


class CookieAction(str, Enum):
    """What the transport layer must do with the persistent-login cookies."""

    keep = "keep"
    set = "set"
    clear = "clear"


@dataclass(frozen=True)
class LoginResult:
    context: SessionContext
    cookie_action: CookieAction
    token: PersistentToken | None = None


@dataclass(frozen=True)
class RestoreResult:
    """Outcome of restoring identity at the start of a request.

    context is None when the request stays anonymous. cookie_action is
    ``clear`` when a presented persistent token failed verification.
    """

    context: SessionContext | None
    cookie_action: CookieAction = CookieAction.keep
    restored_from_token: bool = False
