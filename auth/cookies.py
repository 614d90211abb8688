"""
auth/cookies.py -- Persistent-login ("remember me") cookie helpers.

Two cookies travel together:
  doregister_user_id     -- the account id the token was issued for
  doregister_user_token  -- HMAC token from CredentialManager.issue_token()

httponly=True: JS cannot read either cookie (XSS mitigation).
samesite="lax": not sent on cross-site POST.
secure: only over HTTPS when SECURE_COOKIES=true (set in production).

apply_cookie_action() is how routes act on the CookieAction returned by the
identity service, so the set/clear policy lives in one place.
"""

from __future__ import annotations

from auth.models import CookieAction, PersistentToken

USER_ID_COOKIE = "doregister_user_id"
TOKEN_COOKIE = "doregister_user_token"


def set_remember_cookies(response, token: PersistentToken, max_age: int, secure: bool = False) -> None:
    """Write both persistent-login cookies with the given lifetime in seconds."""
    for name, value in ((USER_ID_COOKIE, str(token.user_id)), (TOKEN_COOKIE, token.token)):
        response.set_cookie(
            name,
            value=value,
            httponly=True,
            samesite="lax",
            secure=secure,
            max_age=max_age,
        )


def clear_remember_cookies(response, secure: bool = False) -> None:
    """Expire both persistent-login cookies."""
    for name in (USER_ID_COOKIE, TOKEN_COOKIE):
        response.delete_cookie(name, httponly=True, samesite="lax", secure=secure)


def apply_cookie_action(
    response,
    action: CookieAction,
    token: PersistentToken | None = None,
    max_age: int = 0,
    secure: bool = False,
) -> None:
    if action is CookieAction.set and token is not None:
        set_remember_cookies(response, token, max_age=max_age, secure=secure)
    elif action is CookieAction.clear:
        clear_remember_cookies(response, secure=secure)
