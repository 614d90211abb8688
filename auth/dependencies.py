"""
auth/dependencies.py -- FastAPI Depends() helpers for identity and admin access.

Identity is resolved in priority order:
  1. Session (Starlette signed-cookie session, set on register/login).
  2. Persistent-login cookies (doregister_user_id + doregister_user_token),
     verified by recomputation. Success silently re-establishes the session;
     failure clears both cookies on the outgoing response.

try_get_context() is the soft variant (returns None when anonymous).
get_context() wraps it and raises HTTP 401.
require_admin() checks the X-API-Key header against ADMIN_API_KEY.
csrf_protected(action) builds a dependency that rejects the request before
the handler runs unless X-CSRF-Token carries the session's token for action.

Services live on app.state (built once in the lifespan) and are read from
the request here, never imported as module globals.

Layer rule: no imports from uploads/. auth/dependencies.py may import from
fastapi because it is part of the dependency injection system.
"""

from __future__ import annotations

import hmac

from fastapi import HTTPException, Request, Response

from auth.cookies import TOKEN_COOKIE, USER_ID_COOKIE, apply_cookie_action
from auth.csrf import CsrfGuard
from auth.identity import IdentityService
from auth.models import CookieAction, SessionContext

CSRF_HEADER = "X-CSRF-Token"
ADMIN_KEY_HEADER = "X-API-Key"


def get_identity(request: Request) -> IdentityService:
    return request.app.state.identity


def try_get_context(request: Request, response: Response) -> SessionContext | None:
    """Return the authenticated SessionContext, or None. Never raises.

    A rejected persistent token is cleared on ``response``. FastAPI merges
    that response's cookies into whatever the route returns, as long as the
    route returns a model rather than its own Response object. The request
    is also flagged, so an error response built in place of ``response``
    clears the cookies too.
    """
    identity: IdentityService = request.app.state.identity
    result = identity.restore(
        request.session,
        request.cookies.get(USER_ID_COOKIE),
        request.cookies.get(TOKEN_COOKIE),
    )
    apply_cookie_action(response, result.cookie_action, secure=request.app.state.settings.secure_cookies)
    if result.cookie_action is CookieAction.clear:
        request.state.clear_remember_cookies = True
    return result.context


def get_context(request: Request, response: Response) -> SessionContext:
    """Require an authenticated identity. Raises HTTP 401 otherwise."""
    context = try_get_context(request, response)
    if context is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Please login to continue."},
        )
    return context


def csrf_protected(action: str):
    """Return a dependency enforcing the anti-forgery token for ``action``.

    Use as:
        @router.post("/auth/login", dependencies=[Depends(csrf_protected("login"))])
    """

    def _check(request: Request) -> None:
        guard: CsrfGuard = request.app.state.csrf
        guard.verify(request.session, action, request.headers.get(CSRF_HEADER))

    return _check


def require_admin(request: Request) -> None:
    """Require X-API-Key == ADMIN_API_KEY. Raises HTTP 403 otherwise.

    An empty ADMIN_API_KEY disables the admin surface entirely.
    """
    expected: str = request.app.state.settings.admin_api_key
    presented = request.headers.get(ADMIN_KEY_HEADER, "")
    if not expected or not hmac.compare_digest(expected.encode("utf-8"), presented.encode("utf-8")):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
