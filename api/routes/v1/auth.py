"""
api/routes/v1/auth.py -- Registration, login, and session REST endpoints.

Routes:
  GET  /api/v1/auth/csrf?action=        -- anti-forgery token for one action
  POST /api/v1/auth/register            -- validate, create account, sign in
  POST /api/v1/auth/login               -- password login; optional remember-me cookies
  POST /api/v1/auth/logout              -- clear session and remember-me cookies
  GET  /api/v1/auth/check-email?email=  -- is this email already registered?
  POST /api/v1/auth/photo               -- upload a profile photo, get its reference
  GET  /api/v1/auth/session             -- who am I (restores from remember-me)
  GET  /api/v1/auth/me                  -- full profile of the signed-in user

Security:
  Every POST requires X-CSRF-Token for its action (auth.dependencies.csrf_protected).
  POST /login and POST /register are rate-limited per IP (api.limiter).
  Login returns one message for unknown email and wrong password.
  Cache-Control: no-store on login and register responses.

Session state:
  /auth/session trusts the session as it stands. A session whose account was
  deleted after sign-in still reports authenticated: true there; only
  /auth/me loads the record, answers 404, and clears that stale session.
  A rejected remember-me token clears both cookies, on /auth/me's 401 too.

check-email is public and needs no token. It lets the form warn about a taken
email before submission, which also lets anyone find out whether an address is
registered. Kept deliberately for the UX; rate-limit it at the proxy if that
exposure matters for a deployment.
"""

from fastapi import APIRouter, Depends, File, Query, Request, Response, UploadFile
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit, register_limit
from api.models import (
    CsrfTokenResponse,
    EmailCheckResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PhotoUploadResponse,
    ProfileResponse,
    RegisterRequest,
    RegisterResponse,
    SessionResponse,
)
from auth.cookies import TOKEN_COOKIE, USER_ID_COOKIE, apply_cookie_action
from auth.csrf import ACTIONS, CsrfGuard
from auth.dependencies import csrf_protected, get_context, get_identity
from auth.identity import IdentityService
from auth.models import CookieAction, SessionContext
from core.errors import ValidationFailure
from uploads.store import LocalBlobStore

# Auth policy:
# - GET  /auth/csrf, /auth/check-email, /auth/session: public
# - POST /auth/register, /auth/login, /auth/logout, /auth/photo: public + CSRF token
# - GET  /auth/me: requires an authenticated session or remember-me cookies
# @limiter.limit goes under @router so the registered endpoint is the limited
# wrapper. No postponed annotations in this module: FastAPI resolves them
# against the wrapper's globals.
router = APIRouter()


@router.get("/auth/csrf", response_model=CsrfTokenResponse)
def issue_csrf_token(request: Request, action: str = Query(...)) -> CsrfTokenResponse:
    """Issue the anti-forgery token the client must echo for ``action``."""
    if action not in ACTIONS:
        raise ValidationFailure("Unknown action.", {"action": f"Must be one of: {', '.join(sorted(ACTIONS))}."})
    guard: CsrfGuard = request.app.state.csrf
    return CsrfTokenResponse(action=action, token=guard.issue(request.session, action))


@router.post(
    "/auth/register",
    response_model=RegisterResponse,
    status_code=201,
    dependencies=[Depends(csrf_protected("register"))],
)
@limiter.limit(register_limit)
def register(
    request: Request,
    body: RegisterRequest,
    identity: IdentityService = Depends(get_identity),
) -> JSONResponse:
    """Create an account and sign the new user in immediately.

    Every field error comes back at once in ``errors``. A duplicate email,
    including one taken by a concurrent request after validation, is an
    error on ``email``.
    """
    context = identity.register(body.model_dump(), request.session)
    settings = request.app.state.settings
    resp = JSONResponse(
        status_code=201,
        content=RegisterResponse(
            user_id=context.user_id,
            message="Registration successful!",
            redirect_url=settings.profile_url,
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post(
    "/auth/login",
    response_model=LoginResponse,
    dependencies=[Depends(csrf_protected("login"))],
)
@limiter.limit(login_limit)
def login(
    request: Request,
    body: LoginRequest,
    identity: IdentityService = Depends(get_identity),
) -> JSONResponse:
    """Authenticate with email and password.

    remember_me=true sets the persistent-login cookies for REMEMBER_ME_DAYS.
    remember_me=false clears any that a previous login left behind.
    """
    settings = request.app.state.settings
    result = identity.login(body.email, body.password, body.remember_me, request.session)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            user_id=result.context.user_id,
            email=result.context.email,
            remembered=result.cookie_action is CookieAction.set,
            message="Login successful!",
            redirect_url=settings.profile_url,
        ).model_dump(),
    )
    apply_cookie_action(
        resp,
        result.cookie_action,
        token=result.token,
        max_age=settings.remember_me_seconds,
        secure=settings.secure_cookies,
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post(
    "/auth/logout",
    response_model=MessageResponse,
    dependencies=[Depends(csrf_protected("logout"))],
)
def logout(request: Request, identity: IdentityService = Depends(get_identity)) -> JSONResponse:
    """Destroy the session and the remember-me cookies. Needs no prior login."""
    settings = request.app.state.settings
    action = identity.logout(request.session)
    resp = JSONResponse(
        content=MessageResponse(message="Logged out successfully.", redirect_url=settings.login_url).model_dump()
    )
    apply_cookie_action(resp, action, secure=settings.secure_cookies)
    return resp


@router.get("/auth/check-email", response_model=EmailCheckResponse)
def check_email(
    email: str = Query(default=""),
    identity: IdentityService = Depends(get_identity),
) -> EmailCheckResponse:
    """Report whether an email is already registered."""
    clean, exists = identity.gate.check_email(email)
    return EmailCheckResponse(email=clean, exists=exists)


@router.post(
    "/auth/photo",
    response_model=PhotoUploadResponse,
    dependencies=[Depends(csrf_protected("upload_photo"))],
)
def upload_photo(request: Request, profile_photo: UploadFile = File(...)) -> PhotoUploadResponse:
    """Store a JPEG/PNG/GIF of at most MAX_UPLOAD_BYTES and return its reference.

    Reads one byte past the limit so an oversized file is detected without
    pulling all of it into memory.
    """
    blobs: LocalBlobStore = request.app.state.blobs
    data = profile_photo.file.read(blobs.max_bytes + 1)
    return PhotoUploadResponse(url=blobs.store(data, profile_photo.content_type))


@router.get("/auth/session", response_model=SessionResponse)
def session_status(
    request: Request,
    response: Response,
    identity: IdentityService = Depends(get_identity),
) -> SessionResponse:
    """Report the current identity, restoring it from remember-me cookies if needed.

    The account behind an existing session is not reloaded, so a deleted
    account still reads as authenticated here until /auth/me is called.
    """
    result = identity.restore(
        request.session,
        request.cookies.get(USER_ID_COOKIE),
        request.cookies.get(TOKEN_COOKIE),
    )
    apply_cookie_action(response, result.cookie_action, secure=request.app.state.settings.secure_cookies)
    if result.context is None:
        return SessionResponse(authenticated=False)
    return SessionResponse(
        authenticated=True,
        user_id=result.context.user_id,
        email=result.context.email,
        restored_from_token=result.restored_from_token,
    )


@router.get("/auth/me", response_model=ProfileResponse)
def me(
    request: Request,
    context: SessionContext = Depends(get_context),
    identity: IdentityService = Depends(get_identity),
) -> ProfileResponse:
    """Return the signed-in user's profile. 404 if the account was deleted."""
    record = identity.current_record(context, request.session)
    return ProfileResponse.from_record(record)
