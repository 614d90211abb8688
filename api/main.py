"""
api/main.py -- FastAPI application entry point for DoRegister.

Exposes self-service registration, login, and session handling over HTTP
for the host site's front end.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. SessionMiddleware     -- signed-cookie session that carries the identity
  2. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  3. CORSMiddleware        -- adds CORS headers for allowed browser origins
  4. TrustedHostMiddleware -- rejects requests with unexpected Host headers

Lifespan builds the services once and hangs them on app.state:
  settings, store (AccountStore), credentials (CredentialManager),
  gate (ValidationGate), identity (IdentityService), csrf (CsrfGuard),
  blobs (LocalBlobStore).
Routes and dependencies read them from there rather than importing them.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from accounts.store import AccountStore
from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from auth.cookies import clear_remember_cookies
from auth.credentials import CredentialManager
from auth.csrf import CsrfGuard
from auth.dependencies import require_admin
from auth.identity import IdentityService
from auth.validation import ValidationGate
from core.config import Settings, get_settings
from core.errors import (
    AuthFailure,
    Conflict,
    DoRegisterError,
    ForgeryDetected,
    NotFound,
    StoreError,
    UploadError,
    ValidationFailure,
)
from uploads.store import LocalBlobStore

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("doregister.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def build_services(app: FastAPI, settings: Settings, store: AccountStore) -> None:
    """Construct every request-independent service once and attach it to app.state.

    Tests call this with an in-memory store; the lifespan calls it with the
    configured database.
    """
    credentials = CredentialManager(settings.secret_key, store, bcrypt_rounds=settings.bcrypt_rounds)
    gate = ValidationGate(store)
    app.state.settings = settings
    app.state.store = store
    app.state.credentials = credentials
    app.state.gate = gate
    app.state.identity = IdentityService(store, credentials, gate)
    app.state.csrf = CsrfGuard(settings.secret_key)
    app.state.blobs = LocalBlobStore(
        settings.upload_dir,
        url_prefix=settings.upload_url_prefix,
        max_bytes=settings.max_upload_bytes,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the store, build services, and dispose of the engine on shutdown.

    AccountStore() runs ensure_schema(), so the table exists (and any legacy
    email width is corrected) before the first request arrives.
    """
    logger.info("DoRegister API starting up")
    store = AccountStore(_settings.database_url)
    build_services(app, _settings, store)
    app.state.blobs.ensure_root()
    logger.info("Account store ready (%d registered)", store.count())

    yield

    store.close()
    logger.info("DoRegister API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="DoRegister API",
    description="Self-service registration, login, and remember-me sessions.",
    version=VERSION,
    lifespan=lifespan,
)
app.state.settings = _settings

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette wraps middleware so the LAST one added is the outermost. Session
# goes last: everything inside it, including route dependencies, sees
# request.session.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "X-CSRF-Token", "X-API-Key"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.secret_key,
    session_cookie=_settings.session_cookie,
    max_age=_settings.session_max_age_seconds,
    same_site="lax",
    https_only=_settings.secure_cookies,
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Routers and static uploads
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"], dependencies=[Depends(require_admin)])
app.mount(
    _settings.upload_url_prefix,
    StaticFiles(directory=_settings.upload_dir, check_dir=False),
    name="uploads",
)


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so clients can parse
# errors uniformly: {code, message, errors}.
# ---------------------------------------------------------------------------

# Most specific first; the first isinstance() match wins.
_STATUS_BY_ERROR: tuple[tuple[type[DoRegisterError], int], ...] = (
    (ValidationFailure, 400),
    (Conflict, 409),
    (AuthFailure, 401),
    (ForgeryDetected, 403),
    (NotFound, 404),
    (UploadError, 400),
    (StoreError, 500),
)


def _error_response(status_code: int, code: str, message: str, errors: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(code=code, message=message, errors=errors or {}).model_dump(exclude_none=True),
    )


def _finish_error(request: Request, response: JSONResponse) -> JSONResponse:
    """Carry a pending remember-me cookie clear over to an error response."""
    if getattr(request.state, "clear_remember_cookies", False):
        clear_remember_cookies(response, secure=request.app.state.settings.secure_cookies)
    return response


@app.exception_handler(DoRegisterError)
async def domain_error_handler(request: Request, exc: DoRegisterError) -> JSONResponse:
    """Translate the core error taxonomy into HTTP responses.

    StoreError carries only its generic message; the backend detail was
    logged where the failure happened.
    """
    status_code = next((s for cls, s in _STATUS_BY_ERROR if isinstance(exc, cls)), 400)
    response = _error_response(status_code, exc.code, exc.message, exc.errors)
    if isinstance(exc, AuthFailure):
        response.headers["Cache-Control"] = "no-store"
    return _finish_error(request, response)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(429, "rate_limited", "Too many requests.")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 when the request body or query params have the wrong shape."""
    errors: dict[str, str] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query")]
        errors[".".join(loc) or "request"] = err.get("msg", "Invalid value.")
    return _error_response(422, "validation_error", "Request validation failed.", errors)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for FastAPI/Starlette HTTP exceptions.

    Dependencies raise HTTPException with a {code, message} dict as detail;
    use it directly rather than stringifying it. A 401 from get_context()
    still clears rejected remember-me cookies.
    """
    if isinstance(exc.detail, dict):
        response = _error_response(
            exc.status_code,
            str(exc.detail.get("code", f"http_{exc.status_code}")),
            str(exc.detail.get("message", "")),
        )
    else:
        response = _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))
    for name, value in (exc.headers or {}).items():
        response.headers[name] = value
    return _finish_error(request, response)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# No rate limit and no auth -- load balancers must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and whether the account store answers."""
    store: AccountStore = request.app.state.store
    database = "ok" if store.ping() else "error"
    status = "healthy" if database == "ok" else "degraded"
    return HealthResponse(status=status, version=VERSION, components={"app": "ok", "database": database})
