"""
tests/conftest.py -- Shared test fixtures for DoRegister.

This module provides:
  - _make_test_store(): an isolated in-memory AccountStore per test
  - store / credentials / gate / identity: service-level fixtures
  - registration(): a valid registration payload, overridable per test
  - _patch_lifespan(): wires a test store into app.state, bypassing real startup
  - api_client: (TestClient, AccountStore) for API integration tests
  - csrf_headers(): fetches the anti-forgery header for one action

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment must be set before any api/core import: get_settings() is cached
on first call, and api.main reads it at import time for the middleware.
"""

from __future__ import annotations

import os
import tempfile
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from pathlib import Path

# CRITICAL: set before any project import so the cached Settings see them.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef-0123456789")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("REGISTER_RATE_LIMIT", "1000/minute")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="doregister-uploads-"))

import pytest
from fastapi.testclient import TestClient

from accounts.store import AccountStore
from api.limiter import limiter
from api.main import app, build_services
from auth.credentials import CredentialManager
from auth.identity import IdentityService
from auth.validation import ValidationGate
from core.config import get_settings
from uploads.store import LocalBlobStore

SECRET = os.environ["SECRET_KEY"]
ADMIN_HEADERS = {"X-API-Key": os.environ["ADMIN_API_KEY"]}

# Smallest byte strings that pass the blob store's signature check.
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 32
GIF_BYTES = b"GIF89a" + b"\x00" * 32


# ---------------------------------------------------------------------------
# Store and service fixtures
# ---------------------------------------------------------------------------


def _make_test_store(prefix: str = "accounts") -> AccountStore:
    """Create an AccountStore on a fresh named shared-memory database.

    A uuid in the name keeps every test's data separate even though the
    in-memory databases all live in one process.
    """
    return AccountStore(db_url=f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = _make_test_store()
    yield s
    s.close()


@pytest.fixture
def credentials(store: AccountStore) -> CredentialManager:
    return CredentialManager(SECRET, store, bcrypt_rounds=4)


@pytest.fixture
def gate(store: AccountStore) -> ValidationGate:
    return ValidationGate(store)


@pytest.fixture
def identity(store: AccountStore, credentials: CredentialManager, gate: ValidationGate) -> IdentityService:
    return IdentityService(store, credentials, gate)


def registration(**overrides) -> dict:
    """Return a registration payload that passes every validation rule."""
    payload = {
        "full_name": "A",
        "email": "a@x.com",
        "password": "password1",
        "confirm_password": "password1",
        "phone_number": "123-456",
        "country": "X",
        "interests": ["tech"],
        "profile_photo": "ref1",
    }
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: AccountStore, upload_dir: Path):
    """Return an async context manager that replaces the real lifespan.

    Builds the same services the real lifespan builds, but on the test store
    and a per-test upload directory.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        build_services(app, settings, store)
        app.state.blobs = LocalBlobStore(
            upload_dir,
            url_prefix=settings.upload_url_prefix,
            max_bytes=settings.max_upload_bytes,
        )
        yield

    return test_lifespan


@pytest.fixture
def api_client(tmp_path: Path) -> Generator[tuple[TestClient, AccountStore], None, None]:
    """Yield (client, store) for API integration tests.

    Function-scoped: each test gets its own database and its own cookie jar,
    so session and remember-me state never leak between tests.
    """
    test_store = _make_test_store("api")
    app.router.lifespan_context = _patch_lifespan(test_store, tmp_path / "uploads")
    limiter.reset()

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, test_store

    test_store.close()


def csrf_headers(client: TestClient, action: str) -> dict[str, str]:
    """Fetch the anti-forgery token for action and return it as request headers."""
    resp = client.get("/api/v1/auth/csrf", params={"action": action})
    assert resp.status_code == 200, resp.text
    return {"X-CSRF-Token": resp.json()["token"]}


def register_via_api(client: TestClient, **overrides):
    return client.post(
        "/api/v1/auth/register",
        json=registration(**overrides),
        headers=csrf_headers(client, "register"),
    )


def login_via_api(client: TestClient, email: str, password: str, remember_me: bool = False):
    return client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password, "remember_me": remember_me},
        headers=csrf_headers(client, "login"),
    )
