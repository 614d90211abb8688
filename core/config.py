"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for DoRegister happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  Explicit wiring: the settings object is read by the composition roots
      (api/main.py lifespan, main.py CLI) which construct the store and the
      services once and hand them around. Services never call get_settings()
      themselves, so tests can build them with any values they like.

  @model_validator(mode="after"): cross-field validation after all fields
      are resolved. Dev mode (DEBUG=true) generates a SECRET_KEY with a
      warning; production mode refuses to start without one.

Security notes:
  SECRET_KEY keys the persistent-login HMAC, the anti-forgery HMAC and the
  signed session cookie. Shorter than 32 chars is rejected outright.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, accounts/, or uploads/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("doregister.config")

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. Field names map to upper-case
    environment variables (secret_key -> SECRET_KEY).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = f"sqlite:///{_PROJECT_ROOT / 'accounts' / 'doregister.db'}"

    # ------------------------------------------------------------------
    # Credentials and sessions
    # ------------------------------------------------------------------

    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    secure_cookies: bool = False
    session_cookie: str = "doregister_session"
    # None keeps the session cookie to the browser session; only the
    # remember-me cookies outlive it.
    session_max_age_seconds: int | None = None
    remember_me_days: int = Field(default=30, ge=1)

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    register_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Profile photo uploads
    # ------------------------------------------------------------------

    upload_dir: Path = _PROJECT_ROOT / "uploads" / "files"
    upload_url_prefix: str = "/uploads"
    max_upload_bytes: int = 5 * 1024 * 1024

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    # Empty string disables every /admin route (403).
    admin_api_key: str = ""
    page_size: int = Field(default=20, ge=1, le=500)

    # ------------------------------------------------------------------
    # Redirect targets returned to the front end
    # ------------------------------------------------------------------

    profile_url: str = "/profile"
    login_url: str = "/login"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions and remember-me cookies will not survive restart.

        Production mode: refuse to start if SECRET_KEY is missing. A random
            key in production would silently log every user out on restart.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @property
    def remember_me_seconds(self) -> int:
        return self.remember_me_days * 24 * 3600


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
