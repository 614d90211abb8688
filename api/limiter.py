"""
api/limiter.py -- Shared slowapi rate limiter and the configured limit values.

Import this in api/main.py (to mount as middleware) and in the routers (to
apply per-route limits with @limiter.limit()). A single shared instance keeps
one in-memory counter store for all routes; separate instances per module
would each count in isolation and never trigger.

The limit values are callables so slowapi reads LOGIN_RATE_LIMIT /
REGISTER_RATE_LIMIT from settings when a request arrives rather than freezing
whatever was configured at import time.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_limit() -> str:
    return get_settings().login_rate_limit


def register_limit() -> str:
    return get_settings().register_rate_limit
