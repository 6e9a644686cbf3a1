"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted as middleware) and by the auth routes
(@limiter.limit() on login and registration). One shared instance means one
counter store; per-module limiters would each count separately and never trip.

Limits are read from settings at request time (LOGIN_RATE_LIMIT,
REGISTER_RATE_LIMIT) so deployments can tune them without code changes.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_limit() -> str:
    return get_settings().login_rate_limit


def register_limit() -> str:
    return get_settings().register_rate_limit
