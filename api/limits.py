"""
IP-keyed request rate limits (Flask-Limiter).

Every route shares a RATE_LIMIT_MAX-per-minute budget per client address,
except the session upkeep endpoints the frontend calls on every page load.
Login has its own, tighter budget (RATE_LIMIT_LOGIN) against password guessing.
Storage comes from RATELIMIT_STORAGE_URI; the in-memory default is per process.
"""
from flask import current_app, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

EXEMPT_PATHS = ("/auth/csrf-token", "/auth/me", "/auth/refresh", "/health")


def default_limit() -> str:
    return f"{current_app.config['RATE_LIMIT_MAX']} per minute"


def login_limit() -> str:
    return current_app.config["RATE_LIMIT_LOGIN"]


def is_exempt() -> bool:
    return request.path.startswith(EXEMPT_PATHS)


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[default_limit],
    default_limits_exempt_when=is_exempt,
)
