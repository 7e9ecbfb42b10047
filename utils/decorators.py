"""
Request-pipeline guards.

- jwt_required():      resolve the caller from the access_token cookie or a Bearer header
- roles_required():    compose after jwt_required and check the caller's role
- require_admin(), require_validator()
- csrf_protect():      double-submit-cookie check for state-changing methods

Guards never mutate the request or flask.g: the resolved Identity is passed to
the handler as the `identity` keyword argument.
"""
from __future__ import annotations

from functools import wraps
from typing import Callable

from flask import request, current_app

from models.user import Role
from services import Services
from services.access_tokens import Identity
from services.errors import Unauthenticated, Forbidden
from utils.cookies import ACCESS_COOKIE
from utils.csrf import CSRF_COOKIE, CSRF_HEADER, CsrfFailure, check_csrf


def current_services() -> Services:
    return current_app.extensions["portal"]


def _extract_token() -> str:
    """The cookie wins when both a cookie and an Authorization header are present."""
    cookie_token = request.cookies.get(ACCESS_COOKIE)
    if cookie_token:
        return cookie_token
    auth = request.headers.get("Authorization", "")
    if not auth:
        raise Unauthenticated("Authentication required")
    scheme, _, token = auth.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("Invalid authorization header format")
    return token.strip()


def authenticate() -> Identity:
    return current_services().tokens.verify(_extract_token())


def jwt_required():
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            identity = authenticate()
            return fn(*args, identity=identity, **kwargs)

        return wrapper

    return decorator


def roles_required(allowed: Callable[[Role], bool], message: str = "Insufficient role"):
    """
    Allow access only if `allowed(identity.role)` holds.
    Deny with 403 otherwise.
    """
    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, identity: Identity, **kwargs):
            if not allowed(identity.role):
                raise Forbidden(message)
            return fn(*args, identity=identity, **kwargs)

        return wrapper

    return decorator


def require_admin():
    return roles_required(lambda role: role.is_admin, "Admin access required")


def require_validator():
    return roles_required(lambda role: role.can_validate, "Validator access required")


def csrf_protect():
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            failure = check_csrf(
                request.method,
                request.cookies.get(CSRF_COOKIE),
                request.headers.get(CSRF_HEADER),
                ttl=current_app.config["CSRF_TOKEN_EXPIRES"],
            )
            if failure is not None:
                expired = failure is CsrfFailure.EXPIRED
                raise Forbidden(failure.value, clear_cookies=(CSRF_COOKIE,) if expired else ())
            return fn(*args, **kwargs)

        return wrapper

    return decorator
