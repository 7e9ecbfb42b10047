"""
Auth cookie helpers.

access_token   httpOnly, SameSite=Lax, 1h
refresh_token  httpOnly, SameSite=Lax, 7d, value signed with REFRESH_TOKEN_SECRET
csrf_token     readable by script, SameSite=Strict, 4h
"""
from __future__ import annotations

from flask import current_app, request
from itsdangerous import Signer, BadSignature

from utils.csrf import CSRF_COOKIE

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"
AUTH_COOKIES = (ACCESS_COOKIE, REFRESH_COOKIE)


def _signer() -> Signer:
    return Signer(current_app.config["REFRESH_TOKEN_SECRET"], salt="refresh-token-cookie")


def _base_options() -> dict:
    return {
        "path": "/",
        "domain": current_app.config.get("COOKIE_DOMAIN"),
        "secure": bool(current_app.config.get("COOKIE_SECURE")),
    }


def set_auth_cookies(response, access_token: str, refresh_token: str | None = None):
    config = current_app.config
    response.set_cookie(
        ACCESS_COOKIE,
        access_token,
        max_age=int(config["ACCESS_TOKEN_EXPIRES"].total_seconds()),
        httponly=True,
        samesite="Lax",
        **_base_options(),
    )
    if refresh_token is not None:
        response.set_cookie(
            REFRESH_COOKIE,
            _signer().sign(refresh_token).decode("utf-8"),
            max_age=int(config["REFRESH_TOKEN_EXPIRES"].total_seconds()),
            httponly=True,
            samesite="Lax",
            **_base_options(),
        )
    return response


def set_csrf_cookie(response, token: str):
    response.set_cookie(
        CSRF_COOKIE,
        token,
        max_age=int(current_app.config["CSRF_TOKEN_EXPIRES"].total_seconds()),
        httponly=False,
        samesite="Strict",
        **_base_options(),
    )
    return response


def clear_cookie(response, name: str):
    options = _base_options()
    response.delete_cookie(name, path=options["path"], domain=options["domain"])
    return response


def clear_auth_cookies(response):
    for name in AUTH_COOKIES:
        clear_cookie(response, name)
    return response


def read_refresh_cookie() -> str | None:
    """Raw refresh secret from the request cookie, or None if absent or tampered with."""
    value = request.cookies.get(REFRESH_COOKIE)
    if not value:
        return None
    try:
        return _signer().unsign(value).decode("utf-8")
    except BadSignature:
        return None
