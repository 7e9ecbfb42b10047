"""
Double-submit-cookie CSRF tokens.

1. GET /auth/csrf-token sets a readable (non-httpOnly) csrf_token cookie and
   returns the same value in the body.
2. Client script echoes it in the X-CSRF-Token header on state-changing requests.
3. The guard accepts the request only when cookie and header are both present,
   identical, well formed, not issued in the future and younger than
   CSRF_TOKEN_TTL.

A cross-origin attacker can neither read the cookie nor attach the custom
header without a CORS preflight, so both barriers must fall for a forgery.
"""
from __future__ import annotations

import hmac
import re
import secrets
import string
import time
from datetime import timedelta
from enum import Enum

CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"
CSRF_TOKEN_TTL = timedelta(hours=4)
CSRF_SECRET_BYTES = 32
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

_BASE36 = string.digits + string.ascii_lowercase
# Lowercase hex secret and lowercase base36 stamp, nothing else
_STAMP_RE = re.compile(r"[0-9a-z]+")
_SECRET_RE = re.compile(r"[0-9a-f]+")


class CsrfFailure(str, Enum):
    MISSING = "CSRF token missing"
    MISMATCH = "CSRF token mismatch"
    MALFORMED = "Invalid CSRF token format"
    EXPIRED = "CSRF token expired"


def _now_ms() -> int:
    return int(time.time() * 1000)


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("negative timestamp")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_csrf_token(now_ms: int | None = None) -> str:
    """`{random hex}.{base36 millisecond timestamp}`"""
    issued = _now_ms() if now_ms is None else now_ms
    return f"{secrets.token_hex(CSRF_SECRET_BYTES)}.{to_base36(issued)}"


def token_timestamp(token: str) -> int | None:
    """Issue time in ms, or None unless the token is exactly `{hex}.{base36}`."""
    parts = token.split(".")
    if len(parts) != 2 or not _SECRET_RE.fullmatch(parts[0]) or not _STAMP_RE.fullmatch(parts[1]):
        return None
    return int(parts[1], 36)


def check_csrf(method: str, cookie_token: str | None, header_token: str | None,
               now_ms: int | None = None, ttl: timedelta = CSRF_TOKEN_TTL) -> CsrfFailure | None:
    """Return None when the request passes, otherwise the reason it failed."""
    if method.upper() in SAFE_METHODS:
        return None
    if not cookie_token or not header_token:
        return CsrfFailure.MISSING
    if not hmac.compare_digest(cookie_token.encode("utf-8"), header_token.encode("utf-8")):
        return CsrfFailure.MISMATCH
    issued = token_timestamp(cookie_token)
    if issued is None:
        return CsrfFailure.MALFORMED
    now = _now_ms() if now_ms is None else now_ms
    if issued > now:
        return CsrfFailure.MALFORMED
    if now - issued > ttl.total_seconds() * 1000:
        return CsrfFailure.EXPIRED
    return None
