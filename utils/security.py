"""
security helpers:
- Argon2 password hashing via argon2-cffi
- Opaque refresh-token secrets and their one-way digests
"""
from __future__ import annotations

import hashlib
import secrets
from functools import lru_cache

from argon2 import PasswordHasher
from argon2.exceptions import VerificationError, InvalidHashError

# Entropy of a refresh-token secret, in bytes
REFRESH_SECRET_BYTES = 48

ph = PasswordHasher()


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """ Verify a plaintext password using argon2
    """
    try:
        return ph.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return ph.hash(secrets.token_urlsafe(16))


def burn_password_check(password: str) -> None:
    """Spend the same work as a real verification; used when the email is unknown."""
    verify_password(password, _dummy_hash())


def generate_opaque_secret() -> str:
    """URL-safe refresh-token secret drawn from the OS CSPRNG."""
    return secrets.token_urlsafe(REFRESH_SECRET_BYTES)


def hash_secret(secret: str) -> str:
    """SHA-256 hex digest of a secret. Used for equality lookups only, never for passwords."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()
