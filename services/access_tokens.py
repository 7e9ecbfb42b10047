"""
Short-lived access tokens: HS256 JWTs via PyJWT.

Access tokens are not individually revocable. Logging out revokes the refresh
token, after which no new access token can be minted, but one already issued
stays valid until its exp.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt

from models.user import Role, VerificationStatus
from services.errors import Unauthenticated

ACCESS_TOKEN_TTL = timedelta(hours=1)
MIN_SECRET_BYTES = 16


@dataclass(frozen=True)
class Identity:
    """Resolved caller identity, handed to protected handlers as the `identity` argument."""
    id: int
    email: str
    name: str
    role: Role
    verification_status: VerificationStatus

    @classmethod
    def from_user(cls, user) -> "Identity":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=Role(user.role),
            verification_status=VerificationStatus(user.verification_status),
        )

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "Identity":
        return cls(
            id=int(claims["sub"]),
            email=str(claims["email"]),
            name=str(claims["name"]),
            role=Role(claims["role"]),
            verification_status=VerificationStatus(claims["verificationStatus"]),
        )

    def to_claims(self) -> Dict[str, Any]:
        return {
            "sub": str(self.id),
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role.value,
            "verificationStatus": self.verification_status.value,
        }


class AccessTokenIssuer:
    def __init__(self, secret: str, algorithm: str = "HS256", ttl: timedelta = ACCESS_TOKEN_TTL,
                 issuer: str = "municipal-portal"):
        if not secret or len(secret.encode("utf-8")) < MIN_SECRET_BYTES:
            raise ValueError(f"access token secret must be at least {MIN_SECRET_BYTES} bytes")
        self._secret = secret
        self._algorithm = algorithm
        self._ttl = ttl
        self._issuer = issuer

    @property
    def expires_in(self) -> int:
        return int(self._ttl.total_seconds())

    def issue(self, user, now: datetime | None = None) -> str:
        """Sign the user's current claims. `user` is a User row or an Identity."""
        now = now or datetime.now(timezone.utc)
        identity = user if isinstance(user, Identity) else Identity.from_user(user)
        payload = identity.to_claims()
        payload.update({
            "iss": self._issuer,
            "iat": int(now.timestamp()),
            "exp": int((now + self._ttl).timestamp()),
            "type": "access",
        })
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> Identity:
        """
        Decode and validate a token. Raises Unauthenticated on a bad signature,
        expiry, wrong token type or malformed claims.
        """
        if not token:
            raise Unauthenticated()
        try:
            decoded = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                issuer=self._issuer,
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.InvalidTokenError:
            raise Unauthenticated("Invalid or expired token")

        if decoded.get("type") != "access":
            raise Unauthenticated("Invalid or expired token")
        try:
            return Identity.from_claims(decoded)
        except (KeyError, ValueError, TypeError):
            raise Unauthenticated("Invalid or expired token")
