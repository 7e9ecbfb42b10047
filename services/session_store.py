"""
Refresh-token session store.

Every refresh token handed to a client is an opaque random secret; only its
SHA-256 digest is persisted. Each successful refresh rotates the token: the
presented record is revoked and a fresh one is inserted in the same
transaction. A token presented after it was rotated therefore fails, and that
failure is logged as a replay.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import update, delete, or_

from models.base_model import utcnow
from models.refresh_token import RefreshToken
from utils.security import generate_opaque_secret, hash_secret

logger = logging.getLogger(__name__)

REFRESH_TOKEN_TTL = timedelta(days=7)


@dataclass(frozen=True)
class DeviceInfo:
    """Diagnostic metadata about the client; never used for authorization."""
    user_agent: str | None = None
    ip_address: str | None = None


@dataclass(frozen=True)
class Rotation:
    token: str
    user_id: int


class _RotationLost(Exception):
    """Another request revoked the record between lookup and update."""


class SessionStore:
    def __init__(self, storage, ttl: timedelta = REFRESH_TOKEN_TTL):
        self._storage = storage
        self._ttl = ttl

    def _insert(self, session, user_id: int, device: DeviceInfo | None, now: datetime) -> str:
        device = device or DeviceInfo()
        raw = generate_opaque_secret()
        session.add(RefreshToken(
            token_hash=hash_secret(raw),
            user_id=user_id,
            user_agent=device.user_agent[:512] if device.user_agent else None,
            ip_address=device.ip_address,
            expires_at=now + self._ttl,
            created_at=now,
            updated_at=now,
        ))
        return raw

    def _lookup(self, session, raw: str) -> RefreshToken | None:
        return (
            session.query(RefreshToken)
            .populate_existing()
            .filter(RefreshToken.token_hash == hash_secret(raw))
            .first()
        )

    def create(self, user_id: int, device: DeviceInfo | None = None, now: datetime | None = None) -> str:
        """Persist a new refresh token and return the raw secret (the only time it leaves the store)."""
        now = now or utcnow()
        with self._storage.transaction() as session:
            raw = self._insert(session, user_id, device, now)
        return raw

    def validate(self, raw: str, now: datetime | None = None) -> RefreshToken | None:
        if not raw:
            return None
        now = now or utcnow()
        record = self._lookup(self._storage.get_session(), raw)
        if record is None or not record.is_valid(now):
            return None
        return record

    def revoke(self, raw: str, now: datetime | None = None) -> bool:
        """Revoke one token. Revoking an unknown or already revoked token is a no-op."""
        if not raw:
            return False
        now = now or utcnow()
        with self._storage.transaction() as session:
            result = session.execute(
                update(RefreshToken)
                .where(RefreshToken.token_hash == hash_secret(raw), RefreshToken.revoked_at.is_(None))
                .values(revoked_at=now, updated_at=now)
            )
        return result.rowcount > 0

    def revoke_all(self, user_id: int, now: datetime | None = None) -> int:
        now = now or utcnow()
        with self._storage.transaction() as session:
            result = session.execute(
                update(RefreshToken)
                .where(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
                .values(revoked_at=now, updated_at=now)
            )
        if result.rowcount:
            logger.info("revoked %d refresh token(s) for user %s", result.rowcount, user_id)
        return result.rowcount

    def rotate(self, raw: str, device: DeviceInfo | None = None, now: datetime | None = None) -> Rotation | None:
        """
        Exchange a valid refresh token for a new one.

        Revocation of the old record is a compare-and-set on revoked_at IS NULL,
        so of two concurrent rotations of the same token exactly one succeeds.
        Nothing is written when validation fails.
        """
        if not raw:
            return None
        now = now or utcnow()
        try:
            with self._storage.transaction() as session:
                record = self._lookup(session, raw)
                if record is None:
                    return None
                if record.revoked_at is not None:
                    logger.warning(
                        "refresh token replay detected: token %s of user %s was already revoked",
                        record.id, record.user_id,
                    )
                    return None
                if record.expires_at <= now:
                    return None
                user_id = record.user_id
                result = session.execute(
                    update(RefreshToken)
                    .where(RefreshToken.id == record.id, RefreshToken.revoked_at.is_(None))
                    .values(revoked_at=now, updated_at=now)
                )
                if result.rowcount != 1:
                    raise _RotationLost()
                new_raw = self._insert(session, user_id, device, now)
        except _RotationLost:
            logger.warning("refresh token replay detected: concurrent rotation of a token of user %s", user_id)
            return None
        return Rotation(token=new_raw, user_id=user_id)

    def list_active(self, user_id: int, now: datetime | None = None) -> list[RefreshToken]:
        now = now or utcnow()
        return (
            self._storage.get_session().query(RefreshToken)
            .populate_existing()
            .filter(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.expires_at > now,
            )
            .order_by(RefreshToken.created_at.desc(), RefreshToken.id.desc())
            .all()
        )

    def sweep_expired(self, now: datetime | None = None) -> int:
        """Hard-delete revoked or expired rows. Maintenance only; never called on the request path."""
        now = now or utcnow()
        with self._storage.transaction() as session:
            result = session.execute(
                delete(RefreshToken)
                .where(or_(RefreshToken.revoked_at.is_not(None), RefreshToken.expires_at < now))
                .execution_options(synchronize_session=False)
            )
        return result.rowcount
