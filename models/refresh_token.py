"""
RefreshToken model: one row per issued refresh token so tokens can be rotated and revoked.
Fields:
- token_hash (unique) - SHA-256 digest of the opaque secret; the secret itself is never stored
- user_id (Integer) - FK to users.id, cascades on user deletion
- user_agent, ip_address - diagnostic device metadata
- expires_at, created_at, revoked_at (nullable)

A record is valid iff revoked_at IS NULL and expires_at > now.
"""
from datetime import datetime

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Index

from models.base_model import BaseModel, Base


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"

    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user_agent = Column(String(512), nullable=True)
    ip_address = Column(String(64), nullable=True)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_refresh_tokens_user_id", "user_id"),
    )

    def is_valid(self, now: datetime) -> bool:
        return self.revoked_at is None and self.expires_at > now

    def __repr__(self):
        return f"<RefreshToken {self.id} user={self.user_id} revoked={self.revoked_at is not None}>"
