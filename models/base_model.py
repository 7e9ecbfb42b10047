#!/usr/bin/env python3
"""
Shared SQLAlchemy base and mixins for the municipal portal auth core.

- Integer autoincrement primary key
- created_at / updated_at timestamps, stored as naive UTC

Timestamps are assigned in Python (utcnow) rather than with server defaults so
that ordering by created_at keeps sub-second precision on SQLite.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, DateTime
from sqlalchemy.orm import declarative_base

# Declarative base for all models
Base = declarative_base()


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the form SQLite round-trips)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BaseModel:
    """
    Base mixin for all persistent models: id, created_at, updated_at.
    Persistence is done through DBStorage; models never reach for a session themselves.
    """

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __init__(self, *args, **kwargs):
        """Allow attribute initialization via kwargs."""
        for key, value in kwargs.items():
            if key != "__class__":
                setattr(self, key, value)

    def __str__(self) -> str:
        return f"[{self.__class__.__name__}] ({self.id}) {self.__dict__}"

