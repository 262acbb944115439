"""
SQLAlchemy Models for the Local State Store
===========================================

One row per storage key. Each tool keeps its whole session collection as a
single JSON blob under a fixed key; usage counters and the identity record
live under their own keys.

Supports both PostgreSQL and SQLite via SQLAlchemy.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow():
    return datetime.now(timezone.utc)


class LocalStateEntry(Base):
    """Key/value row holding one JSON blob"""
    __tablename__ = "local_state"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return f"<LocalStateEntry key={self.key!r} size={len(self.value or '')}>"
