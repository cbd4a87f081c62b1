from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheEntryModel(Base):
    __tablename__ = "cache_entries"

    key = Column(String(200), primary_key=True)
    payload = Column(Text, nullable=False, default="")
    size = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
