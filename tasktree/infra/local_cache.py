from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from tasktree.domain.errors import StorageQuotaExceeded

from .models import CacheEntryModel

logger = logging.getLogger(__name__)


class LocalCache:
    """Key/value documents stored in the application database.

    Behaves like browser local storage: one serialized document per key and
    a quota shared by every key.
    """

    def __init__(self, session_factory: sessionmaker, quota_bytes: int) -> None:
        self._session_factory = session_factory
        self._quota_bytes = quota_bytes

    @property
    def quota_bytes(self) -> int:
        return self._quota_bytes

    def get(self, key: str) -> Optional[str]:
        with self._session_factory() as session:
            entry = session.get(CacheEntryModel, key)
            return entry.payload if entry else None

    def put(self, key: str, payload: str) -> None:
        size = len(payload.encode("utf-8"))
        with self._session_factory() as session:
            used_elsewhere = session.scalar(
                select(func.coalesce(func.sum(CacheEntryModel.size), 0)).where(
                    CacheEntryModel.key != key
                )
            ) or 0
            if used_elsewhere + size > self._quota_bytes:
                raise StorageQuotaExceeded(used_elsewhere + size, self._quota_bytes)

            entry = session.get(CacheEntryModel, key)
            if entry is None:
                session.add(CacheEntryModel(key=key, payload=payload, size=size))
            else:
                entry.payload = payload
                entry.size = size
            session.commit()
        logger.debug("Cache write key=%s size=%s", key, size)

    def delete(self, key: str) -> None:
        with self._session_factory() as session:
            entry = session.get(CacheEntryModel, key)
            if not entry:
                return
            session.delete(entry)
            session.commit()

    def used_bytes(self) -> int:
        with self._session_factory() as session:
            return session.scalar(select(func.coalesce(func.sum(CacheEntryModel.size), 0))) or 0
