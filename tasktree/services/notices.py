from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Callable

from tasktree.domain.entities import utcnow

logger = logging.getLogger(__name__)


class NoticeLevel(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    title: str
    description: str
    level: NoticeLevel = NoticeLevel.INFO
    created_at: datetime = field(default_factory=utcnow)


_LOG_LEVELS = {
    NoticeLevel.INFO: logging.INFO,
    NoticeLevel.WARNING: logging.WARNING,
    NoticeLevel.ERROR: logging.ERROR,
}


class NoticeBoard:
    """Collects user-visible notices and forwards them to subscribers."""

    def __init__(self, keep: int = 50) -> None:
        self._keep = keep
        self._notices: list[Notice] = []
        self._subscribers: list[Callable[[Notice], None]] = []

    @property
    def notices(self) -> list[Notice]:
        return list(self._notices)

    @property
    def latest(self) -> Notice | None:
        return self._notices[-1] if self._notices else None

    def subscribe(self, callback: Callable[[Notice], None]) -> None:
        self._subscribers.append(callback)

    def post(self, title: str, description: str, level: NoticeLevel = NoticeLevel.INFO) -> Notice:
        notice = Notice(title=title, description=description, level=level)
        self._notices.append(notice)
        del self._notices[:-self._keep]
        logger.log(_LOG_LEVELS[level], "%s: %s", title, description)
        for callback in self._subscribers:
            callback(notice)
        return notice

    def clear(self) -> None:
        self._notices.clear()
