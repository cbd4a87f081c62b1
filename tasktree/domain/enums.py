from __future__ import annotations

from enum import StrEnum


class TaskStatus(StrEnum):
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    BLOCKED = "blocked"
    DONE = "done"


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    TaskPriority.LOW: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.HIGH: 3,
    TaskPriority.URGENT: 4,
}


class RecurrenceRule(StrEnum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class SortKey(StrEnum):
    MANUAL = "manual"
    PRIORITY = "priority"
    DUE_ASC = "due_asc"
    DUE_DESC = "due_desc"


class AutoSaveMode(StrEnum):
    EVERY_CHANGE = "every-change"
    EVERY_5_MINUTES = "every-5-minutes"
    MANUAL = "manual"


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    AWAITING_GRANT = "awaiting-grant"
    CONNECTED = "connected"


class SyncStatus(StrEnum):
    DISCONNECTED = "disconnected"
    SAVING = "saving"
    SYNCED = "synced"
    PENDING = "pending"
