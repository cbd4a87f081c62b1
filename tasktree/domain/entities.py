from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional

from .enums import RecurrenceRule, TaskPriority, TaskStatus

MAX_DEPTH = 3


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Attachment:
    name: str
    mime_type: str
    url: str
    size: int
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Note:
    content: str
    origin_task_id: str
    origin_task_title: str
    id: str = field(default_factory=new_id)
    attachments: tuple[Attachment, ...] = ()
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Recurrence:
    type: RecurrenceRule
    interval: int = 1

    @property
    def active(self) -> bool:
        return self.type != RecurrenceRule.NONE


@dataclass(frozen=True)
class Task:
    title: str
    id: str = field(default_factory=new_id)
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    completed: bool = False
    due_date: Optional[datetime] = None
    notes: tuple[Note, ...] = ()
    attachments: tuple[Attachment, ...] = ()
    sub_tasks: tuple["Task", ...] = ()
    parent_id: str | None = None
    depth: int = 0
    created_at: datetime = field(default_factory=utcnow)
    project_id: str | None = None
    label_ids: frozenset[str] = frozenset()
    recurrence: Optional[Recurrence] = None

    def __post_init__(self) -> None:
        # completed is derived from status on every construction path
        object.__setattr__(self, "completed", self.status == TaskStatus.DONE)
        # naive datetimes are taken as UTC
        for name in ("due_date", "created_at"):
            value = getattr(self, name)
            if value is not None and value.tzinfo is None:
                object.__setattr__(self, name, value.replace(tzinfo=timezone.utc))


Forest = tuple[Task, ...]


def with_status(task: Task, status: TaskStatus) -> Task:
    return replace(task, status=status)
