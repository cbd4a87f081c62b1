from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .enums import SortKey, TaskPriority


@dataclass(frozen=True)
class TaskFilters:
    project_id: Optional[str] = None
    inbox_only: bool = False
    priority: Optional[TaskPriority] = None
    label_ids: frozenset[str] = frozenset()
    search: str | None = None
    sort: SortKey = SortKey.MANUAL
