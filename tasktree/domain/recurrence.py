from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta

from .entities import Forest, Task, new_id, utcnow, with_status
from .enums import RecurrenceRule, TaskStatus
from .tree import find_by_id, map_siblings, update_by_id


def toggle_completion(forest: Forest, task_id: str, now: datetime | None = None) -> Forest:
    task = find_by_id(forest, task_id)
    if task is None:
        return forest

    if task.completed:
        return update_by_id(forest, task_id, with_status(task, TaskStatus.TODO))

    if task.recurrence is None or not task.recurrence.active:
        return update_by_id(forest, task_id, with_status(task, TaskStatus.DONE))

    now = now or utcnow()
    next_task = spawn_next_occurrence(task, now)
    finished = replace(with_status(task, TaskStatus.DONE), recurrence=None)
    updated = update_by_id(forest, task_id, finished)
    return map_siblings(updated, task.parent_id, lambda siblings: (next_task,) + siblings)


def spawn_next_occurrence(task: Task, now: datetime) -> Task:
    rule = task.recurrence
    interval = max(int(rule.interval or 1), 1)
    base = task.due_date or now
    return replace(
        _as_template(task, task.parent_id, now),
        due_date=next_due_date(base, rule.type, interval),
        recurrence=rule,
    )


def _as_template(task: Task, parent_id: str | None, now: datetime) -> Task:
    fresh_id = new_id()
    return replace(
        task,
        id=fresh_id,
        parent_id=parent_id,
        status=TaskStatus.TODO,
        notes=(),
        created_at=now,
        sub_tasks=tuple(_as_template(child, fresh_id, now) for child in task.sub_tasks),
    )


def next_due_date(current: datetime, rule: RecurrenceRule, interval: int) -> datetime:
    if rule == RecurrenceRule.DAILY:
        return current + timedelta(days=interval)
    if rule == RecurrenceRule.WEEKLY:
        return current + timedelta(weeks=interval)
    if rule == RecurrenceRule.MONTHLY:
        return _add_months(current, interval)
    return current + timedelta(days=interval)


def _add_months(base: datetime, months: int) -> datetime:
    year = base.year + (base.month - 1 + months) // 12
    month = (base.month - 1 + months) % 12 + 1
    day = min(base.day, _days_in_month(year, month))
    return base.replace(year=year, month=month, day=day)


def _days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - timedelta(days=1)).day
