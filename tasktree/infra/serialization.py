"""JSON codec shared by the local cache, the external file and export/import.

JSON has no date type, so every datetime is written as a tagged object
``{"__type": "Date", "value": "<ISO-8601>"}`` and read back from it.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from tasktree.domain.entities import Attachment, Forest, Note, Recurrence, Task
from tasktree.domain.enums import RecurrenceRule, TaskPriority, TaskStatus

DATE_TAG = "Date"


def encode_date(value: datetime | None) -> dict[str, str] | None:
    if value is None:
        return None
    return {"__type": DATE_TAG, "value": value.isoformat()}


def decode_date(value: Any) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, dict) or value.get("__type") != DATE_TAG:
        raise ValueError(f"Expected a tagged date, got {value!r}")
    parsed = datetime.fromisoformat(value["value"])
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _attachment_to_dict(item: Attachment) -> dict[str, Any]:
    return {
        "id": item.id,
        "name": item.name,
        "type": item.mime_type,
        "url": item.url,
        "size": item.size,
        "createdAt": encode_date(item.created_at),
    }


def _attachment_from_dict(data: dict[str, Any]) -> Attachment:
    return Attachment(
        id=data["id"],
        name=data["name"],
        mime_type=data["type"],
        url=data["url"],
        size=int(data["size"]),
        created_at=decode_date(data["createdAt"]),
    )


def _note_to_dict(note: Note) -> dict[str, Any]:
    return {
        "id": note.id,
        "content": note.content,
        "attachments": [_attachment_to_dict(item) for item in note.attachments],
        "createdAt": encode_date(note.created_at),
        "updatedAt": encode_date(note.updated_at),
        "originTaskId": note.origin_task_id,
        "originTaskTitle": note.origin_task_title,
    }


def _note_from_dict(data: dict[str, Any]) -> Note:
    return Note(
        id=data["id"],
        content=data["content"],
        attachments=tuple(_attachment_from_dict(item) for item in data.get("attachments", [])),
        created_at=decode_date(data["createdAt"]),
        updated_at=decode_date(data["updatedAt"]),
        origin_task_id=data["originTaskId"],
        origin_task_title=data["originTaskTitle"],
    )


def task_to_dict(task: Task) -> dict[str, Any]:
    recurrence = None
    if task.recurrence is not None:
        recurrence = {"type": task.recurrence.type.value, "interval": task.recurrence.interval}
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "status": task.status.value,
        "priority": task.priority.value,
        "dueDate": encode_date(task.due_date),
        "completed": task.completed,
        "notes": [_note_to_dict(note) for note in task.notes],
        "attachments": [_attachment_to_dict(item) for item in task.attachments],
        "subTasks": [task_to_dict(child) for child in task.sub_tasks],
        "parentId": task.parent_id,
        "depth": task.depth,
        "createdAt": encode_date(task.created_at),
        "projectId": task.project_id,
        "labelIds": sorted(task.label_ids),
        "recurrence": recurrence,
    }


def task_from_dict(data: dict[str, Any]) -> Task:
    recurrence = data.get("recurrence")
    return Task(
        id=data["id"],
        title=data["title"],
        description=data.get("description", ""),
        status=TaskStatus(data["status"]),
        priority=TaskPriority(data.get("priority") or TaskPriority.MEDIUM.value),
        due_date=decode_date(data.get("dueDate")),
        notes=tuple(_note_from_dict(note) for note in data.get("notes", [])),
        attachments=tuple(_attachment_from_dict(item) for item in data.get("attachments", [])),
        sub_tasks=tuple(task_from_dict(child) for child in data.get("subTasks", [])),
        parent_id=data.get("parentId"),
        depth=int(data.get("depth", 0)),
        created_at=decode_date(data["createdAt"]),
        project_id=data.get("projectId"),
        label_ids=frozenset(data.get("labelIds") or ()),
        recurrence=(
            Recurrence(type=RecurrenceRule(recurrence["type"]), interval=int(recurrence["interval"]))
            if recurrence
            else None
        ),
    )


def encode_forest(forest: Forest) -> list[dict[str, Any]]:
    return [task_to_dict(task) for task in forest]


def decode_forest(data: list[dict[str, Any]]) -> Forest:
    return tuple(task_from_dict(item) for item in data)


def dumps_forest(forest: Forest, indent: int | None = None) -> str:
    return json.dumps(encode_forest(forest), ensure_ascii=False, indent=indent)


def loads_forest(text: str) -> Forest:
    data = json.loads(text)
    if not isinstance(data, list):
        raise ValueError("Task document must be a JSON list")
    return decode_forest(data)
