"""Validation and sanitizing of task documents coming from outside.

Imports and external-file loads go through here. A document is accepted
whole or rejected whole; nothing is partially applied.
"""
from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any, Iterator, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from tasktree.domain.entities import MAX_DEPTH, Forest
from tasktree.domain.errors import ImportValidationError

from .serialization import decode_forest

MAX_IMPORT_FILE_SIZE = 10 * 1024 * 1024
MAX_STRING_LENGTH = 10000
MAX_TITLE_LENGTH = 500
MAX_ID_LENGTH = 100
MAX_ROOT_TASKS = 1000

ID_PATTERN = r"^[A-Za-z0-9_-]{1,100}$"

_SCRIPT_BLOCK = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"""on\w+\s*=\s*["'][^"']*["']""", re.IGNORECASE)
_JS_SCHEME = re.compile(r"javascript:", re.IGNORECASE)


class TaggedDate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, strict=True)

    kind: Literal["Date"] = Field(alias="__type")
    value: str

    @field_validator("value")
    @classmethod
    def _iso(cls, value: str) -> str:
        datetime.fromisoformat(value)
        return value


class AttachmentDocument(BaseModel):
    model_config = ConfigDict(strict=True)

    id: str = Field(pattern=ID_PATTERN)
    name: str = Field(max_length=MAX_TITLE_LENGTH)
    type: str = Field(max_length=MAX_ID_LENGTH)
    url: str = Field(max_length=MAX_STRING_LENGTH)
    size: int = Field(ge=0)
    createdAt: TaggedDate


class NoteDocument(BaseModel):
    model_config = ConfigDict(strict=True)

    id: str = Field(pattern=ID_PATTERN)
    content: str = Field(max_length=MAX_STRING_LENGTH)
    attachments: list[AttachmentDocument] = Field(max_length=50)
    createdAt: TaggedDate
    updatedAt: TaggedDate
    originTaskId: str = Field(pattern=ID_PATTERN)
    originTaskTitle: str = Field(max_length=MAX_TITLE_LENGTH)


class RecurrenceDocument(BaseModel):
    model_config = ConfigDict(strict=True)

    type: Literal["none", "daily", "weekly", "monthly"]
    interval: int = Field(ge=1, le=365)


class TaskDocument(BaseModel):
    model_config = ConfigDict(strict=True)

    id: str = Field(pattern=ID_PATTERN)
    title: str = Field(max_length=MAX_TITLE_LENGTH)
    description: str = Field(max_length=MAX_STRING_LENGTH)
    status: Literal["todo", "in-progress", "blocked", "done"]
    priority: Literal["low", "medium", "high", "urgent"] = "medium"
    dueDate: Optional[TaggedDate]
    completed: bool
    notes: list[NoteDocument] = Field(max_length=100)
    attachments: list[AttachmentDocument] = Field(max_length=50)
    subTasks: list["TaskDocument"] = Field(max_length=100)
    parentId: Optional[str] = Field(max_length=MAX_ID_LENGTH)
    depth: int = Field(ge=0, le=MAX_DEPTH)
    createdAt: TaggedDate
    projectId: Optional[str] = Field(max_length=MAX_ID_LENGTH)
    labelIds: list[str] = Field(default_factory=list, max_length=20)
    recurrence: Optional[RecurrenceDocument] = None

    @field_validator("labelIds")
    @classmethod
    def _label_lengths(cls, value: list[str]) -> list[str]:
        if any(len(label) > MAX_ID_LENGTH for label in value):
            raise ValueError(f"label ids are limited to {MAX_ID_LENGTH} characters")
        return value


TaskDocument.model_rebuild()

_FOREST_ADAPTER = TypeAdapter(list[TaskDocument])


def sanitize_text(value: str) -> str:
    value = _SCRIPT_BLOCK.sub("", value)
    value = _EVENT_HANDLER.sub("", value)
    return _JS_SCHEME.sub("", value)


def _sanitize(data: dict[str, Any]) -> dict[str, Any]:
    return {
        **data,
        "title": sanitize_text(data["title"]),
        "description": sanitize_text(data["description"]),
        "notes": [
            {
                **note,
                "content": sanitize_text(note["content"]),
                "originTaskTitle": sanitize_text(note["originTaskTitle"]),
            }
            for note in data["notes"]
        ],
        "subTasks": [_sanitize(child) for child in data["subTasks"]],
    }


def _structural_problems(
    documents: list[TaskDocument],
    level: int = 0,
    parent_id: str | None = None,
    seen: set[str] | None = None,
) -> Iterator[str]:
    seen = set() if seen is None else seen
    for doc in documents:
        if doc.id in seen:
            yield f"duplicate task id {doc.id}"
        seen.add(doc.id)
        if level > MAX_DEPTH:
            yield f"task {doc.id} is nested {level} levels deep (max {MAX_DEPTH})"
        if doc.depth != level:
            yield f"task {doc.id} declares depth {doc.depth} but is nested at depth {level}"
        if doc.parentId != parent_id:
            yield f"task {doc.id} declares parent {doc.parentId} but is nested under {parent_id}"
        yield from _structural_problems(doc.subTasks, level + 1, doc.id, seen)


def parse_task_document(raw: str | bytes) -> Forest:
    size = len(raw.encode("utf-8", errors="replace") if isinstance(raw, str) else raw)
    if size > MAX_IMPORT_FILE_SIZE:
        raise ImportValidationError("Import file must be less than 10MB.")

    try:
        text = raw.decode("utf-8-sig") if isinstance(raw, bytes) else raw
        data = json.loads(text)
    except ValueError as exc:
        raise ImportValidationError("Invalid file format. Please use a valid tasks JSON file.") from exc

    if not isinstance(data, list) or len(data) > MAX_ROOT_TASKS:
        raise ImportValidationError(f"Expected a list of at most {MAX_ROOT_TASKS} tasks.")

    try:
        documents = _FOREST_ADAPTER.validate_python(data)
    except ValidationError as exc:
        errors = [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in exc.errors()]
        raise ImportValidationError("The file contains invalid task data.", errors) from exc

    problems = list(_structural_problems(documents))
    if problems:
        raise ImportValidationError("The file contains an inconsistent task tree.", problems)

    cleaned = [_sanitize(doc.model_dump(by_alias=True)) for doc in documents]
    return decode_forest(cleaned)
