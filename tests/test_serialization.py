from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from tasktree.domain import tree
from tasktree.domain.entities import Attachment, Recurrence, Task
from tasktree.domain.enums import RecurrenceRule, TaskPriority, TaskStatus
from tasktree.domain.errors import ImportValidationError
from tasktree.infra import serialization
from tasktree.infra.validation import MAX_IMPORT_FILE_SIZE, parse_task_document, sanitize_text

from conftest import FIXED_NOW, make_tree


def _document(forest) -> str:
    return serialization.dumps_forest(forest, indent=2)


def test_dates_are_written_as_tagged_objects() -> None:
    task = Task(id="t", title="T", due_date=FIXED_NOW, created_at=FIXED_NOW)

    data = serialization.task_to_dict(task)

    assert data["dueDate"] == {"__type": "Date", "value": "2025-01-01T09:00:00+00:00"}
    assert data["createdAt"]["__type"] == "Date"
    assert data["subTasks"] == []


def test_full_document_survives_export_and_import() -> None:
    forest = make_tree()
    forest, _ = tree.add_note(forest, "leaf", "remember this")
    forest = tree.add_attachment(
        forest,
        "child",
        Attachment(name="plan.txt", mime_type="text/plain", url="data:,plan", size=4),
    )
    forest = tree.update_by_id(
        forest,
        "other",
        Task(
            id="other",
            title="Other",
            status=TaskStatus.DONE,
            priority=TaskPriority.URGENT,
            due_date=datetime(2025, 6, 1, 12, tzinfo=timezone.utc),
            label_ids=frozenset({"l1", "l2"}),
            recurrence=Recurrence(RecurrenceRule.MONTHLY, 2),
        ),
    )

    assert parse_task_document(_document(forest)) == forest
    assert serialization.loads_forest(_document(forest)) == forest


def test_naive_dates_are_read_as_utc() -> None:
    value = serialization.decode_date({"__type": "Date", "value": "2025-01-01T09:00:00"})

    assert value == FIXED_NOW


def test_untagged_date_is_rejected() -> None:
    with pytest.raises(ValueError):
        serialization.decode_date("2025-01-01")


def test_import_rederives_completed_from_status() -> None:
    data = serialization.encode_forest((Task(id="t", title="T", status=TaskStatus.DONE),))
    data[0]["completed"] = False

    forest = parse_task_document(json.dumps(data))

    assert forest[0].completed is True


def test_import_rejects_tasks_nested_too_deep() -> None:
    data = serialization.encode_forest(make_tree())
    leaf = data[0]["subTasks"][0]["subTasks"][0]["subTasks"][0]
    leaf["subTasks"] = [
        {**leaf, "id": "too-deep", "parentId": "leaf", "depth": 4, "subTasks": []}
    ]

    with pytest.raises(ImportValidationError):
        parse_task_document(json.dumps(data))


def test_import_rejects_depth_that_disagrees_with_nesting() -> None:
    data = serialization.encode_forest(make_tree())
    data[0]["subTasks"][0]["depth"] = 2

    with pytest.raises(ImportValidationError) as excinfo:
        parse_task_document(json.dumps(data))

    assert any("depth" in problem for problem in excinfo.value.errors)


def test_import_rejects_duplicate_ids() -> None:
    data = serialization.encode_forest(make_tree())
    data[1]["id"] = "leaf"

    with pytest.raises(ImportValidationError) as excinfo:
        parse_task_document(json.dumps(data))

    assert any("duplicate" in problem for problem in excinfo.value.errors)


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        json.dumps({"tasks": []}),
        json.dumps([{"id": "x"}]),
        json.dumps([{"id": "bad id!", "title": "x"}]),
    ],
)
def test_import_rejects_malformed_documents(raw: str) -> None:
    with pytest.raises(ImportValidationError):
        parse_task_document(raw)


def test_import_rejects_oversized_documents() -> None:
    raw = " " * (MAX_IMPORT_FILE_SIZE + 1)

    with pytest.raises(ImportValidationError, match="10MB"):
        parse_task_document(raw)


def test_import_strips_script_content() -> None:
    forest = (
        Task(
            id="t",
            title='Hello<script>alert("x")</script>',
            description='<a href="javascript:void(0)" onclick="steal()">link</a>',
        ),
    )

    imported = parse_task_document(_document(forest))

    assert imported[0].title == "Hello"
    assert "javascript:" not in imported[0].description
    assert "onclick" not in imported[0].description


def test_sanitize_text_leaves_plain_text_alone() -> None:
    assert sanitize_text("Buy milk & eggs") == "Buy milk & eggs"


@pytest.mark.parametrize(
    "field, value",
    [("depth", "0"), ("completed", "yes"), ("title", 5), ("labelIds", "l1")],
)
def test_import_rejects_loosely_typed_fields(field: str, value) -> None:
    data = serialization.encode_forest((Task(id="t", title="T"),))
    data[0][field] = value

    with pytest.raises(ImportValidationError):
        parse_task_document(json.dumps(data))


def test_import_rejects_malformed_note_and_attachment_ids() -> None:
    forest, _ = tree.add_note((Task(id="t", title="T"),), "t", "hello")
    data = serialization.encode_forest(forest)
    data[0]["notes"][0]["id"] = "note id with spaces"

    with pytest.raises(ImportValidationError):
        parse_task_document(json.dumps(data))

    data = serialization.encode_forest(forest)
    data[0]["notes"][0]["originTaskId"] = "../t"

    with pytest.raises(ImportValidationError):
        parse_task_document(json.dumps(data))


def test_import_rejects_bytes_that_are_not_utf8() -> None:
    with pytest.raises(ImportValidationError):
        parse_task_document(b'[{"id": "a", "title": "\xff\xfe"}]')


def test_import_accepts_utf8_bytes_with_bom() -> None:
    raw = "\ufeff".encode("utf-8") + _document((Task(id="t", title="Café"),)).encode("utf-8")

    assert parse_task_document(raw)[0].title == "Café"
