from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from tasktree.domain.entities import Forest, Note, Task

_NON_WORD = re.compile(r"[^\w\s]")


@dataclass(frozen=True)
class NotebookEntry:
    id: str
    kind: str  # "task" | "note"
    title: str
    content: str
    task: Task
    project_id: str | None
    label_ids: frozenset[str]
    created_at: datetime
    keywords: tuple[str, ...]
    depth: int
    parent_id: str | None
    note: Note | None = None

    @property
    def has_subtasks(self) -> bool:
        return self.kind == "task" and bool(self.task.sub_tasks)


def extract_keywords(text: str) -> tuple[str, ...]:
    words = _NON_WORD.sub(" ", text.lower()).split()
    return tuple(dict.fromkeys(word for word in words if len(word) > 3))


def _entries_for(task: Task, parent_id: str | None, depth: int) -> list[NotebookEntry]:
    entries = [
        NotebookEntry(
            id=f"task-{task.id}",
            kind="task",
            title=task.title,
            content=task.description,
            task=task,
            project_id=task.project_id,
            label_ids=task.label_ids,
            created_at=task.created_at,
            keywords=extract_keywords(f"{task.title} {task.description}"),
            depth=depth,
            parent_id=parent_id,
        )
    ]
    for note in task.notes:
        entries.append(
            NotebookEntry(
                id=f"note-{note.id}",
                kind="note",
                title=task.title,
                content=note.content,
                task=task,
                note=note,
                project_id=task.project_id,
                label_ids=task.label_ids,
                created_at=note.created_at,
                keywords=extract_keywords(note.content),
                depth=depth,
                parent_id=parent_id,
            )
        )
    for child in task.sub_tasks:
        entries.extend(_entries_for(child, task.id, depth + 1))
    return entries


def build_entries(forest: Forest) -> list[NotebookEntry]:
    entries = [entry for task in forest for entry in _entries_for(task, None, 0)]
    return sorted(entries, key=lambda entry: entry.created_at, reverse=True)


def relatedness(entry: NotebookEntry, other: NotebookEntry) -> int:
    other_keywords = set(other.keywords)
    shared_keywords = sum(1 for keyword in entry.keywords if keyword in other_keywords)
    same_project = entry.project_id is not None and entry.project_id == other.project_id
    shared_labels = len(entry.label_ids & other.label_ids)
    return shared_keywords * 2 + (3 if same_project else 0) + shared_labels * 2


def find_related(
    entry: NotebookEntry, entries: list[NotebookEntry], limit: int = 5
) -> list[NotebookEntry]:
    scored = [
        (relatedness(entry, other), other) for other in entries if other.id != entry.id
    ]
    scored = [item for item in scored if item[0] > 0]
    scored.sort(key=lambda item: item[0], reverse=True)
    return [other for _, other in scored[:limit]]


def search_entries(entries: list[NotebookEntry], query: str) -> list[NotebookEntry]:
    if not query.strip():
        return entries
    query = query.lower()
    return [
        entry
        for entry in entries
        if query in entry.title.lower()
        or query in entry.content.lower()
        or any(query in keyword for keyword in entry.keywords)
    ]
