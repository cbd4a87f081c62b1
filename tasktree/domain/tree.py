"""Pure operations over the task forest.

Every function takes a forest (a tuple of root tasks) and returns a new one.
Only the path from the root to the edited node is rebuilt; untouched
subtrees are shared between the old and the new forest. When nothing
matches, the input forest object itself is returned so callers can detect
no-ops with ``is``.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Iterable, Iterator

from .entities import MAX_DEPTH, Attachment, Forest, Note, Task, utcnow
from .errors import DepthLimitError, TreeError

_KEEP = object()


@dataclass(frozen=True)
class CompletionCount:
    total: int
    completed: int

    @property
    def percentage(self) -> int:
        if not self.total:
            return 0
        return round(self.completed / self.total * 100)


def walk(forest: Iterable[Task]) -> Iterator[Task]:
    for task in forest:
        yield task
        yield from walk(task.sub_tasks)


def find_by_id(forest: Forest, task_id: str) -> Task | None:
    for task in walk(forest):
        if task.id == task_id:
            return task
    return None


def collect_ids(task: Task) -> set[str]:
    return {node.id for node in walk((task,))}


def root_of(forest: Forest, task_id: str) -> Task | None:
    for root in forest:
        if find_by_id((root,), task_id) is not None:
            return root
    return None


def subtree_height(task: Task) -> int:
    if not task.sub_tasks:
        return 0
    return 1 + max(subtree_height(child) for child in task.sub_tasks)


def gather_notes(task: Task) -> list[Note]:
    """Notes of a task and all its descendants, each keeping its origin tag."""
    return [note for node in walk((task,)) for note in node.notes]


def _splice(
    tasks: Forest, task_id: str, fn: Callable[[Task], tuple[Task, ...]]
) -> tuple[Forest, bool]:
    for index, task in enumerate(tasks):
        if task.id == task_id:
            return tasks[:index] + fn(task) + tasks[index + 1:], True
        if task.sub_tasks:
            children, found = _splice(task.sub_tasks, task_id, fn)
            if found:
                return tasks[:index] + (replace(task, sub_tasks=children),) + tasks[index + 1:], True
    return tasks, False


def update_by_id(forest: Forest, task_id: str, new_value: Task) -> Forest:
    updated, found = _splice(forest, task_id, lambda _: (new_value,))
    return updated if found else forest


def delete_by_id(forest: Forest, task_id: str) -> Forest:
    updated, found = _splice(forest, task_id, lambda _: ())
    return updated if found else forest


def map_siblings(
    forest: Forest, parent_id: str | None, fn: Callable[[Forest], Forest]
) -> Forest:
    """Apply ``fn`` to one sibling list: the roots, or one task's subtasks."""
    if parent_id is None:
        return fn(forest)
    parent = find_by_id(forest, parent_id)
    if parent is None:
        return forest
    return update_by_id(forest, parent_id, replace(parent, sub_tasks=fn(parent.sub_tasks)))


def rebase(task: Task, parent_id: str | None, depth: int, project_id: str | None) -> Task:
    """Re-anchor a subtree at a new position, recomputing depth for every node."""
    return replace(
        task,
        parent_id=parent_id,
        depth=depth,
        project_id=project_id,
        sub_tasks=tuple(
            rebase(child, task.id, depth + 1, project_id) for child in task.sub_tasks
        ),
    )


def add_root(forest: Forest, task: Task) -> Forest:
    return (rebase(task, None, 0, task.project_id),) + forest


def insert_child(forest: Forest, parent_id: str, title: str, **fields) -> tuple[Forest, Task | None]:
    parent = find_by_id(forest, parent_id)
    if parent is None or parent.depth >= MAX_DEPTH:
        return forest, None
    child = Task(
        title=title,
        parent_id=parent.id,
        depth=parent.depth + 1,
        project_id=root_of(forest, parent.id).project_id,
        **fields,
    )
    updated = update_by_id(forest, parent.id, replace(parent, sub_tasks=parent.sub_tasks + (child,)))
    return updated, child


def reorder(forest: Forest, ordered_ids: list[str], parent_id: str | None = None) -> Forest:
    def _apply(siblings: Forest) -> Forest:
        by_id = {task.id: task for task in siblings}
        listed: list[Task] = []
        for task_id in ordered_ids:
            task = by_id.pop(task_id, None)
            if task is not None:
                listed.append(task)
        rest = [task for task in siblings if task.id in by_id]
        return tuple(listed + rest)

    return map_siblings(forest, parent_id, _apply)


def move_task(
    forest: Forest,
    task_id: str,
    new_parent_id: str | None,
    project_id=_KEEP,
    index: int | None = None,
) -> Forest:
    """Reparent a subtree. Either the whole move applies or ``forest`` is left as is."""
    task = find_by_id(forest, task_id)
    if task is None:
        raise TreeError(f"Task {task_id} not found")

    parent = None
    if new_parent_id is not None:
        if new_parent_id in collect_ids(task):
            raise TreeError(f"Cannot move task {task_id} into its own subtree")
        parent = find_by_id(forest, new_parent_id)
        if parent is None:
            raise TreeError(f"Parent {new_parent_id} not found")

    depth = parent.depth + 1 if parent else 0
    deepest = depth + subtree_height(task)
    if deepest > MAX_DEPTH:
        raise DepthLimitError(task_id, deepest, MAX_DEPTH)

    if project_id is _KEEP:
        project_id = root_of(forest, parent.id).project_id if parent else task.project_id
    moved = rebase(task, new_parent_id, depth, project_id)

    def _insert(siblings: Forest) -> Forest:
        position = len(siblings) if index is None else max(0, min(index, len(siblings)))
        return siblings[:position] + (moved,) + siblings[position:]

    return map_siblings(delete_by_id(forest, task_id), new_parent_id, _insert)


def count_completion(forest: Forest) -> CompletionCount:
    total = completed = 0
    for task in walk(forest):
        total += 1
        completed += task.completed
    return CompletionCount(total=total, completed=completed)


def reassign_project(
    forest: Forest, project_id: str, new_project_id: str | None = None
) -> Forest:
    def _fix(task: Task) -> Task:
        children = tuple(_fix(child) for child in task.sub_tasks)
        if task.project_id == project_id:
            return replace(task, project_id=new_project_id, sub_tasks=children)
        if children != task.sub_tasks:
            return replace(task, sub_tasks=children)
        return task

    updated = tuple(_fix(task) for task in forest)
    return forest if updated == forest else updated


def add_note(
    forest: Forest, task_id: str, content: str, now: datetime | None = None
) -> tuple[Forest, Note | None]:
    task = find_by_id(forest, task_id)
    if task is None:
        return forest, None
    now = now or utcnow()
    note = Note(
        content=content,
        origin_task_id=task.id,
        origin_task_title=task.title,
        created_at=now,
        updated_at=now,
    )
    return update_by_id(forest, task_id, replace(task, notes=task.notes + (note,))), note


def update_note(
    forest: Forest, task_id: str, note_id: str, content: str, now: datetime | None = None
) -> Forest:
    task = find_by_id(forest, task_id)
    if task is None or not any(note.id == note_id for note in task.notes):
        return forest
    notes = tuple(
        replace(note, content=content, updated_at=now or utcnow()) if note.id == note_id else note
        for note in task.notes
    )
    return update_by_id(forest, task_id, replace(task, notes=notes))


def delete_note(forest: Forest, task_id: str, note_id: str) -> Forest:
    task = find_by_id(forest, task_id)
    if task is None or not any(note.id == note_id for note in task.notes):
        return forest
    notes = tuple(note for note in task.notes if note.id != note_id)
    return update_by_id(forest, task_id, replace(task, notes=notes))


def add_attachment(forest: Forest, task_id: str, attachment: Attachment) -> Forest:
    task = find_by_id(forest, task_id)
    if task is None:
        return forest
    return update_by_id(forest, task_id, replace(task, attachments=task.attachments + (attachment,)))


def remove_attachment(forest: Forest, task_id: str, attachment_id: str) -> Forest:
    task = find_by_id(forest, task_id)
    if task is None or not any(item.id == attachment_id for item in task.attachments):
        return forest
    attachments = tuple(item for item in task.attachments if item.id != attachment_id)
    return update_by_id(forest, task_id, replace(task, attachments=attachments))
