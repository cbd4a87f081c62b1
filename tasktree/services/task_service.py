from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Iterable

from tasktree.domain import tree
from tasktree.domain.entities import Attachment, Forest, Note, Recurrence, Task, utcnow
from tasktree.domain.enums import TaskPriority, TaskStatus
from tasktree.domain.errors import (
    DepthLimitError,
    ExternalTargetError,
    ImportValidationError,
    TreeError,
)
from tasktree.domain.filters import TaskFilters
from tasktree.domain.recurrence import toggle_completion
from tasktree.infra.serialization import dumps_forest
from tasktree.infra.validation import MAX_IMPORT_FILE_SIZE, parse_task_document

from . import notebook, views
from .history import MAX_HISTORY_SIZE, HistoryManager
from .notices import NoticeBoard, NoticeLevel
from .reconciler import PersistenceReconciler

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = {
    "title",
    "description",
    "status",
    "priority",
    "completed",
    "due_date",
    "label_ids",
    "recurrence",
    "project_id",
}


class TaskStore:
    """Owns the task forest and routes every change through history and persistence."""

    def __init__(
        self,
        reconciler: PersistenceReconciler | None = None,
        *,
        notices: NoticeBoard | None = None,
        history_limit: int = MAX_HISTORY_SIZE,
        default_priority: TaskPriority = TaskPriority.MEDIUM,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._reconciler = reconciler
        if notices is None:
            notices = reconciler.notices if reconciler else NoticeBoard()
        self._notices = notices
        self._history = HistoryManager(history_limit)
        self._default_priority = TaskPriority(default_priority)
        self._clock = clock
        self._forest: Forest = ()

    @property
    def forest(self) -> Forest:
        return self._forest

    @property
    def notices(self) -> NoticeBoard:
        return self._notices

    @property
    def reconciler(self) -> PersistenceReconciler | None:
        return self._reconciler

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    @property
    def history_position(self) -> tuple[int, int]:
        return self._history.cursor, len(self._history)

    def load(self) -> Forest:
        forest = self._reconciler.load_cache() if self._reconciler else ()
        self._forest = forest
        self._history.initialize(forest)
        return forest

    def _commit(self, forest: Forest, *, checkpoint: bool = True) -> bool:
        if forest is self._forest:
            return False
        self._forest = forest
        if checkpoint:
            self._history.checkpoint(forest)
        if self._reconciler:
            self._reconciler.observe(forest)
        return True

    # ---- queries ----

    def find(self, task_id: str) -> Task | None:
        return tree.find_by_id(self._forest, task_id)

    def active(self, filters: TaskFilters | None = None) -> Forest:
        return views.active_view(self._forest, filters)

    def archived(self, filters: TaskFilters | None = None) -> Forest:
        return views.archive_view(self._forest, filters)

    def stats(self) -> tree.CompletionCount:
        return views.completion_stats(self._forest)

    def project_counts(self) -> views.ProjectCounts:
        return views.project_counts(self._forest)

    def notebook_entries(self, query: str = "") -> list[notebook.NotebookEntry]:
        return notebook.search_entries(notebook.build_entries(self._forest), query)

    def related(self, task_id: str, limit: int = 5) -> list[notebook.NotebookEntry]:
        entries = notebook.build_entries(self._forest)
        entry = next((item for item in entries if item.id == f"task-{task_id}"), None)
        if entry is None:
            return []
        return notebook.find_related(entry, entries, limit)

    # ---- mutations ----

    def add_task(
        self,
        title: str,
        *,
        description: str = "",
        priority: TaskPriority | None = None,
        due_date: datetime | None = None,
        project_id: str | None = None,
        label_ids: Iterable[str] = (),
        recurrence: Recurrence | None = None,
    ) -> Task:
        title = title.strip()
        if not title:
            raise ValueError("title is required")
        task = Task(
            title=title,
            description=description,
            priority=TaskPriority(priority or self._default_priority),
            due_date=due_date,
            project_id=project_id,
            label_ids=frozenset(label_ids),
            recurrence=recurrence,
            created_at=self._clock(),
        )
        self._commit(tree.add_root(self._forest, task))
        return task

    def add_subtask(self, parent_id: str, title: str, **fields) -> Task | None:
        title = title.strip()
        if not title:
            raise ValueError("title is required")
        fields.setdefault("priority", self._default_priority)
        fields.setdefault("created_at", self._clock())
        forest, child = tree.insert_child(self._forest, parent_id, title, **fields)
        if child is None:
            parent = self.find(parent_id)
            if parent is not None:
                self._notices.post(
                    "Cannot add subtask",
                    f'"{parent.title}" is already at the maximum nesting depth.',
                    NoticeLevel.WARNING,
                )
            return None
        self._commit(forest)
        return child

    def update_task(self, task_id: str, **changes) -> Task | None:
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be edited directly: {', '.join(sorted(unknown))}")
        task = self.find(task_id)
        if task is None:
            return None
        if task.depth and changes.get("project_id", task.project_id) != task.project_id:
            raise ValueError("Subtasks take their project from their root task")

        completed = changes.pop("completed", None)
        if completed is not None and "status" not in changes:
            changes["status"] = TaskStatus.DONE if completed else TaskStatus.TODO
        if "status" in changes:
            changes["status"] = TaskStatus(changes["status"])
        if "priority" in changes:
            changes["priority"] = TaskPriority(changes["priority"])
        if "label_ids" in changes:
            changes["label_ids"] = frozenset(changes["label_ids"])

        updated = replace(task, **changes)
        if "project_id" in changes:
            updated = tree.rebase(updated, updated.parent_id, updated.depth, updated.project_id)
        self._commit(tree.update_by_id(self._forest, task_id, updated))
        return updated

    def set_status(self, task_id: str, status: TaskStatus) -> bool:
        return self.update_task(task_id, status=status) is not None

    def toggle_task(self, task_id: str) -> bool:
        return self._commit(toggle_completion(self._forest, task_id, self._clock()))

    def delete_task(self, task_id: str) -> bool:
        return self._commit(tree.delete_by_id(self._forest, task_id))

    def reorder(self, ordered_ids: list[str], parent_id: str | None = None) -> bool:
        forest = tree.reorder(self._forest, ordered_ids, parent_id)
        if forest == self._forest:
            return False
        return self._commit(forest)

    def move_task(self, task_id: str, new_parent_id: str | None, **options) -> bool:
        try:
            forest = tree.move_task(self._forest, task_id, new_parent_id, **options)
        except DepthLimitError as exc:
            self._notices.post("Cannot move task", str(exc), NoticeLevel.WARNING)
            return False
        except TreeError as exc:
            logger.info("Move ignored: %s", exc)
            return False
        return self._commit(forest)

    def detach_project(self, project_id: str) -> bool:
        """Move every task of a deleted project back to the Inbox."""
        return self._commit(tree.reassign_project(self._forest, project_id, None))

    def add_note(self, task_id: str, content: str) -> Note | None:
        forest, note = tree.add_note(self._forest, task_id, content, self._clock())
        self._commit(forest)
        return note

    def update_note(self, task_id: str, note_id: str, content: str) -> bool:
        return self._commit(tree.update_note(self._forest, task_id, note_id, content, self._clock()))

    def delete_note(self, task_id: str, note_id: str) -> bool:
        return self._commit(tree.delete_note(self._forest, task_id, note_id))

    def add_attachment(self, task_id: str, attachment: Attachment) -> bool:
        return self._commit(tree.add_attachment(self._forest, task_id, attachment))

    def remove_attachment(self, task_id: str, attachment_id: str) -> bool:
        return self._commit(tree.remove_attachment(self._forest, task_id, attachment_id))

    def clear(self) -> bool:
        if not self._forest:
            return False
        self._commit(())
        self._notices.post("Tasks cleared", "All tasks have been removed.")
        return True

    # ---- history ----

    def undo(self) -> bool:
        forest = self._history.undo()
        if forest is None:
            return False
        self._commit(forest, checkpoint=False)
        return True

    def redo(self) -> bool:
        forest = self._history.redo()
        if forest is None:
            return False
        self._commit(forest, checkpoint=False)
        return True

    def replace_forest(self, forest: Forest) -> None:
        """Swap in a whole new forest and make it the new history baseline."""
        self._forest = forest
        self._history.reset(forest)
        if self._reconciler:
            self._reconciler.observe(forest)

    # ---- import / export ----

    def export_json(self) -> str:
        return dumps_forest(self._forest, indent=2)

    @staticmethod
    def export_filename(today: date | None = None) -> str:
        today = today or date.today()
        return f"tasks-backup-{today.isoformat()}.json"

    def export_to(self, directory: Path) -> Path:
        target = Path(directory) / self.export_filename(self._clock().date())
        target.write_text(self.export_json(), encoding="utf-8")
        self._notices.post("Export successful", f"Your tasks have been exported to {target.name}.")
        return target

    def import_json(self, raw: str | bytes) -> bool:
        try:
            forest = parse_task_document(raw)
        except ImportValidationError as exc:
            logger.warning("Import rejected: %s %s", exc, exc.errors[:5])
            self._notices.post("Import failed", str(exc), NoticeLevel.ERROR)
            return False
        self.replace_forest(forest)
        self._notices.post("Import successful", f"Imported {len(forest)} tasks.")
        return True

    def import_file(self, path: Path) -> bool:
        path = Path(path)
        try:
            if path.stat().st_size > MAX_IMPORT_FILE_SIZE:
                self._notices.post("File too large", "Import file must be less than 10MB.", NoticeLevel.ERROR)
                return False
            raw = path.read_bytes()
        except OSError as exc:
            logger.warning("Import file unreadable: %s", exc)
            self._notices.post("Import failed", f"Could not read {path.name}.", NoticeLevel.ERROR)
            return False
        return self.import_json(raw)

    async def load_from_external(self) -> bool:
        if self._reconciler is None:
            return False
        try:
            forest = await self._reconciler.read_external()
        except (ExternalTargetError, ImportValidationError) as exc:
            logger.warning("Loading from folder failed: %s", exc)
            self._notices.post("Failed to load", str(exc), NoticeLevel.ERROR)
            return False
        self.replace_forest(forest)
        self._notices.post("Loaded", "Tasks loaded from backup folder.")
        return True
