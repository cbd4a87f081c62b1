from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, time, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from tasktree.config import Settings, load_settings
from tasktree.domain.entities import Forest, Recurrence, Task
from tasktree.domain.enums import AutoSaveMode, RecurrenceRule, SortKey, TaskPriority
from tasktree.domain.filters import TaskFilters
from tasktree.domain.tree import walk
from tasktree.infra.db import init_db, make_engine, make_session_factory
from tasktree.infra.local_cache import LocalCache
from tasktree.infra.logging import setup_logging
from tasktree.services.notices import Notice, NoticeBoard
from tasktree.services.reconciler import PersistenceReconciler
from tasktree.services.task_service import TaskStore
from tasktree.services.views import all_view

STATUS_MARKS = {"todo": " ", "in-progress": "~", "blocked": "!", "done": "x"}


def build_store(settings: Settings) -> TaskStore:
    engine = make_engine(settings.database_url)
    init_db(engine)
    cache = LocalCache(make_session_factory(engine), settings.cache_quota_bytes)
    notices = NoticeBoard()
    reconciler = PersistenceReconciler(
        cache,
        notices,
        storage_key=settings.storage_key,
        settings_key=settings.settings_key,
        autosave_interval=settings.autosave_interval_seconds,
    )
    store = TaskStore(
        reconciler,
        history_limit=settings.history_limit,
        default_priority=TaskPriority(settings.default_priority),
    )
    store.load()
    return store


def _parse_due(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        day = datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}'. Use YYYY-MM-DD.") from e
    return datetime.combine(day, time(9, 0), tzinfo=timezone.utc)


def _resolve_id(store: TaskStore, prefix: str) -> str | None:
    matches = [task.id for task in walk(store.forest) if task.id.startswith(prefix)]
    if len(matches) != 1:
        print(f"Task '{prefix}' not found or ambiguous.", file=sys.stderr)
        return None
    return matches[0]


def _print_tree(tasks: Forest, indent: int = 0) -> None:
    for task in tasks:
        due = task.due_date.date().isoformat() if task.due_date else ""
        mark = STATUS_MARKS.get(task.status.value, " ")
        print(f"{'  ' * indent}[{mark}] {task.id[:8]}  {task.priority.value:<6} {due:<10}  {task.title}")
        _print_tree(task.sub_tasks, indent + 1)


def _print_notice(notice: Notice) -> None:
    stream = sys.stdout if notice.level == "info" else sys.stderr
    print(f"{notice.title}: {notice.description}", file=stream)


def cmd_list(store: TaskStore, ns: argparse.Namespace) -> int:
    filters = TaskFilters(
        project_id=ns.project,
        inbox_only=ns.inbox,
        priority=TaskPriority(ns.priority) if ns.priority else None,
        search=ns.search,
        sort=SortKey(ns.sort),
    )
    if ns.archived:
        tasks = store.archived(filters)
    elif ns.all:
        tasks = all_view(store.forest, filters)
    else:
        tasks = store.active(filters)
    if not tasks:
        print("No tasks found.")
        return 0
    _print_tree(tasks)
    return 0


def cmd_add(store: TaskStore, ns: argparse.Namespace) -> int:
    recurrence = Recurrence(RecurrenceRule(ns.recur), ns.every) if ns.recur else None
    fields = dict(
        description=ns.description or "",
        due_date=ns.due,
        label_ids=frozenset(ns.label or ()),
        recurrence=recurrence,
    )
    if ns.priority:
        fields["priority"] = TaskPriority(ns.priority)
    if ns.parent:
        parent_id = _resolve_id(store, ns.parent)
        if parent_id is None:
            return 1
        task: Task | None = store.add_subtask(parent_id, ns.title, **fields)
        if task is None:
            return 1
    else:
        task = store.add_task(ns.title, project_id=ns.project, **fields)
    print(f"Added task {task.id[:8]}: {task.title}")
    return 0


def cmd_done(store: TaskStore, ns: argparse.Namespace) -> int:
    task_id = _resolve_id(store, ns.task_id)
    if task_id is None:
        return 1
    store.toggle_task(task_id)
    task = store.find(task_id)
    print(f"Task {task_id[:8]} is now {task.status.value}.")
    return 0


def cmd_rm(store: TaskStore, ns: argparse.Namespace) -> int:
    task_id = _resolve_id(store, ns.task_id)
    if task_id is None or not store.delete_task(task_id):
        return 1
    print(f"Deleted task {task_id[:8]} and its subtasks.")
    return 0


def cmd_stats(store: TaskStore, ns: argparse.Namespace) -> int:
    stats = store.stats()
    counts = store.project_counts()
    print(f"{stats.completed} of {stats.total} completed ({stats.percentage}%)")
    print(f"Inbox: {counts.inbox}")
    for project_id, count in sorted(counts.by_project.items()):
        print(f"{project_id}: {count}")
    print(f"Archived: {len(store.archived())}")
    return 0


def cmd_related(store: TaskStore, ns: argparse.Namespace) -> int:
    task_id = _resolve_id(store, ns.task_id)
    if task_id is None:
        return 1
    related = store.related(task_id)
    if not related:
        print("No related entries.")
    for entry in related:
        print(f"{entry.kind:<4}  {entry.title}  {entry.content[:60]}")
    return 0


def cmd_export(store: TaskStore, ns: argparse.Namespace) -> int:
    out_dir = Path(ns.out_dir).expanduser().resolve()
    target = store.export_to(out_dir)
    print(f"Exported to: {target}")
    return 0


def cmd_import(store: TaskStore, ns: argparse.Namespace) -> int:
    return 0 if store.import_file(Path(ns.file).expanduser().resolve()) else 1


def cmd_autosave(store: TaskStore, ns: argparse.Namespace) -> int:
    store.reconciler.set_autosave_mode(AutoSaveMode(ns.mode))
    print(f"Autosave mode: {store.reconciler.autosave_mode.value}")
    return 0


async def _sync(store: TaskStore, directory: str, load: bool) -> bool:
    reconciler = store.reconciler
    try:
        if not await reconciler.connect(directory, save=not load):
            return False
        if load:
            return await store.load_from_external()
        return reconciler.sync_status.value == "synced"
    finally:
        await reconciler.aclose()


def cmd_sync(store: TaskStore, ns: argparse.Namespace) -> int:
    return 0 if asyncio.run(_sync(store, ns.directory, ns.load)) else 1


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="tasktree",
        description="Nested personal task manager with undo history and folder backups.",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("list", help="List tasks.")
    g = s.add_mutually_exclusive_group()
    g.add_argument("--all", action="store_true", help="Include fully completed tasks.")
    g.add_argument("--archived", action="store_true", help="Only fully completed tasks.")
    s.add_argument("--search", help="Case-insensitive text search (includes subtasks and notes).")
    s.add_argument("--project", help="Only tasks of this project id.")
    s.add_argument("--inbox", action="store_true", help="Only tasks without a project.")
    s.add_argument("--priority", choices=[p.value for p in TaskPriority])
    s.add_argument("--sort", choices=[k.value for k in SortKey], default=SortKey.MANUAL.value)
    s.set_defaults(func=cmd_list)

    s = sub.add_parser("add", help="Add a task or subtask.")
    s.add_argument("title", help="Short task title.")
    s.add_argument("-d", "--description", help="Longer description.")
    s.add_argument("--parent", help="Parent task id (or unique prefix).")
    s.add_argument("--project", help="Project id for a root task.")
    s.add_argument("--label", action="append", help="Label id (repeatable).")
    s.add_argument("-p", "--priority", choices=[p.value for p in TaskPriority])
    s.add_argument("--due", type=_parse_due, help="Due date in YYYY-MM-DD.")
    s.add_argument("--recur", choices=[r.value for r in RecurrenceRule if r != RecurrenceRule.NONE])
    s.add_argument("--every", type=int, default=1, help="Recurrence interval.")
    s.set_defaults(func=cmd_add)

    s = sub.add_parser("done", help="Toggle a task between done and todo.")
    s.add_argument("task_id", help="Task id (or unique prefix).")
    s.set_defaults(func=cmd_done)

    s = sub.add_parser("rm", help="Delete a task and its subtasks.")
    s.add_argument("task_id", help="Task id (or unique prefix).")
    s.set_defaults(func=cmd_rm)

    s = sub.add_parser("stats", help="Show completion statistics.")
    s.set_defaults(func=cmd_stats)

    s = sub.add_parser("related", help="Show notebook entries related to a task.")
    s.add_argument("task_id", help="Task id (or unique prefix).")
    s.set_defaults(func=cmd_related)

    s = sub.add_parser("export", help="Export tasks to a dated JSON file.")
    s.add_argument("out_dir", nargs="?", default=".", help="Output directory.")
    s.set_defaults(func=cmd_export)

    s = sub.add_parser("import", help="Replace all tasks with a JSON backup.")
    s.add_argument("file", help="JSON file previously exported.")
    s.set_defaults(func=cmd_import)

    s = sub.add_parser("autosave", help="Set the folder autosave mode.")
    s.add_argument("mode", choices=[m.value for m in AutoSaveMode])
    s.set_defaults(func=cmd_autosave)

    s = sub.add_parser("sync", help="Save tasks to a backup folder (or load from it).")
    s.add_argument("directory", help="Backup folder.")
    s.add_argument("--load", action="store_true", help="Load tasks-backup.json instead of saving.")
    s.set_defaults(func=cmd_sync)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(argv)
    settings = load_settings()
    setup_logging(settings)
    try:
        store = build_store(settings)
    except SQLAlchemyError as exc:
        print(f"DB error: {exc}", file=sys.stderr)
        return 1
    store.notices.subscribe(_print_notice)
    return ns.func(store, ns)


if __name__ == "__main__":
    sys.exit(main())
