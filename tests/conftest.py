from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from tasktree.domain.entities import Task
from tasktree.domain.enums import TaskStatus
from tasktree.domain.tree import rebase
from tasktree.infra.db import init_db, make_engine, make_session_factory
from tasktree.infra.local_cache import LocalCache
from tasktree.services.notices import NoticeBoard
from tasktree.services.reconciler import PersistenceReconciler
from tasktree.services.task_service import TaskStore

FIXED_NOW = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


def make_tree() -> tuple[Task, ...]:
    """root(0) -> child(1) -> grandchild(2) -> leaf(3), plus a second root."""
    leaf = Task(id="leaf", title="Leaf", parent_id="grandchild", depth=3)
    grandchild = Task(
        id="grandchild", title="Grandchild", parent_id="child", depth=2, sub_tasks=(leaf,)
    )
    child = Task(id="child", title="Child", parent_id="root", depth=1, sub_tasks=(grandchild,))
    root = rebase(Task(id="root", title="Root", sub_tasks=(child,)), None, 0, "work")
    other = Task(id="other", title="Other", status=TaskStatus.DONE)
    return (root, other)


@pytest.fixture()
def cache(tmp_path: Path) -> LocalCache:
    engine = make_engine(f"sqlite:///{tmp_path / 'cache.sqlite3'}")
    init_db(engine)
    return LocalCache(make_session_factory(engine), quota_bytes=1024 * 1024)


@pytest.fixture()
def notices() -> NoticeBoard:
    return NoticeBoard()


@pytest.fixture()
def reconciler(cache: LocalCache, notices: NoticeBoard) -> PersistenceReconciler:
    return PersistenceReconciler(cache, notices, autosave_interval=0.01, clock=fixed_clock)


@pytest.fixture()
def store(reconciler: PersistenceReconciler) -> TaskStore:
    task_store = TaskStore(reconciler, clock=fixed_clock)
    task_store.load()
    return task_store
