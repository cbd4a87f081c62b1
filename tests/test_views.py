from __future__ import annotations

from datetime import datetime, timezone

from tasktree.domain import tree
from tasktree.domain.entities import Task, with_status
from tasktree.domain.enums import SortKey, TaskPriority, TaskStatus
from tasktree.domain.filters import TaskFilters
from tasktree.services import views

from conftest import make_tree


def _due(day: int) -> datetime:
    return datetime(2025, 3, day, tzinfo=timezone.utc)


def test_search_matches_through_deep_subtask() -> None:
    forest = make_tree()
    forest = tree.update_by_id(
        forest,
        "grandchild",
        Task(id="grandchild", title="Buy Milk", parent_id="child", depth=2),
    )

    result = views.search_tasks(forest, "milk")

    assert [task.id for task in result] == ["root"]
    assert result[0].sub_tasks == ()


def test_search_keeps_subtasks_when_root_matches_itself() -> None:
    forest = make_tree()

    result = views.search_tasks(forest, "ROOT")

    assert result[0].sub_tasks == forest[0].sub_tasks


def test_search_matches_note_content() -> None:
    forest, _ = tree.add_note(make_tree(), "other", "Call the Plumber")

    assert [task.id for task in views.search_tasks(forest, "plumber")] == ["other"]


def test_blank_search_returns_everything() -> None:
    forest = make_tree()

    assert views.search_tasks(forest, "   ") is forest


def test_match_locations_reports_subtask_hits() -> None:
    forest, _ = tree.add_note(make_tree(), "root", "root note")

    assert views.match_locations(forest[0], "leaf") == ["subtask"]
    assert views.match_locations(forest[0], "root") == ["title", "note"]


def test_sort_by_due_date_puts_undated_last_both_ways() -> None:
    tasks = (
        Task(id="none", title="none"),
        Task(id="late", title="late", due_date=_due(20)),
        Task(id="early", title="early", due_date=_due(2)),
    )

    ascending = views.sort_tasks(tasks, SortKey.DUE_ASC)
    descending = views.sort_tasks(tasks, SortKey.DUE_DESC)

    assert [task.id for task in ascending] == ["early", "late", "none"]
    assert [task.id for task in descending] == ["late", "early", "none"]


def test_sort_by_priority_is_stable() -> None:
    tasks = (
        Task(id="m1", title="m1"),
        Task(id="u", title="u", priority=TaskPriority.URGENT),
        Task(id="m2", title="m2"),
        Task(id="l", title="l", priority=TaskPriority.LOW),
        Task(id="h", title="h", priority=TaskPriority.HIGH),
    )

    result = views.sort_tasks(tasks, SortKey.PRIORITY)

    assert [task.id for task in result] == ["u", "h", "m1", "m2", "l"]


def test_filters_compose() -> None:
    forest = (
        Task(id="a", title="Alpha", project_id="p1", label_ids=frozenset({"x"})),
        Task(id="b", title="Beta", project_id="p1", priority=TaskPriority.HIGH),
        Task(id="c", title="Gamma", label_ids=frozenset({"x", "y"})),
    )

    assert [t.id for t in views.filter_tasks(forest, TaskFilters(project_id="p1"))] == ["a", "b"]
    assert [t.id for t in views.filter_tasks(forest, TaskFilters(inbox_only=True))] == ["c"]
    assert [
        t.id for t in views.filter_tasks(forest, TaskFilters(label_ids=frozenset({"y", "z"})))
    ] == ["c"]
    assert [
        t.id
        for t in views.filter_tasks(
            forest, TaskFilters(project_id="p1", priority=TaskPriority.HIGH)
        )
    ] == ["b"]


def test_fully_completed_tree_moves_to_archive() -> None:
    root = Task(
        id="r",
        title="Root",
        status=TaskStatus.DONE,
        sub_tasks=(
            Task(id="s1", title="S1", parent_id="r", depth=1, status=TaskStatus.DONE),
            Task(id="s2", title="S2", parent_id="r", depth=1, status=TaskStatus.DONE),
        ),
    )
    forest = (root, Task(id="open", title="Open"))

    assert [task.id for task in views.active_view(forest)] == ["open"]
    assert [task.id for task in views.archive_view(forest)] == ["r"]

    reopened = tree.update_by_id(forest, "s2", with_status(tree.find_by_id(forest, "s2"), TaskStatus.TODO))

    assert [task.id for task in views.active_view(reopened)] == ["r", "open"]
    assert views.archive_view(reopened) == ()


def test_completed_root_with_open_subtask_stays_active() -> None:
    root = Task(
        id="r",
        title="Root",
        status=TaskStatus.DONE,
        sub_tasks=(Task(id="s", title="S", parent_id="r", depth=1),),
    )

    assert views.active_view((root,)) == (root,)


def test_project_counts() -> None:
    counts = views.project_counts(make_tree())

    assert counts.inbox == 1
    assert counts.by_project == {"work": 1}


def test_all_view_keeps_completed_roots() -> None:
    forest = make_tree()

    assert [task.id for task in views.all_view(forest)] == ["root", "other"]
    assert [task.id for task in views.active_view(forest)] == ["root"]
