"""Derived projections of the forest: filtering, search, sorting, archival."""
from __future__ import annotations

from dataclasses import dataclass, replace

from tasktree.domain.entities import Forest, Task
from tasktree.domain.enums import SortKey
from tasktree.domain.filters import TaskFilters
from tasktree.domain.tree import CompletionCount, count_completion, walk


def _contains(text: str, query: str) -> bool:
    return query.lower() in (text or "").lower()


def _matches_self(task: Task, query: str) -> bool:
    return (
        _contains(task.title, query)
        or _contains(task.description, query)
        or any(_contains(note.content, query) for note in task.notes)
    )


def matches_search(task: Task, query: str) -> bool:
    return any(_matches_self(node, query) for node in walk((task,)))


def search_tasks(forest: Forest, query: str | None) -> Forest:
    """Roots matching ``query`` themselves or through any descendant.

    A root that only matches through a descendant is returned without its
    subtask list so the nested tree is not rendered (and matched) again.
    """
    if not query or not query.strip():
        return forest
    result: list[Task] = []
    for task in forest:
        if _matches_self(task, query):
            result.append(task)
        elif matches_search(task, query):
            result.append(replace(task, sub_tasks=()))
    return tuple(result)


def match_locations(task: Task, query: str) -> list[str]:
    if not query or not query.strip():
        return []
    locations = []
    if _contains(task.title, query):
        locations.append("title")
    if _contains(task.description, query):
        locations.append("description")
    if any(_contains(note.content, query) for note in task.notes):
        locations.append("note")
    if any(matches_search(child, query) for child in task.sub_tasks):
        locations.append("subtask")
    return locations


def filter_tasks(forest: Forest, filters: TaskFilters) -> Forest:
    tasks = forest
    if filters.inbox_only:
        tasks = tuple(task for task in tasks if task.project_id is None)
    elif filters.project_id is not None:
        tasks = tuple(task for task in tasks if task.project_id == filters.project_id)
    if filters.priority is not None:
        tasks = tuple(task for task in tasks if task.priority == filters.priority)
    if filters.label_ids:
        tasks = tuple(task for task in tasks if task.label_ids & filters.label_ids)
    tasks = search_tasks(tasks, filters.search)
    return sort_tasks(tasks, filters.sort)


def sort_tasks(tasks: Forest, key: SortKey) -> Forest:
    if key == SortKey.PRIORITY:
        return tuple(sorted(tasks, key=lambda task: -task.priority.rank))
    if key in (SortKey.DUE_ASC, SortKey.DUE_DESC):
        dated = [task for task in tasks if task.due_date is not None]
        undated = [task for task in tasks if task.due_date is None]
        dated.sort(key=lambda task: task.due_date, reverse=key == SortKey.DUE_DESC)
        return tuple(dated + undated)
    return tuple(tasks)


def is_fully_completed(task: Task) -> bool:
    return all(node.completed for node in walk((task,)))


def active_view(forest: Forest, filters: TaskFilters | None = None) -> Forest:
    active = tuple(task for task in forest if not is_fully_completed(task))
    return filter_tasks(active, filters or TaskFilters())


def archive_view(forest: Forest, filters: TaskFilters | None = None) -> Forest:
    archived = tuple(task for task in forest if is_fully_completed(task))
    return filter_tasks(archived, filters or TaskFilters())


def all_view(forest: Forest, filters: TaskFilters | None = None) -> Forest:
    return filter_tasks(forest, filters or TaskFilters())


def completion_stats(forest: Forest) -> CompletionCount:
    return count_completion(forest)


@dataclass(frozen=True)
class ProjectCounts:
    inbox: int
    by_project: dict[str, int]


def project_counts(forest: Forest) -> ProjectCounts:
    inbox = 0
    by_project: dict[str, int] = {}
    for task in forest:
        if task.project_id is None:
            inbox += 1
        else:
            by_project[task.project_id] = by_project.get(task.project_id, 0) + 1
    return ProjectCounts(inbox=inbox, by_project=by_project)
