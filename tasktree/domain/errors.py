from __future__ import annotations


class TaskTreeError(Exception):
    """Base class for every error raised by the task tree store."""


class TreeError(TaskTreeError):
    pass


class DepthLimitError(TreeError):
    def __init__(self, task_id: str, depth: int, limit: int) -> None:
        super().__init__(f"Task {task_id} would reach depth {depth} (max {limit})")
        self.task_id = task_id
        self.depth = depth
        self.limit = limit


class ImportValidationError(TaskTreeError):
    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class PersistenceError(TaskTreeError):
    pass


class StorageQuotaExceeded(PersistenceError):
    def __init__(self, size: int, quota: int) -> None:
        super().__init__(f"Payload of {size} bytes exceeds the {quota} byte cache quota")
        self.size = size
        self.quota = quota


class ExternalTargetError(PersistenceError):
    pass


class ExternalPermissionError(ExternalTargetError):
    pass
