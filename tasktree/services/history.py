from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from tasktree.domain.entities import Forest

logger = logging.getLogger(__name__)

MAX_HISTORY_SIZE = 20


@dataclass(frozen=True)
class Snapshot:
    forest: Forest
    timestamp: float = field(default_factory=time.time)


class HistoryManager:
    """Linear undo/redo over whole-forest snapshots.

    Forests are immutable values, so a snapshot holds the forest itself
    rather than a copy. Restoring a snapshot is the caller's job; the
    manager only moves the cursor and hands the forest back.
    """

    def __init__(self, limit: int = MAX_HISTORY_SIZE) -> None:
        if limit < 1:
            raise ValueError("history limit must be positive")
        self._limit = limit
        self._snapshots: list[Snapshot] = []
        self._cursor = -1

    def __len__(self) -> int:
        return len(self._snapshots)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return 0 <= self._cursor < len(self._snapshots) - 1

    @property
    def current(self) -> Snapshot | None:
        if self._cursor < 0:
            return None
        return self._snapshots[self._cursor]

    def initialize(self, forest: Forest) -> bool:
        if self._snapshots or not forest:
            return False
        self._snapshots.append(Snapshot(forest))
        self._cursor = 0
        return True

    def checkpoint(self, forest: Forest) -> bool:
        if not self._snapshots:
            return self.initialize(forest)
        if self._snapshots[self._cursor].forest == forest:
            return False

        del self._snapshots[self._cursor + 1:]
        self._snapshots.append(Snapshot(forest))
        if len(self._snapshots) > self._limit:
            evicted = len(self._snapshots) - self._limit
            del self._snapshots[:evicted]
        self._cursor = len(self._snapshots) - 1
        logger.debug("History checkpoint cursor=%s size=%s", self._cursor, len(self._snapshots))
        return True

    def undo(self) -> Forest | None:
        if not self.can_undo:
            return None
        self._cursor -= 1
        return self._snapshots[self._cursor].forest

    def redo(self) -> Forest | None:
        if not self.can_redo:
            return None
        self._cursor += 1
        return self._snapshots[self._cursor].forest

    def reset(self, forest: Forest) -> None:
        self._snapshots.clear()
        self._cursor = -1
        self.initialize(forest)
