"""Keeps the in-memory forest in step with the local cache and the external folder.

The local cache is written synchronously on every change once the initial
load has finished. The external folder is optional: it must be granted by
the user, its handle does not survive a restart (only its display name is
remembered), and writes to it are asynchronous and may lose permission at
any time.
"""
from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from tasktree.domain.entities import Forest, utcnow
from tasktree.domain.enums import AutoSaveMode, ConnectionState, SyncStatus
from tasktree.domain.errors import (
    ExternalPermissionError,
    ExternalTargetError,
    PersistenceError,
    StorageQuotaExceeded,
)
from tasktree.infra.external_target import DirectoryHandle, request_directory
from tasktree.infra.local_cache import LocalCache
from tasktree.infra.serialization import dumps_forest, loads_forest
from tasktree.infra.validation import parse_task_document

from .notices import NoticeBoard, NoticeLevel

logger = logging.getLogger(__name__)

AUTOSAVE_INTERVAL_SECONDS = 5 * 60


class PersistenceReconciler:
    def __init__(
        self,
        cache: LocalCache,
        notices: NoticeBoard,
        *,
        storage_key: str = "tasks-app-data",
        settings_key: str = "tasks-app-history-settings",
        autosave_interval: float = AUTOSAVE_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._cache = cache
        self._notices = notices
        self._storage_key = storage_key
        self._settings_key = settings_key
        self._autosave_interval = autosave_interval
        self._clock = clock

        self._autosave_mode = AutoSaveMode.EVERY_CHANGE
        self._handle: DirectoryHandle | None = None
        self._folder_name: str | None = None
        self._granting = False

        self._loaded = False
        self._forest: Forest = ()
        self._revision = 0
        self._saved_revision: int | None = None
        self.last_saved_at: datetime | None = None
        self.cache_failed = False

        self._inflight: asyncio.Task | None = None
        self._dirty = False
        self._timer: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

    @property
    def notices(self) -> NoticeBoard:
        return self._notices

    @property
    def autosave_mode(self) -> AutoSaveMode:
        return self._autosave_mode

    @property
    def folder_name(self) -> str | None:
        return self._folder_name

    @property
    def is_connected(self) -> bool:
        return self._handle is not None

    @property
    def is_saving(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def timer_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def connection_state(self) -> ConnectionState:
        if self._handle is not None:
            return ConnectionState.CONNECTED
        if self._granting or self._folder_name:
            return ConnectionState.AWAITING_GRANT
        return ConnectionState.DISCONNECTED

    @property
    def sync_status(self) -> SyncStatus:
        if self._handle is None:
            return SyncStatus.DISCONNECTED
        if self.is_saving:
            return SyncStatus.SAVING
        if self._saved_revision == self._revision:
            return SyncStatus.SYNCED
        return SyncStatus.PENDING

    # ---- local cache ----

    def load_cache(self) -> Forest:
        self._load_settings()
        forest: Forest = ()
        try:
            raw = self._cache.get(self._storage_key)
        except SQLAlchemyError:
            logger.exception("Failed to read tasks from the local cache")
            raw = None
        if raw:
            try:
                forest = loads_forest(raw)
            except (ValueError, KeyError, TypeError):
                logger.exception("Local cache document is corrupt; moving it aside")
                self._quarantine(raw)
                self._notices.post(
                    "Could not load tasks",
                    "Saved tasks were unreadable and have been set aside.",
                    NoticeLevel.ERROR,
                )
        self._forest = forest
        self._loaded = True
        logger.info("Local cache loaded key=%s roots=%s", self._storage_key, len(forest))
        return forest

    def _quarantine(self, raw: str) -> None:
        try:
            self._cache.delete(self._storage_key)
            self._cache.put(f"{self._storage_key}.corrupt", raw)
        except (SQLAlchemyError, PersistenceError):
            logger.exception("Could not keep a copy of the corrupt cache document")

    def _write_cache(self, forest: Forest) -> bool:
        try:
            self._cache.put(self._storage_key, dumps_forest(forest))
        except StorageQuotaExceeded as exc:
            logger.warning("Local cache quota exceeded: %s", exc)
            if not self.cache_failed:
                self._notices.post(
                    "Storage limit reached",
                    "Please export your tasks and remove large attachments or old completed tasks.",
                    NoticeLevel.WARNING,
                )
            self.cache_failed = True
            return False
        except SQLAlchemyError:
            logger.exception("Failed to write tasks to the local cache")
            if not self.cache_failed:
                self._notices.post(
                    "Could not save tasks",
                    "Changes are kept in memory; export your tasks to be safe.",
                    NoticeLevel.ERROR,
                )
            self.cache_failed = True
            return False
        self.cache_failed = False
        return True

    def observe(self, forest: Forest) -> None:
        """Called by the store after every change to the forest."""
        self._forest = forest
        self._revision += 1
        if not self._loaded:
            return
        self._write_cache(forest)
        if self._handle is not None and self._autosave_mode == AutoSaveMode.EVERY_CHANGE:
            self._spawn(self.save_now())

    # ---- settings ----

    def _load_settings(self) -> None:
        try:
            raw = self._cache.get(self._settings_key)
        except SQLAlchemyError:
            logger.exception("Failed to read persistence settings")
            return
        if not raw:
            return
        try:
            data = json.loads(raw)
            self._autosave_mode = AutoSaveMode(data.get("autoSaveMode") or AutoSaveMode.EVERY_CHANGE)
        except (ValueError, AttributeError):
            logger.warning("Ignoring unreadable persistence settings")
            return
        # the handle itself cannot be restored; the user has to grant it again
        self._folder_name = data.get("folderName") or None

    def _persist_settings(self) -> None:
        payload = json.dumps(
            {"autoSaveMode": self._autosave_mode.value, "folderName": self._folder_name}
        )
        try:
            self._cache.put(self._settings_key, payload)
        except (SQLAlchemyError, PersistenceError):
            logger.exception("Failed to persist persistence settings")

    def set_autosave_mode(self, mode: AutoSaveMode) -> None:
        self._autosave_mode = AutoSaveMode(mode)
        self._persist_settings()
        self._sync_timer()
        logger.info("Autosave mode set to %s", self._autosave_mode)

    # ---- external folder ----

    async def connect(self, path: str | Path, *, save: bool = True) -> bool:
        self._granting = True
        try:
            handle = await request_directory(path)
        except ExternalTargetError as exc:
            self._notices.post("Failed to select folder", str(exc), NoticeLevel.ERROR)
            return False
        finally:
            self._granting = False

        self._handle = handle
        self._folder_name = handle.name
        self._saved_revision = None
        self._persist_settings()
        self._notices.post("Folder selected", f'Backups will be saved to "{handle.name}"')
        self._sync_timer()
        if not save:
            return True
        return await self.save_now()

    def disconnect(self) -> None:
        self._release()
        self._notices.post("Folder disconnected", "Auto-save to folder has been disabled.")

    def _release(self) -> None:
        self._handle = None
        self._folder_name = None
        self._persist_settings()
        self._sync_timer()

    async def save_now(self) -> bool:
        """Write the latest forest to the folder.

        Only one write runs at a time. A request arriving while a write is
        in flight joins it and forces one more write of the newest forest
        once the current one finishes.
        """
        if self._handle is None:
            return False
        if self.is_saving:
            self._dirty = True
            return await asyncio.shield(self._inflight)
        self._inflight = asyncio.ensure_future(self._drain())
        return await asyncio.shield(self._inflight)

    async def _drain(self) -> bool:
        while True:
            self._dirty = False
            ok = await self._write_external()
            if not ok or not self._dirty or self._handle is None:
                return ok

    async def _write_external(self) -> bool:
        handle = self._handle
        revision = self._revision
        payload = dumps_forest(self._forest)
        try:
            await handle.write_text(payload)
        except ExternalPermissionError as exc:
            logger.warning("Lost access to backup folder: %s", exc)
            if self._handle is handle:
                self._release()
            self._notices.post(
                "Folder access lost", "Please re-select your backup folder.", NoticeLevel.ERROR
            )
            return False
        except ExternalTargetError as exc:
            logger.error("Failed to save to folder: %s", exc)
            self._notices.post("Save failed", str(exc), NoticeLevel.ERROR)
            return False

        if self._handle is handle:
            self._saved_revision = revision
            self.last_saved_at = self._clock()
        logger.debug("Saved revision=%s to %s", revision, handle.file_path)
        return True

    async def read_external(self) -> Forest:
        handle = self._handle
        if handle is None:
            raise ExternalTargetError("No backup folder selected")
        try:
            raw = await handle.read_text()
        except ExternalPermissionError:
            if self._handle is handle:
                self._release()
            raise
        return parse_task_document(raw)

    # ---- background work ----

    def _spawn(self, coro) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("No running event loop; folder stays pending until the next save")
            return
        task = loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _sync_timer(self) -> None:
        wanted = self._handle is not None and self._autosave_mode == AutoSaveMode.EVERY_5_MINUTES
        if not wanted:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            return
        if self.timer_running:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; interval autosave not started")
            return
        self._timer = loop.create_task(self._autosave_loop())

    async def _autosave_loop(self) -> None:
        while True:
            await asyncio.sleep(self._autosave_interval)
            await self.save_now()

    async def aclose(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        pending = list(self._background)
        if self._inflight is not None:
            pending.append(self._inflight)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
