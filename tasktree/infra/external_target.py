from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from tasktree.domain.errors import ExternalPermissionError, ExternalTargetError

logger = logging.getLogger(__name__)

BACKUP_FILE_NAME = "tasks-backup.json"


class DirectoryHandle:
    """A user-granted writable directory. Lives only for the current session."""

    def __init__(self, path: Path, file_name: str = BACKUP_FILE_NAME) -> None:
        self._path = path
        self._file_name = file_name

    @property
    def name(self) -> str:
        return self._path.name or str(self._path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def file_path(self) -> Path:
        return self._path / self._file_name

    async def write_text(self, payload: str) -> None:
        await asyncio.to_thread(self._write, payload)

    async def read_text(self) -> str:
        return await asyncio.to_thread(self._read)

    def _write(self, payload: str) -> None:
        tmp_path = self.file_path.with_suffix(".json.tmp")
        try:
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self.file_path)
        except PermissionError as exc:
            raise ExternalPermissionError(f"Write access to {self._path} was denied") from exc
        except FileNotFoundError as exc:
            raise ExternalPermissionError(f"Directory {self._path} is no longer available") from exc
        except OSError as exc:
            raise ExternalTargetError(f"Could not write {self.file_path}: {exc}") from exc

    def _read(self) -> str:
        try:
            return self.file_path.read_text(encoding="utf-8")
        except PermissionError as exc:
            raise ExternalPermissionError(f"Read access to {self._path} was denied") from exc
        except OSError as exc:
            raise ExternalTargetError(f"Could not read {self.file_path}: {exc}") from exc


async def request_directory(path: str | Path) -> DirectoryHandle:
    """Grant access to ``path`` after checking it is a writable directory."""
    resolved = Path(path).expanduser().resolve()

    def _check() -> None:
        if not resolved.is_dir():
            raise ExternalTargetError(f"{resolved} is not a directory")
        if not os.access(resolved, os.W_OK | os.X_OK):
            raise ExternalPermissionError(f"{resolved} is not writable")

    await asyncio.to_thread(_check)
    logger.info("Directory access granted path=%s", resolved)
    return DirectoryHandle(resolved)
