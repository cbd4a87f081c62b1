from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _resolve_project_root() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[1]


PROJECT_ROOT = _resolve_project_root()


def load_env() -> None:
    env_name = os.getenv("APP_ENV", "development")
    candidates = [Path.cwd(), PROJECT_ROOT]
    for base in candidates:
        env_path = base / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            break

    for base in candidates:
        env_specific = base / f".env.{env_name}"
        if env_specific.exists():
            load_dotenv(env_specific, override=True)
            break


@dataclass(frozen=True)
class Settings:
    database_url: str
    log_level: str = "INFO"
    log_dir: str = "logs"
    storage_key: str = "tasks-app-data"
    settings_key: str = "tasks-app-history-settings"
    cache_quota_bytes: int = 5 * 1024 * 1024
    history_limit: int = 20
    autosave_interval_seconds: float = 300.0
    default_priority: str = "medium"


def _default_database_url() -> str:
    data_dir = PROJECT_ROOT / "data"
    data_dir.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{data_dir / 'tasktree.db'}"


def load_settings() -> Settings:
    load_env()
    database_url = os.getenv("DATABASE_URL", "").strip() or _default_database_url()
    return Settings(
        database_url=database_url,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_dir=os.getenv("LOG_DIR", "logs"),
        storage_key=os.getenv("TASKTREE_STORAGE_KEY", "tasks-app-data"),
        settings_key=os.getenv("TASKTREE_SETTINGS_KEY", "tasks-app-history-settings"),
        cache_quota_bytes=int(os.getenv("TASKTREE_CACHE_QUOTA_BYTES", str(5 * 1024 * 1024))),
        history_limit=int(os.getenv("TASKTREE_HISTORY_LIMIT", "20")),
        autosave_interval_seconds=float(os.getenv("TASKTREE_AUTOSAVE_INTERVAL", "300")),
        default_priority=os.getenv("TASKTREE_DEFAULT_PRIORITY", "medium").strip().lower(),
    )
