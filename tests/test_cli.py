from __future__ import annotations

from pathlib import Path

import pytest

from tasktree.config import load_settings
from tasktree.main import main


@pytest.fixture()
def cli_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'cli.sqlite3'}")
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    return tmp_path


def _added_prefix(output: str) -> str:
    # "Added task 1a2b3c4d: <title>"
    return output.split()[2].rstrip(":")


def test_settings_come_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("TASKTREE_HISTORY_LIMIT", "5")
    monkeypatch.setenv("TASKTREE_DEFAULT_PRIORITY", " High ")

    settings = load_settings()

    assert settings.database_url == "sqlite:///:memory:"
    assert settings.history_limit == 5
    assert settings.default_priority == "high"
    assert settings.storage_key == "tasks-app-data"


def test_add_complete_and_list(cli_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["add", "Buy milk", "--due", "2025-02-01", "-p", "high"]) == 0
    prefix = _added_prefix(capsys.readouterr().out)

    assert main(["done", prefix]) == 0
    assert "is now done" in capsys.readouterr().out

    assert main(["list"]) == 0
    assert "No tasks found." in capsys.readouterr().out

    assert main(["list", "--archived"]) == 0
    listing = capsys.readouterr().out
    assert "Buy milk" in listing
    assert "2025-02-01" in listing


def test_subtask_and_stats(cli_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    main(["add", "Plan trip", "--project", "travel"])
    parent = _added_prefix(capsys.readouterr().out)

    assert main(["add", "Book hotel", "--parent", parent]) == 0
    capsys.readouterr()

    assert main(["stats"]) == 0
    out = capsys.readouterr().out
    assert "0 of 2 completed (0%)" in out
    assert "travel: 1" in out


def test_invalid_due_date_is_a_usage_error(cli_env: Path) -> None:
    with pytest.raises(SystemExit):
        main(["add", "Whenever", "--due", "tomorrow"])


def test_unknown_task_prefix_fails(cli_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["done", "zzzz"]) == 1
    assert "not found" in capsys.readouterr().err


def test_export_then_import(cli_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    main(["add", "Keep me"])
    assert main(["export", str(cli_env)]) == 0
    backup = next(cli_env.glob("tasks-backup-*.json"))
    main(["add", "Throw away"])

    assert main(["import", str(backup)]) == 0
    capsys.readouterr()

    main(["list"])
    listing = capsys.readouterr().out
    assert "Keep me" in listing
    assert "Throw away" not in listing


def test_sync_writes_backup_folder(cli_env: Path) -> None:
    folder = cli_env / "backup"
    folder.mkdir()
    main(["add", "Backed up"])

    assert main(["sync", str(folder)]) == 0

    assert "Backed up" in (folder / "tasks-backup.json").read_text(encoding="utf-8")


def test_import_of_missing_file_fails_cleanly(cli_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["import", str(cli_env / "missing.json")]) == 1
    assert "Import failed" in capsys.readouterr().err
