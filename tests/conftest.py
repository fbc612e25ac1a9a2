"""Shared pytest fixtures for Bridge Tray tests.

Redirects every file the host writes into a temporary directory and provides
fixtures for spawning short-lived Python process trees.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import psutil
import pytest

from bridge_tray.local import app_globals
from tests.helpers import TREE_SCRIPT


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keeps log databases and overrides out of the working tree."""
    monkeypatch.setattr(app_globals, "LOG_DB_PATH", tmp_path / "logs" / "app_logs.db")
    monkeypatch.setattr(app_globals, "OVERRIDES_JSON_PATH", tmp_path / "overrides.json")
    monkeypatch.setattr(app_globals, "BIN_DIR", tmp_path)
    monkeypatch.setattr(app_globals, "GRACEFUL_SHUTDOWN_TIMEOUT", 1)
    monkeypatch.setattr(app_globals, "HANDLE_LOCK_TIMEOUT", 1)
    monkeypatch.setattr(app_globals, "KILL_DESCENDANTS_RECURSIVELY", False)
    monkeypatch.setattr(app_globals, "start_time", None)


@pytest.fixture
def tree_script(tmp_path: Path) -> Path:
    path = tmp_path / "tree.py"
    path.write_text(TREE_SCRIPT, encoding="utf-8")
    return path


@pytest.fixture
def reaper() -> Iterator[list[int]]:
    """Collects pids that a test starts; any survivors are killed at teardown."""
    pids: list[int] = []
    yield pids
    for pid in pids:
        try:
            psutil.Process(pid).kill()
        except psutil.Error:
            continue
