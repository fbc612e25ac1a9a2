"""Tests for the host-side composition of supervisor, monitor and tray."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

import bridge_tray.settings as default_settings
from bridge_tray.local import app_globals
from bridge_tray.local.database import LogDBManager
from bridge_tray.local.manager import SidecarManager
from bridge_tray.local.supervisor import HealthState
from bridge_tray.local.supervisor import shutdown as shutdown_module
from tests.helpers import SequenceFetcher, is_gone, ok_sample, wait_for


@pytest.fixture
def fast_polling(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app_globals, "HEALTH_POLL_INTERVAL", 0.05)
    monkeypatch.setattr(app_globals, "HEALTH_CHECK_TIMEOUT", 0.01)


@pytest.fixture
def exit_hooks(monkeypatch: pytest.MonkeyPatch) -> list:
    registered: list = []
    monkeypatch.setattr(shutdown_module.atexit, "register", registered.append)
    return registered


@pytest.fixture
def missing_sidecar(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "bin" / "bridge-server"
    monkeypatch.setattr(app_globals, "SIDECAR_PATH", path)
    monkeypatch.setattr(app_globals, "SIDECAR_ARGS", [])
    return path


@pytest.fixture
def sleeper_sidecar(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app_globals, "SIDECAR_PATH", Path(sys.executable))
    monkeypatch.setattr(app_globals, "SIDECAR_ARGS", ["-c", "import time; time.sleep(60)"])


@pytest.fixture
def log_db(tmp_path: Path) -> LogDBManager:
    db = LogDBManager(tmp_path / "history.db")
    db.initialize_database()
    return db


def test_spawn_failure_runs_degraded(
    fast_polling: None, exit_hooks: list, missing_sidecar: Path
) -> None:
    """A missing sidecar executable leaves the host running, reporting stopped."""
    # Given: A manager whose sidecar executable does not exist
    fetcher = SequenceFetcher([None])
    manager = SidecarManager(fetcher=fetcher)

    # When: Starting the host
    started = manager.start()

    # Then: It runs degraded with the monitor polling and the tray showing stopped
    assert started is False
    assert manager.degraded
    assert "bridge-server" in str(manager.spawn_error)
    assert wait_for(lambda: len(fetcher.calls) >= 2, timeout=5)
    assert manager.monitor.state is HealthState.STOPPED
    assert manager.tray.tooltip == f"{app_globals.APP_NAME} - Server Stopped"
    assert exit_hooks == [manager.coordinator.request_shutdown]

    # When: Shutting down
    manager.shutdown()

    # Then: The sequence completes with nothing to kill
    assert manager.coordinator.completed
    assert wait_for(lambda: not manager.monitor.is_alive, timeout=2)


def test_health_transitions_reach_tray_and_history(
    fast_polling: None, log_db: LogDBManager
) -> None:
    """Each transition updates the tray once and is recorded with sample details."""
    # Given: A manager fed waiting, connected, connected, then no response
    fetcher = SequenceFetcher([
        ok_sample(False, server_version="1.4.0"),
        ok_sample(True, server_version="1.4.0", pending_commands=2),
        ok_sample(True, server_version="1.4.0", pending_commands=2),
        None,
    ])
    manager = SidecarManager(log_db=log_db, fetcher=fetcher)

    # When: Polling four times
    for _ in range(4):
        manager.monitor.poll_once()

    # Then: Three transitions reached the tray and the history
    assert manager.tray.updates == 3
    assert manager.tray.icon == app_globals.TRAY_ICON_STOPPED
    history = log_db.fetch_health_history(10)
    assert [(t.previous, t.state) for t in history] == [
        ("stopped", "waiting"), ("waiting", "running"), ("running", "stopped"),
    ]
    assert history[1].server_version == "1.4.0"
    assert history[1].pending_commands == 2
    assert history[2].server_version is None


def test_no_history_without_log_db(fast_polling: None) -> None:
    manager = SidecarManager(fetcher=SequenceFetcher([ok_sample(True)]))

    manager.monitor.poll_once()

    assert manager.tray.tooltip == f"{app_globals.APP_NAME} - Connected"


def test_start_restart_and_shutdown_real_sidecar(
    fast_polling: None, exit_hooks: list, sleeper_sidecar: None, reaper: list[int]
) -> None:
    """A restarted sidecar is a new process, and shutdown kills it."""
    # Given: A started host with a live sidecar
    manager = SidecarManager(fetcher=SequenceFetcher([None]))
    assert manager.start() is True
    first_pid = manager.supervisor.handle.pid
    reaper.append(first_pid)
    assert manager.status()["running"]

    # When: Restarting the sidecar
    assert manager.restart_sidecar() is True
    second_pid = manager.supervisor.handle.pid
    reaper.append(second_pid)

    # Then: The old process is gone and a new one runs
    assert second_pid != first_pid
    assert is_gone(first_pid)

    # When: Shutting down twice
    manager.shutdown()
    manager.shutdown()

    # Then: The new sidecar is gone and restarts are refused
    assert is_gone(second_pid)
    assert manager.supervisor.handle is None
    assert manager.restart_sidecar() is False


def test_status_snapshot(fast_polling: None, missing_sidecar: Path) -> None:
    manager = SidecarManager(fetcher=SequenceFetcher([ok_sample(False, server_version="1.4.0")]))
    manager.spawn_sidecar()
    manager.monitor.poll_once()

    status = manager.status()

    assert status["pid"] is None
    assert status["running"] is False
    assert status["degraded"] is True
    assert status["descendants"] == []
    assert status["state"] is HealthState.WAITING
    assert status["icon"] == app_globals.TRAY_ICON_WAITING
    assert status["sample"].server_version == "1.4.0"
    assert status["port"] == app_globals.SIDECAR_PORT
    assert status["shutting_down"] is False


@pytest.mark.parametrize(
    ("poll_interval", "timeout"),
    [(3, 5), (0, 0.01), (2, 2)],
)
def test_unusable_health_timings_fall_back_to_defaults(
    monkeypatch: pytest.MonkeyPatch, poll_interval: float, timeout: float
) -> None:
    """A bad timing pair that slipped into the settings does not stop the host from starting."""
    # Given: Settings with a timeout that is not shorter than the interval
    monkeypatch.setattr(app_globals, "HEALTH_POLL_INTERVAL", poll_interval)
    monkeypatch.setattr(app_globals, "HEALTH_CHECK_TIMEOUT", timeout)

    # When: Building the manager
    manager = SidecarManager(fetcher=SequenceFetcher([None]))

    # Then: The monitor runs on the default timings
    assert manager.monitor.poll_interval == default_settings.HEALTH_POLL_INTERVAL
    assert manager.monitor.timeout == default_settings.HEALTH_CHECK_TIMEOUT


def test_no_spawn_after_shutdown(fast_polling: None, exit_hooks: list, sleeper_sidecar: None) -> None:
    """A spawn that loses the race with shutdown is refused instead of leaving an untracked sidecar."""
    # Given: A manager that has already shut down
    manager = SidecarManager(fetcher=SequenceFetcher([None]))
    manager.shutdown()

    # When: A restart path that already passed its shutdown check spawns anyway
    started = manager.spawn_sidecar()

    # Then: No sidecar is started
    assert started is False
    assert manager.supervisor.handle is None
    assert "shut down" in str(manager.spawn_error)
