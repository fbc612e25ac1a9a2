"""Tests for the one-shot shutdown sequence."""

from __future__ import annotations

import threading

import pytest

from bridge_tray.local.supervisor import shutdown as shutdown_module
from bridge_tray.local.supervisor.shutdown import ShutdownCoordinator


class _StubSupervisor:
    """Records terminate calls and whether shutdown was already flagged at that time."""

    def __init__(self, shutdown_event: threading.Event, error: Exception | None = None) -> None:
        self.shutdown_event = shutdown_event
        self.error = error
        self.calls = 0
        self.flag_set_at_terminate: list[bool] = []
        self.closed: list[bool] = []

    def terminate(self, close: bool = False) -> list[int]:
        self.calls += 1
        self.flag_set_at_terminate.append(self.shutdown_event.is_set())
        self.closed.append(close)
        if self.error is not None:
            raise self.error
        return [4242]


class _StubMonitor:
    poll_interval = 0.05
    timeout = 0.01

    def __init__(self, stays_alive: bool = False) -> None:
        self.stays_alive = stays_alive
        self.join_timeouts: list[float | None] = []

    def join(self, timeout: float | None = None) -> bool:
        self.join_timeouts.append(timeout)
        return not self.stays_alive


def _coordinator(error: Exception | None = None, monitor: _StubMonitor | None = None):
    event = threading.Event()
    supervisor = _StubSupervisor(event, error)
    return ShutdownCoordinator(supervisor, event, monitor), supervisor, event  # type: ignore[arg-type]


def test_flag_is_set_before_tree_is_killed() -> None:
    """Polling is stopped before the sidecar is terminated."""
    # Given: A coordinator over a recording supervisor
    coordinator, supervisor, event = _coordinator()

    # When: Requesting shutdown
    coordinator.request_shutdown()

    # Then: The flag was already set when terminate ran, and the supervisor was closed
    assert supervisor.flag_set_at_terminate == [True]
    assert supervisor.closed == [True]
    assert event.is_set()
    assert coordinator.completed


def test_repeated_requests_terminate_once() -> None:
    coordinator, supervisor, _ = _coordinator()

    coordinator.request_shutdown()
    coordinator.request_shutdown()
    coordinator.request_shutdown()

    assert supervisor.calls == 1


def test_concurrent_requests_terminate_once() -> None:
    """Shutdown requests racing from several threads still kill exactly once."""
    # Given: Eight threads released at the same moment
    coordinator, supervisor, _ = _coordinator()
    barrier = threading.Barrier(8)

    def request() -> None:
        barrier.wait(5)
        coordinator.request_shutdown()

    threads = [threading.Thread(target=request) for _ in range(8)]

    # When: All of them request shutdown
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(5)

    # Then: terminate ran once
    assert supervisor.calls == 1


def test_monitor_is_joined_with_bounded_wait() -> None:
    monitor = _StubMonitor()
    coordinator, _, _ = _coordinator(monitor=monitor)

    coordinator.request_shutdown()

    assert monitor.join_timeouts == [pytest.approx(0.06)]


def test_lingering_monitor_does_not_block_completion() -> None:
    monitor = _StubMonitor(stays_alive=True)
    coordinator, supervisor, _ = _coordinator(monitor=monitor)

    coordinator.request_shutdown()

    assert coordinator.completed
    assert supervisor.calls == 1


def test_terminate_failure_is_contained() -> None:
    """An error while killing the tree is logged, not raised, and not retried."""
    # Given: A supervisor whose terminate raises
    monitor = _StubMonitor()
    coordinator, supervisor, event = _coordinator(error=RuntimeError("kill failed"), monitor=monitor)

    # When: Requesting shutdown twice
    coordinator.request_shutdown()
    coordinator.request_shutdown()

    # Then: The sequence still completed once
    assert event.is_set()
    assert supervisor.calls == 1
    assert len(monitor.join_timeouts) == 1


def test_exit_hook_registered_once(monkeypatch: pytest.MonkeyPatch) -> None:
    registered = []
    monkeypatch.setattr(shutdown_module.atexit, "register", registered.append)
    coordinator, _, _ = _coordinator()

    coordinator.register_exit_hook()
    coordinator.register_exit_hook()

    assert registered == [coordinator.request_shutdown]
