"""Test helpers: stub health fetchers and process-tree utilities."""

from __future__ import annotations

import sys
import time
from collections.abc import Callable

import psutil

from bridge_tray.local.supervisor.health import HealthSample

SLEEPER_COMMAND = [sys.executable, "-c", "import time; time.sleep(60)"]

# Spawns a chain of `depth` descendants below itself, then sleeps.
TREE_SCRIPT = """
import subprocess
import sys
import time

depth = int(sys.argv[1])
if depth > 0:
    subprocess.Popen([sys.executable, __file__, str(depth - 1)])
time.sleep(60)
"""


def wait_for(predicate: Callable[[], bool], timeout: float = 10.0, interval: float = 0.05) -> bool:
    """Polls `predicate` until it is true or `timeout` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def is_gone(pid: int) -> bool:
    """True if the process has exited (an unreaped zombie counts as exited)."""
    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


def ok_sample(plugin_connected: bool = True, **kwargs) -> HealthSample:
    return HealthSample(status="ok", plugin_connected=plugin_connected, **kwargs)


class SequenceFetcher:
    """Health fetcher stub that replays a list of samples, then repeats the last one."""

    def __init__(self, samples: list[HealthSample | None]) -> None:
        self._samples = list(samples)
        self.calls: list[tuple[str, float]] = []

    def __call__(self, url: str, timeout: float) -> HealthSample | None:
        self.calls.append((url, timeout))
        if len(self._samples) > 1:
            return self._samples.pop(0)
        return self._samples[0] if self._samples else None
