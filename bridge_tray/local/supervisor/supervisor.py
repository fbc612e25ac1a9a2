import logging
import threading
from pathlib import Path
from typing import List, Optional, Sequence
from bridge_tray.local import app_globals
from bridge_tray.local.supervisor import process_utils
from bridge_tray.local.supervisor.errors import SpawnError
from bridge_tray.local.supervisor.process_utils import WorkerHandle

log = logging.getLogger(__name__)


class SidecarSupervisor:
    """
    Owns the handle of the single supervised sidecar process.

    The handle is written by the spawn path and taken by the shutdown path,
    which may run on different threads, so every access goes through one lock.
    The lock is only held to read, set or take the handle; the kill calls run
    outside it.
    """

    def __init__(self, lock_timeout: Optional[float] = None) -> None:
        self._handle: Optional[WorkerHandle] = None
        self._closed = False
        self._lock = threading.Lock()
        self.lock_timeout = app_globals.HANDLE_LOCK_TIMEOUT if lock_timeout is None else lock_timeout

    def _acquire(self) -> bool:
        if self._lock.acquire(timeout=self.lock_timeout):
            return True
        log.warning(f"Could not acquire the sidecar handle lock within {self.lock_timeout}s.")
        return False

    @property
    def handle(self) -> Optional[WorkerHandle]:
        """The current handle, or None. Reads go through the lock as well."""
        if not self._acquire():
            return None
        try:
            return self._handle
        finally:
            self._lock.release()

    def is_running(self) -> bool:
        return process_utils.is_alive(self.handle)

    def spawn(self, command: Optional[Sequence[str]] = None, cwd: Optional[Path] = None) -> WorkerHandle:
        """
        Spawns the sidecar and stores its handle.

        :param command: The command to run. Defaults to the configured sidecar.
        :param cwd: Working directory. Defaults to the configured bin directory.
        :return: The new WorkerHandle.
        :raises SpawnError: If a sidecar is already running, the supervisor was shut down or the launch fails.
        """
        if command is None:
            command, default_cwd = process_utils.get_sidecar_args()
            cwd = cwd if cwd is not None else default_cwd

        if not self._acquire():
            raise SpawnError(command, "sidecar handle lock is unavailable")
        try:
            if self._closed:
                raise SpawnError(command, "supervisor has been shut down")
            if self._handle is not None:
                if process_utils.is_alive(self._handle):
                    raise SpawnError(command, f"sidecar is already running with PID {self._handle.pid}")
                log.debug(f"Replacing handle of exited sidecar (PID {self._handle.pid}).")
            # Spawning is a short OS call; holding the lock keeps two spawns from racing.
            self._handle = process_utils.spawn(command, cwd=cwd, name=app_globals.SIDECAR_NAME)
            return self._handle
        finally:
            self._lock.release()

    def take_handle(self, close: bool = False) -> Optional[WorkerHandle]:
        """
        Removes and returns the current handle.

        If the lock cannot be acquired the handle is treated as absent.

        :param close: Also refuse every later spawn.
        """
        if close:
            self._closed = True
        if not self._acquire():
            return None
        try:
            handle, self._handle = self._handle, None
            return handle
        finally:
            self._lock.release()

    def terminate(self, grace_period: Optional[float] = None, close: bool = False) -> List[int]:
        """
        Takes the handle and terminates the sidecar's process tree.
        Safe to call any number of times; only the first call with a live
        handle signals anything.

        :param close: Shut the supervisor down for good, so a spawn racing
            with this call cannot leave an untracked sidecar behind.
        :return: The pids that received a terminate signal.
        """
        handle = self.take_handle(close=close)
        if handle is None:
            log.debug("Sidecar terminate requested but no handle is present.")
            return []
        return process_utils.terminate_tree(handle, grace_period=grace_period)
