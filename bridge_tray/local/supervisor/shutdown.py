import atexit
import logging
import threading
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .health import HealthMonitor
    from .supervisor import SidecarSupervisor

log = logging.getLogger(__name__)


class ShutdownCoordinator:
    """
    Tears the sidecar down exactly once, in order: first the health monitor
    is told to stop, then the sidecar's process tree is terminated.

    Signalling the monitor first keeps a poll from reporting the state of a
    sidecar that is already being killed.
    """

    def __init__(
        self,
        supervisor: "SidecarSupervisor",
        shutdown_event: threading.Event,
        monitor: Optional["HealthMonitor"] = None,
    ) -> None:
        self.supervisor = supervisor
        self.shutdown_event = shutdown_event
        self.monitor = monitor
        self._lock = threading.Lock()
        self._completed = False
        self._hook_registered = False

    @property
    def completed(self) -> bool:
        return self._completed

    def request_shutdown(self) -> None:
        """
        Stops polling, then kills the sidecar tree. Idempotent and thread-safe;
        never raises.
        """
        with self._lock:
            if self._completed:
                log.debug("Shutdown already completed. Ignoring repeated request.")
                return
            self._completed = True

            log.info("Shutdown requested. Stopping health monitor...")
            self.shutdown_event.set()

            try:
                pids = self.supervisor.terminate(close=True)
                if pids:
                    log.info(f"Sidecar process tree terminated (PIDs: {', '.join(map(str, pids))}).")
                else:
                    log.info("No sidecar process to terminate.")
            except Exception as e:
                log.error(f"Unexpected error while terminating the sidecar: {e}", exc_info=True)

            if self.monitor is not None:
                wait_for = self.monitor.poll_interval + self.monitor.timeout
                if not self.monitor.join(timeout=wait_for):
                    log.warning(f"Health monitor thread did not exit within {wait_for}s.")

    def register_exit_hook(self) -> None:
        """Registers request_shutdown to run when the interpreter exits."""
        if self._hook_registered:
            return
        atexit.register(self.request_shutdown)
        self._hook_registered = True
