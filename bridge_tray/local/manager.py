import time
import logging
import threading
from typing import Any, Dict, List, Optional
import bridge_tray.settings as default_settings
from bridge_tray.local import app_globals
from bridge_tray.local.config import health_timing_error
from bridge_tray.local.database import LogDBManager
from bridge_tray.local.tray import ConsoleTray
from bridge_tray.local.supervisor import (
    HealthMonitor, HealthState, ShutdownCoordinator, SidecarSupervisor, SpawnError,
)
from bridge_tray.local.supervisor.process_utils import find_descendants

log = logging.getLogger(__name__)


class SidecarManager:
    """
    Composes the sidecar supervisor, the health monitor and the shutdown
    coordinator, and routes health changes to the tray.

    A spawn failure is not fatal: the manager keeps running in degraded mode
    and the monitor keeps reporting STOPPED.
    """

    def __init__(
        self,
        supervisor: Optional[SidecarSupervisor] = None,
        tray: Optional[ConsoleTray] = None,
        log_db: Optional[LogDBManager] = None,
        fetcher=None,
    ) -> None:
        self.supervisor = supervisor or SidecarSupervisor()
        self.tray = tray or ConsoleTray()
        self.log_db = log_db
        self.shutdown_event = threading.Event()

        self.monitor = self._build_monitor(fetcher)
        self.coordinator = ShutdownCoordinator(self.supervisor, self.shutdown_event, self.monitor)
        self.spawn_error: Optional[SpawnError] = None
        self._last_reported = HealthState.STOPPED

    def _build_monitor(self, fetcher) -> HealthMonitor:
        """Builds the health monitor, falling back to the default timings if the configured pair is unusable."""
        monitor_kwargs: Dict[str, Any] = {}
        if fetcher is not None:
            monitor_kwargs["fetcher"] = fetcher
        timings = [
            (app_globals.HEALTH_POLL_INTERVAL, app_globals.HEALTH_CHECK_TIMEOUT),
            (default_settings.HEALTH_POLL_INTERVAL, default_settings.HEALTH_CHECK_TIMEOUT),
        ]
        for poll_interval, timeout in timings:
            problem = health_timing_error(poll_interval, timeout)
            if problem is None:
                break
            log.error(f"{problem} Falling back to the default health polling timings.")
        return HealthMonitor(
            url=app_globals.HEALTH_URL,
            on_change=self._on_health_change,
            shutdown_event=self.shutdown_event,
            poll_interval=poll_interval,
            timeout=timeout,
            **monitor_kwargs
        )

    @property
    def degraded(self) -> bool:
        """True if the sidecar could not be started."""
        return self.spawn_error is not None

    def _on_health_change(self, state: HealthState) -> None:
        """Presentation callback, invoked by the monitor only on transitions."""
        previous, self._last_reported = self._last_reported, state
        self.tray.update(state)
        if self.log_db is not None:
            sample = self.monitor.last_sample
            self.log_db.insert_health_transition(
                previous=previous.value,
                state=state.value,
                server_version=sample.server_version if sample else None,
                pending_commands=sample.pending_commands if sample else None,
            )

    def spawn_sidecar(self) -> bool:
        """
        Spawns the sidecar, logging (not raising) a failure.

        :return: True if the sidecar was started.
        """
        try:
            self.supervisor.spawn()
            self.spawn_error = None
            return True
        except SpawnError as e:
            self.spawn_error = e
            log.error(f"{e}. Continuing without a sidecar; health will report stopped.")
            return False

    def start(self) -> bool:
        """
        Starts the sidecar and the health monitor and registers the exit hook.

        :return: True if the sidecar was started, False if running degraded.
        """
        log.info("=" * 20 + f" {app_globals.APP_NAME} Host Starting " + "=" * 20)
        app_globals.start_time = time.time()
        self.coordinator.register_exit_hook()
        started = self.spawn_sidecar()
        self.monitor.start()
        return started

    def restart_sidecar(self) -> bool:
        """Terminates the current sidecar tree and spawns a new one."""
        if self.shutdown_event.is_set():
            log.warning("Cannot restart the sidecar while shutting down.")
            return False
        log.info("Restarting sidecar...")
        self.supervisor.terminate()
        return self.spawn_sidecar()

    def shutdown(self) -> None:
        """Stops polling and kills the sidecar tree. Safe to call repeatedly."""
        self.coordinator.request_shutdown()
        if app_globals.start_time:
            runtime = time.strftime('%H:%M:%S', time.gmtime(time.time() - app_globals.start_time))
            log.info(f"Host stop sequence completed. Total runtime: {runtime}")

    def status(self) -> Dict[str, Any]:
        """Collects a snapshot of the sidecar and its health for display."""
        handle = self.supervisor.handle
        sample = self.monitor.last_sample
        descendants: List[int] = []
        if handle is not None and self.supervisor.is_running():
            descendants = [p.pid for p in find_descendants(handle.pid, app_globals.KILL_DESCENDANTS_RECURSIVELY)]
        return {
            "pid": handle.pid if handle else None,
            "running": self.supervisor.is_running(),
            "degraded": self.degraded,
            "spawn_error": str(self.spawn_error) if self.spawn_error else None,
            "descendants": descendants,
            "state": self.monitor.state,
            "tooltip": self.tray.tooltip,
            "icon": self.tray.icon,
            "sample": sample,
            "last_polled_at": self.monitor.last_polled_at,
            "port": app_globals.SIDECAR_PORT,
            "shutting_down": self.shutdown_event.is_set(),
        }
