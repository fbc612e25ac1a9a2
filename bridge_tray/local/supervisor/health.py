import time
import logging
import threading
import requests
from enum import Enum
from typing import Any, Callable, Dict, NamedTuple, Optional

log = logging.getLogger(__name__)

OK_STATUS = "ok"


class HealthState(Enum):
    """Last observed classification of the sidecar's health."""
    RUNNING = "running"
    WAITING = "waiting"
    STOPPED = "stopped"


class HealthSample(NamedTuple):
    """One parsed response from the sidecar's health endpoint."""
    status: str
    plugin_connected: bool = False
    pending_commands: int = 0
    server_version: Optional[str] = None
    protocol_version: Optional[int] = None

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "HealthSample":
        """
        Builds a sample from a decoded health response.

        `status` is required. Optional fields that are missing take their
        defaults and unknown fields are ignored, but a field that is present
        with the wrong type makes the whole response invalid.

        :raises ValueError: If the payload is not a JSON object or a field has the wrong type.
        """
        if not isinstance(payload, dict):
            raise ValueError(f"Health response is not a JSON object: {type(payload).__name__}")

        status = payload.get("status")
        if not isinstance(status, str):
            raise ValueError(f"Health response has no string 'status': {status!r}")

        plugin_connected = payload.get("pluginConnected", False)
        if not isinstance(plugin_connected, bool):
            raise ValueError(f"'pluginConnected' is not a boolean: {plugin_connected!r}")

        server_version = payload.get("serverVersion")
        if server_version is not None and not isinstance(server_version, str):
            raise ValueError(f"'serverVersion' is not a string: {server_version!r}")

        return cls(
            status=status,
            plugin_connected=plugin_connected,
            pending_commands=_counter(payload, "pendingCommands", 0),
            server_version=server_version,
            protocol_version=_counter(payload, "protocolVersion", None, nullable=True),
        )


def _counter(payload: Dict[str, Any], key: str, default: Optional[int], nullable: bool = False) -> Optional[int]:
    """Reads an unsigned 32-bit integer field."""
    if key not in payload:
        return default
    value = payload[key]
    if value is None and nullable:
        return None
    # bool is a subclass of int.
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 0xFFFFFFFF:
        raise ValueError(f"'{key}' is not an unsigned 32-bit integer: {value!r}")
    return value


def fetch_health(url: str, timeout: float) -> Optional[HealthSample]:
    """
    Performs one bounded request against the sidecar's health endpoint.

    :param url: The full health endpoint URL.
    :param timeout: Request timeout in seconds.
    :return: The parsed sample, or None if the sidecar is unreachable or answered garbage.
    """
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        return HealthSample.from_json(response.json())
    except requests.exceptions.RequestException as e:
        log.debug(f"Health check against '{url}' failed: {e}")
    except ValueError as e:
        log.debug(f"Health check against '{url}' returned an unreadable body: {e}")
    return None


def classify(sample: Optional[HealthSample]) -> HealthState:
    """Maps a health sample (or the lack of one) to a HealthState."""
    if sample is None or sample.status != OK_STATUS:
        return HealthState.STOPPED
    if sample.plugin_connected:
        return HealthState.RUNNING
    return HealthState.WAITING


class HealthMonitor:
    """
    Polls the sidecar's health endpoint on a dedicated thread and reports
    state transitions to a callback.

    The loop runs until `shutdown_event` is set. It checks the event once per
    cycle, so a poll already in flight completes before the thread exits.
    """

    def __init__(
        self,
        url: str,
        on_change: Callable[[HealthState], None],
        shutdown_event: threading.Event,
        poll_interval: float = 3,
        timeout: float = 2,
        fetcher: Callable[[str, float], Optional[HealthSample]] = fetch_health,
    ) -> None:
        if timeout >= poll_interval:
            raise ValueError(
                f"Health check timeout ({timeout}s) must be shorter than the poll interval ({poll_interval}s)."
            )
        self.url = url
        self.on_change = on_change
        self.shutdown_event = shutdown_event
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._fetch = fetcher

        self._state = HealthState.STOPPED
        self.last_sample: Optional[HealthSample] = None
        self.last_polled_at: Optional[float] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> HealthState:
        return self._state

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def poll_once(self) -> Optional[HealthState]:
        """
        Runs a single poll cycle.

        :return: The new state if it changed and was reported, otherwise None.
        """
        try:
            sample = self._fetch(self.url, self.timeout)
        except Exception as e:
            log.error(f"Unexpected error while polling sidecar health: {e}", exc_info=True)
            sample = None

        self.last_sample = sample
        self.last_polled_at = time.time()
        new_state = classify(sample)

        if new_state is self._state:
            return None
        if self.shutdown_event.is_set():
            log.debug(f"Ignoring health change to {new_state.value}: shutdown in progress.")
            return None

        previous, self._state = self._state, new_state
        log.info(f"Sidecar health changed: {previous.value} -> {new_state.value}")
        try:
            self.on_change(new_state)
        except Exception as e:
            log.error(f"Health change callback failed for state '{new_state.value}': {e}", exc_info=True)
        return new_state

    def run(self) -> None:
        """The polling loop. Blocks until the shutdown event is set."""
        log.info(f"Health monitor started. Polling {self.url} every {self.poll_interval}s.")
        while not self.shutdown_event.is_set():
            self.poll_once()
            self.shutdown_event.wait(self.poll_interval)
        log.info("Health monitor has stopped.")

    def start(self) -> None:
        """Starts the polling loop on a daemon thread."""
        if self.is_alive:
            log.debug("Health monitor thread is already running.")
            return
        self._thread = threading.Thread(target=self.run, daemon=True, name="HealthMonitorThread")
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Waits for the polling thread to exit.

        :return: True if the thread is no longer running.
        """
        if self._thread is None:
            return True
        if self._thread is not threading.current_thread():
            self._thread.join(timeout)
        return not self._thread.is_alive()
