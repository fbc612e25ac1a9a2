"""
Tray presentation for the sidecar's health.

`present_state` is the presentation contract: it maps every HealthState to the
tray icon asset and tooltip text. `ConsoleTray` is the host-side display used
by the management console; a GUI host would swap it for a real tray icon.
"""

import logging
import threading
from pathlib import Path
from typing import Dict, Optional, Tuple
from bridge_tray.local import app_globals
from bridge_tray.local.supervisor.health import HealthState

log = logging.getLogger(__name__)

TRAY_ICONS: Dict[HealthState, str] = {
    HealthState.RUNNING: app_globals.TRAY_ICON_CONNECTED,
    HealthState.WAITING: app_globals.TRAY_ICON_WAITING,
    HealthState.STOPPED: app_globals.TRAY_ICON_STOPPED,
}

TRAY_TOOLTIP_SUFFIXES: Dict[HealthState, str] = {
    HealthState.RUNNING: "Connected",
    HealthState.WAITING: "Waiting for Plugin",
    HealthState.STOPPED: "Server Stopped",
}


def present_state(state: HealthState) -> Tuple[str, str]:
    """
    Returns the (icon file name, tooltip) pair for a health state.

    :raises KeyError: If a HealthState member has no presentation entry.
    """
    return TRAY_ICONS[state], f"{app_globals.APP_NAME} - {TRAY_TOOLTIP_SUFFIXES[state]}"


class ConsoleTray:
    """Holds the currently displayed icon and tooltip and logs every change."""

    def __init__(self, icons_dir: Optional[Path] = None) -> None:
        self.icons_dir = icons_dir or app_globals.ICONS_DIR
        self._lock = threading.Lock()
        self.icon, self.tooltip = present_state(HealthState.STOPPED)
        self.updates = 0

    @property
    def icon_path(self) -> Path:
        return self.icons_dir / self.icon

    def update(self, state: HealthState) -> None:
        """Sets the icon and tooltip for `state`."""
        icon, tooltip = present_state(state)
        with self._lock:
            self.icon, self.tooltip = icon, tooltip
            self.updates += 1
        log.info(f"Tray updated: '{tooltip}' (icon: {icon})")
