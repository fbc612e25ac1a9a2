"""
The Supervisor package.
Manages the lifecycle and health of the bridge-server sidecar.

This package contains the SidecarSupervisor (process handle ownership), the
HealthMonitor (polling loop) and the ShutdownCoordinator (ordered teardown),
together with the process helpers they share.
"""
from .errors import SpawnError
from .health import HealthMonitor, HealthSample, HealthState
from .process_utils import WorkerHandle
from .shutdown import ShutdownCoordinator
from .supervisor import SidecarSupervisor

__all__ = [
    'HealthMonitor', 'HealthSample', 'HealthState', 'ShutdownCoordinator',
    'SidecarSupervisor', 'SpawnError', 'WorkerHandle',
]
