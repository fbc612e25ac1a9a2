import sys
import time
import shutil
import psutil
import logging
import threading
import subprocess
from pathlib import Path
from bridge_tray.local import app_globals
from bridge_tray.local.supervisor.errors import SpawnError
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

log = logging.getLogger(__name__)


class WorkerHandle(NamedTuple):
    """A spawned sidecar process. `process` is the capability used to signal it."""
    pid: int
    process: psutil.Popen
    command: List[str]
    started_at: float


#* --- Process Creation ---
def get_executable_path(base_path: Path) -> Path:
    """Returns the platform-specific full path for an executable."""
    return base_path.with_suffix(".exe") if sys.platform == "win32" else base_path

def _get_popen_creation_flags() -> Dict[str, Any]:
    """Returns platform-specific creation flags for subprocess.Popen."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.DETACHED_PROCESS | subprocess.CREATE_NO_WINDOW}
    return {"start_new_session": True}

def resolve_executable(executable: Union[str, Path]) -> Optional[str]:
    """
    Resolves the executable named by a command to a runnable path.

    Paths (anything containing a separator) are checked on disk, with the
    platform suffix applied. Bare names are looked up on PATH.

    :param executable: The first element of a command.
    :return: The resolved path as a string, or None if nothing runnable was found.
    """
    candidate = Path(executable)
    if candidate.parent != Path("."):
        exe_path = get_executable_path(candidate)
        if exe_path.is_file():
            return str(exe_path)
        return str(candidate) if candidate.is_file() else None
    return shutil.which(str(executable))

def get_sidecar_args() -> Tuple[List[str], Path]:
    """Returns the command-line arguments and CWD for the bundled sidecar."""
    command = [str(get_executable_path(app_globals.SIDECAR_PATH)), *app_globals.SIDECAR_ARGS]
    return command, app_globals.BIN_DIR

def _read_pipe(pipe, process_name: str, level: int):
    """Target function for reader threads. Reads and logs lines from a subprocess pipe."""
    proc_logger = logging.getLogger(f"proc.{process_name}")
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            proc_logger.log(level, line)
    except Exception as e:
        proc_logger.debug(f"Pipe reader for {process_name} stream exited: {e}")
    finally:
        pipe.close()

def log_process_output(process: psutil.Popen, name: str):
    """Starts background threads to consume and log a process's stdout/stderr."""
    if process.stdout:
        threading.Thread(
            target=_read_pipe, args=(process.stdout, name, logging.INFO),
            daemon=True, name=f"{name}-stdout"
        ).start()
    if process.stderr:
        threading.Thread(
            target=_read_pipe, args=(process.stderr, name, logging.ERROR),
            daemon=True, name=f"{name}-stderr"
        ).start()

def spawn(command: Sequence[str], cwd: Optional[Path] = None, name: Optional[str] = None) -> WorkerHandle:
    """
    Launches the sidecar as a child process and starts logging its output.

    :param command: The executable followed by its arguments.
    :param cwd: Working directory for the child. Defaults to the host's CWD.
    :param name: Logical process name used for the 'proc.<name>' output logger.
    :return: A WorkerHandle for the new process.
    :raises SpawnError: If the executable cannot be resolved or the OS refuses to start it.
    """
    command = [str(part) for part in command]
    if not command:
        raise SpawnError(command, "empty command")

    executable = resolve_executable(command[0])
    if executable is None:
        raise SpawnError(command, f"executable not found at '{command[0]}'")

    name = name or Path(executable).stem
    if cwd is not None and not Path(cwd).is_dir():
        log.warning(f"Working directory '{cwd}' does not exist. Starting {name} in the current directory.")
        cwd = None

    log.info(f"Starting process: {name}...")
    try:
        p = psutil.Popen(
            [executable, *command[1:]],
            stdout=subprocess.PIPE, stderr=subprocess.PIPE, stdin=subprocess.DEVNULL,
            cwd=str(Path(cwd).resolve()) if cwd is not None else None,
            **_get_popen_creation_flags()
        )
    except (OSError, ValueError, psutil.Error) as e:
        raise SpawnError(command, str(e)) from e

    log_process_output(p, name)
    log.info(f"{name} started successfully with PID: {p.pid}")
    return WorkerHandle(pid=p.pid, process=p, command=command, started_at=time.time())


#* --- Process Status ---
def is_alive(handle: Optional[WorkerHandle]) -> bool:
    """True if the handle's process is still running and not a zombie."""
    if handle is None:
        return False
    try:
        return handle.process.is_running() and handle.process.status() != psutil.STATUS_ZOMBIE
    except psutil.Error:
        return False

def find_descendants(pid: int, recursive: bool = False) -> List[psutil.Process]:
    """
    Lists the processes whose recorded parent pid is `pid`.

    By default only direct children are returned, found by scanning the whole
    process table. With `recursive=True` the full tree below `pid` is returned.

    :param pid: The parent process id.
    :param recursive: Walk grandchildren and below as well.
    :return: A list of psutil.Process objects (possibly empty).
    """
    if recursive:
        try:
            return psutil.Process(pid).children(recursive=True)
        except psutil.Error as e:
            log.debug(f"Could not walk process tree of PID {pid}: {e}")
            return []

    children = []
    for proc in psutil.process_iter(["ppid"]):
        if proc.info.get("ppid") == pid and proc.pid != pid:
            children.append(proc)
    return children


#* --- Process Termination ---
def _send_terminate(proc: psutil.Process) -> bool:
    """Sends a terminate signal to one process. Returns True if it was delivered."""
    try:
        proc.terminate()
        log.debug(f"Sent terminate signal to PID {proc.pid}")
        return True
    except psutil.NoSuchProcess:
        log.debug(f"Process {proc.pid} no longer exists, skipping termination.")
    except psutil.AccessDenied:
        log.warning(f"Access denied while terminating PID {proc.pid}.")
    except psutil.Error as e:
        log.warning(f"Failed to terminate PID {proc.pid}: {e}")
    return False

def _forceful_kill(processes: List[psutil.Process]) -> None:
    """Forcefully kills processes that didn't terminate gracefully."""
    if not processes:
        return

    log.warning(f"{len(processes)} processes did not terminate gracefully. Forcing shutdown...")
    for proc in processes:
        try:
            log.warning(f"Killing stubborn process PID {proc.pid}.")
            proc.kill()
        except psutil.NoSuchProcess:
            log.debug(f"Process {proc.pid} no longer exists, skipping forceful kill.")
        except psutil.Error as e:
            log.warning(f"Failed to kill PID {proc.pid}: {e}")

def _wait_or_kill(processes: List[psutil.Process], grace_period: float) -> None:
    """Waits for signalled processes to exit, reaping our own child, then kills survivors."""
    if not processes or grace_period <= 0:
        return
    try:
        _, alive = psutil.wait_procs(processes, timeout=grace_period)
    except psutil.Error as e:
        log.debug(f"Waiting for terminated processes failed: {e}")
        return
    _forceful_kill(alive)

def terminate_tree(
    handle: Optional[WorkerHandle],
    grace_period: Optional[float] = None,
    recursive: Optional[bool] = None,
) -> List[int]:
    """
    Terminates the sidecar and its descendant processes. Never raises.

    The descendants are recorded before the sidecar is signalled, since a
    child re-parents away from the sidecar as soon as the sidecar exits.

    :param handle: The handle to terminate. None is a no-op.
    :param grace_period: Seconds to wait before force-killing survivors.
    :param recursive: Also terminate grandchildren. Defaults to the config setting.
    :return: The pids that received a terminate signal.
    """
    if handle is None:
        log.debug("No sidecar handle present. Nothing to terminate.")
        return []

    if grace_period is None:
        grace_period = app_globals.GRACEFUL_SHUTDOWN_TIMEOUT
    if recursive is None:
        recursive = app_globals.KILL_DESCENDANTS_RECURSIVELY

    worker_pid = handle.pid
    try:
        descendants = find_descendants(worker_pid, recursive=recursive)
    except Exception as e:
        log.warning(f"Could not enumerate descendants of PID {worker_pid}: {e}")
        descendants = []

    log.info(f"Terminating sidecar (PID {worker_pid}) and {len(descendants)} descendant process(es)...")
    targets: List[psutil.Process] = [handle.process, *descendants]
    signalled = [proc for proc in targets if _send_terminate(proc)]

    try:
        _wait_or_kill(signalled, grace_period)
    except Exception as e:
        log.warning(f"Error while waiting for sidecar tree to exit: {e}")

    return [proc.pid for proc in signalled]
