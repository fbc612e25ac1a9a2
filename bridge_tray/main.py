import sys
import signal
import sqlite3
import logging
import threading
from typing import List, Optional

# Basic console logger for messages BEFORE full setup is complete.
# This logger will be replaced by the full setup later.
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)-8s - [console] - %(message)s',
    stream=sys.stdout
)
log = logging.getLogger("console")

import setproctitle
from bridge_tray.local import app_globals
from bridge_tray.local.console import execute_command
from bridge_tray.local.database import LogDBManager
from bridge_tray.local.manager import SidecarManager
from bridge_tray.log.setup import setup_logging

CONSOLE_LOCK = threading.Lock()
USAGE = "Usage: python -m bridge_tray.main [--verbose] [--headless]"


def _raise_system_exit(signum, frame) -> None:
    """SIGTERM handler: unwind the main thread so the shutdown path runs."""
    raise SystemExit(128 + signum)


def _open_log_db() -> Optional[LogDBManager]:
    log_db = LogDBManager(app_globals.LOG_DB_PATH)
    try:
        log_db.initialize_database()
    except sqlite3.Error as e:
        log.error(f"Log database unavailable, health history will not be recorded: {e}")
        return None
    return log_db


def run_headless(manager: SidecarManager) -> None:
    """Blocks until shutdown is requested or the process is signalled."""
    log.info("Running headless. Press Ctrl+C to stop.")
    while not manager.shutdown_event.wait(1):
        pass


def run_console(manager: SidecarManager) -> None:
    """The interactive management console."""
    print(f"--- {app_globals.APP_NAME} Host Console ---")
    print("Type 'help' for a list of commands.")
    state = "Running" if manager.supervisor.is_running() else "Stopped"
    print(f"Sidecar is currently {state}.")

    while not manager.shutdown_event.is_set():
        try:
            # The input prompt must be outside the lock to not block background threads
            command_line_str = input("> ")
        except EOFError:
            break
        with CONSOLE_LOCK:
            command_line = command_line_str.strip().split()
            if not command_line:
                continue
            command, args = command_line[0].lower(), command_line[1:]
            try:
                if execute_command(manager, command, args):
                    break
            except Exception as e:
                log.error(f"An unexpected error occurred in the console: {e}", exc_info=True)


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the host application."""
    args = sys.argv[1:] if argv is None else argv
    unknown = [a for a in args if a not in ("--verbose", "--headless")]
    if unknown:
        print(f"Unknown argument(s): {' '.join(unknown)}\n{USAGE}")
        return 2

    if "--verbose" in args:
        app_globals.VERBOSE_LOGGING = True

    setproctitle.setproctitle(app_globals.HOST_PROCESS_TITLE)
    setup_logging(logging.DEBUG if app_globals.VERBOSE_LOGGING else logging.INFO)

    manager = SidecarManager(log_db=_open_log_db())
    signal.signal(signal.SIGTERM, _raise_system_exit)

    try:
        manager.start()
        if "--headless" in args:
            run_headless(manager)
        else:
            run_console(manager)
    except KeyboardInterrupt:
        log.warning("Interrupted by user.")
    finally:
        manager.shutdown()
    return 0


if __name__ == "__main__":
    exit_code = main()
    print(f"Exiting {app_globals.APP_NAME}. See you next time!")
    sys.exit(exit_code)
