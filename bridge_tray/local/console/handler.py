import time
import psutil
import logging
from typing import TYPE_CHECKING, List
from bridge_tray.local import app_globals
from bridge_tray.local.database import LogDBManager
from bridge_tray.log.setup import get_console_handler

if TYPE_CHECKING:
    from bridge_tray.local.manager import SidecarManager

log = logging.getLogger(__name__)


def _format_ts(timestamp: float) -> str:
    return time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(timestamp))


def _describe_process(pid: int, label: str) -> str:
    """One status line with resource usage for a process."""
    try:
        p = psutil.Process(pid)
        cpu = p.cpu_percent(interval=0.1)
        mem = p.memory_info().rss
        return f"  - {p.name() + ' (' + label + ')':<32} : PID {pid:<8} | Status: {p.status().upper()} | CPU: {cpu:.1f}% | MEM: {mem/1024/1024:.1f} MB"
    except psutil.NoSuchProcess:
        return f"  - {label:<32} : PID {pid:<8} | Status: STOPPED"
    except psutil.AccessDenied:
        return f"  - {label:<32} : PID {pid:<8} | Status: RUNNING (Access Denied)"


def display_status(manager: "SidecarManager") -> None:
    """Displays the sidecar's process status and its last reported health."""
    status = manager.status()

    print("\n--- Sidecar Status ---")
    if status["pid"] is None:
        print("  Sidecar process        : NOT RUNNING")
        if status["spawn_error"]:
            print(f"  Last spawn error       : {status['spawn_error']}")
    else:
        print(_describe_process(status["pid"], app_globals.SIDECAR_NAME))
        for child_pid in status["descendants"]:
            print(_describe_process(child_pid, "child"))

    sample = status["sample"]
    print(f"\n  Health                 : {status['state'].value.upper()}")
    print(f"  Tray                   : {status['tooltip']} ({status['icon']})")
    print(f"  Port                   : {status['port']}")
    if sample is not None:
        print(f"  Plugin                 : {'Connected' if sample.plugin_connected else 'Waiting'}")
        print(f"  Pending commands       : {sample.pending_commands}")
        print(f"  Server version         : {sample.server_version or '--'}")
        print(f"  Protocol version       : {sample.protocol_version if sample.protocol_version is not None else '--'}")
    if status["last_polled_at"]:
        print(f"  Last poll              : {_format_ts(status['last_polled_at'])}")
    if app_globals.start_time:
        print(f"  Runtime                : {time.strftime('%H:%M:%S', time.gmtime(time.time() - app_globals.start_time))}")
    print("-" * 22 + "\n")


def display_history(manager: "SidecarManager") -> None:
    """Displays the most recent sidecar health transitions."""
    if manager.log_db is None:
        print("Health history is unavailable (log database disabled).")
        return

    transitions = manager.log_db.fetch_health_history(app_globals.LOG_HISTORY_COUNT)
    if not transitions:
        print("No health transitions recorded yet.")
        return

    print(f"\n--- Last {len(transitions)} health transitions ---")
    for t in transitions:
        version = f" | server {t.server_version}" if t.server_version else ""
        print(f"  {_format_ts(t.timestamp)} : {str(t.previous).upper():<8} -> {t.state.upper():<8}{version}")
    print()


def handle_logs_command(log_db: LogDBManager) -> None:
    """Prints the last LOG_HISTORY_COUNT log entries."""
    # Flush buffered records so the output includes the latest lines.
    for handler in logging.getLogger().handlers:
        handler.flush()

    print(f"\n--- Displaying last {app_globals.LOG_HISTORY_COUNT} log entries ---")
    for log_entry in log_db.fetch_last_entries(app_globals.LOG_HISTORY_COUNT, app_globals.VERBOSE_LOGGING):
        print(log_entry.message)
    print()


def _config_show() -> None:
    """Displays the current modifiable settings."""
    print("\n--- Current Host Configuration ---")
    for key, value in app_globals.modifiable_settings().items():
        print(f"  {key} = {value}")
    print("---")
    print("Use 'config set <KEY> <VALUE>' to change a setting.")
    print("Health polling changes apply after the host is restarted.")
    print("----------------------------------\n")


def _config_set(args: List[str]) -> None:
    """Sets a configuration setting and persists it."""
    if len(args) < 2:
        print("Usage: config set <SETTING_NAME> <VALUE>")
        return

    key, value_str = args[0].upper(), " ".join(args[1:])
    success, message = app_globals.update_setting(key, value_str)
    print(message if success else f"Error: {message}")


def _config_help() -> None:
    """Displays help for the config command."""
    print("\nConfig Command Help:")
    print("  config show                - Display all modifiable settings.")
    print("  config set KEY VALUE       - Change a setting and save it to overrides.json.")
    print("  config help                - Show this help message.")


def handle_config_command(args: List[str]) -> None:
    """
    Handles all sub-commands for the 'config' command.

    :param args: A list of string arguments following the 'config' command.
    """
    sub_command = args[0].lower() if args else "show"

    if sub_command == "show":
        _config_show()
    elif sub_command == "set":
        _config_set(args[1:])
    elif sub_command == "help":
        _config_help()
    else:
        print(f"Unknown config sub-command: '{sub_command}'. Type 'config help' for available commands.")


def toggle_verbose_logging() -> None:
    """Toggles verbose (DEBUG level) logging for the console handler."""
    app_globals.VERBOSE_LOGGING = not app_globals.VERBOSE_LOGGING
    new_level = logging.DEBUG if app_globals.VERBOSE_LOGGING else logging.INFO

    handler = get_console_handler()
    status = "ON" if app_globals.VERBOSE_LOGGING else "OFF"
    if handler is None:
        print("Could not find console handler to modify level.")
        return
    handler.setLevel(new_level)
    print(f"Verbose console logging is now {status}.")
    log.debug("Debug logging test: This message should only appear when verbose is ON.")


def print_help() -> None:
    """Prints the main help text for the console."""
    print("\nAvailable commands:")
    print("  status                 - Show the sidecar process and its health.")
    print("  history                - Show recent sidecar health transitions.")
    print("  logs                   - Show recent host log entries.")
    print("  restart                - Terminate the sidecar tree and start it again.")
    print("  config <cmd>           - Manage configuration. Use 'config help' for more details.")
    print("  verbose                - Toggle detailed DEBUG log output in the console.")
    print("  quit | exit            - Stop the sidecar and exit the host.")
    print()
