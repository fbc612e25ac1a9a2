import logging
from typing import TYPE_CHECKING, List
from bridge_tray.local.console.handler import (
    display_history, display_status, handle_config_command, handle_logs_command,
    print_help, toggle_verbose_logging,
)

if TYPE_CHECKING:
    from bridge_tray.local.manager import SidecarManager

log = logging.getLogger(__name__)


def execute_command(manager: "SidecarManager", command: str, args: List[str]) -> bool:
    """
    Executes a single command from the user.

    :param manager: The running SidecarManager.
    :param command: The main command string (e.g., 'status', 'config').
    :param args: A list of arguments for the command.
    :return bool: True if the console should exit, False otherwise.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    if command in ("quit", "exit"):
        return True

    command_map = {
        "status": lambda: display_status(manager),
        "history": lambda: display_history(manager),
        "restart": manager.restart_sidecar,
        "config": lambda: handle_config_command(args),
        "verbose": toggle_verbose_logging,
        "help": print_help,
    }

    if command in command_map:
        command_map[command]()
    elif command == "logs":
        if manager.log_db is None:
            print("Log history is unavailable (log database disabled).")
        else:
            handle_logs_command(manager.log_db)
    else:
        print(f"Unknown command: '{command}'. Type 'help' for a list of commands.")

    return False
