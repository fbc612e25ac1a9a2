import sys
import logging
from typing import Optional

from bridge_tray.local import app_globals
from bridge_tray.log.handler import SQLiteHandler


class MainFormatter(logging.Formatter):
    """A custom formatter to handle regular logs and raw sidecar output."""

    def __init__(self) -> None:
        super().__init__('%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s')

    def format(self, record):
        # Sidecar output is already a complete line, print it untouched.
        if record.name.startswith('proc.'):
            return record.getMessage()
        return super().format(record)


def get_console_handler() -> Optional[logging.Handler]:
    """Returns the console handler installed by setup_logging, if any."""
    for handler in logging.getLogger().handlers:
        if isinstance(handler, logging.StreamHandler) and isinstance(handler.formatter, MainFormatter):
            return handler
    return None


def setup_logging(console_level: int = logging.INFO, use_database: bool = True) -> None:
    """
    Configures the root logger for the host.
    This sets up handlers for the console and the SQLite log database,
    clearing any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    :param use_database: Also persist records to the SQLite log database.
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)

    # urllib3 logs every connection attempt at DEBUG, once per health poll.
    logging.getLogger("urllib3").setLevel(logging.INFO)

    if not use_database:
        return

    # --- SQLite Handler ---
    try:
        sqlite_handler = SQLiteHandler(db_path=app_globals.LOG_DB_PATH)
        sqlite_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(sqlite_handler)
    except Exception as e:
        root_logger.error(f"Failed to initialize SQLite logging handler: {e}. Logging to DB will be disabled.")
