import time
import sqlite3
import logging
from pathlib import Path
from collections import namedtuple
from typing import Any, Dict, List, Optional
from bridge_tray.local.database.base import BaseDBManager

LogEntry = namedtuple('LogEntry', ['timestamp', 'level', 'module', 'message'])
HealthTransition = namedtuple('HealthTransition', ['timestamp', 'previous', 'state', 'server_version', 'pending_commands'])
log = logging.getLogger(__name__)

LOG_COLUMNS = ('timestamp', 'level', 'module', 'funcName', 'lineno', 'message')

SCHEMA = (
    '''CREATE TABLE IF NOT EXISTS logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp REAL,
        level TEXT,
        module TEXT,
        funcName TEXT,
        lineno INTEGER,
        message TEXT
    )''',
    '''CREATE TABLE IF NOT EXISTS health_transitions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp REAL,
        previous TEXT,
        state TEXT,
        server_version TEXT,
        pending_commands INTEGER
    )''',
)


def format_entry(timestamp: float, level: str, module: str, message: str) -> str:
    """Renders a stored log record the way the console formatter prints it."""
    when = time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(timestamp))
    return f"{when} - {level:<8} - [{module}] - {message}"


class LogDBManager(BaseDBManager):
    """
    The host's log database. It holds the application log records written by
    SQLiteHandler and the history of sidecar health transitions.
    """

    def __init__(self, db_path: Path):
        super().__init__(db_path)

    def initialize_database(self) -> None:
        """Creates the tables if they do not exist yet."""
        try:
            for statement in SCHEMA:
                self.execute(statement)
        except sqlite3.Error as e:
            log.critical(f"Could not create log database tables: {e}", exc_info=True)
            raise
        log.debug(f"Log database ready at {self.db_path}")

    #* --- Application Logs ---
    def insert_log_batch(self, log_entries: List[Dict[str, Any]]) -> None:
        """
        Inserts buffered records in one transaction.

        :param log_entries: Dicts keyed by the names in LOG_COLUMNS.
        """
        if not log_entries:
            return
        self.execute_many(
            f"INSERT INTO logs ({', '.join(LOG_COLUMNS)}) VALUES ({', '.join('?' * len(LOG_COLUMNS))})",
            [tuple(entry[column] for column in LOG_COLUMNS) for entry in log_entries]
        )

    def fetch_last_entries(self, limit: int, include_debug: bool = False) -> List[LogEntry]:
        """
        Fetches the newest `limit` log records, returned oldest first.

        :param include_debug: Include DEBUG records as well.
        :return: LogEntry tuples whose message is already formatted for printing.
        """
        level_filter = "" if include_debug else "WHERE level != 'DEBUG'"
        try:
            rows = self.fetch_all(
                f"SELECT timestamp, level, module, message FROM logs {level_filter} ORDER BY id DESC LIMIT ?",
                (limit,)
            )
        except sqlite3.Error:
            return []
        return [
            LogEntry(row['timestamp'], row['level'], row['module'],
                     format_entry(row['timestamp'], row['level'], row['module'], row['message']))
            for row in reversed(rows)
        ]

    def prune_logs(self, keep: int) -> int:
        """
        Deletes all but the newest `keep` log records.

        :return: The number of deleted records.
        """
        # Records are only ever deleted from the oldest end, so ids stay contiguous.
        return self.execute_many(
            "DELETE FROM logs WHERE id <= (SELECT COALESCE(MAX(id), 0) - ? FROM logs)",
            [(keep,)]
        )

    #* --- Health History ---
    def insert_health_transition(
        self,
        previous: Optional[str],
        state: str,
        server_version: Optional[str] = None,
        pending_commands: Optional[int] = None,
        timestamp: Optional[float] = None,
    ) -> None:
        """Records one sidecar health transition. A write failure is logged, not raised."""
        try:
            self.execute(
                '''INSERT INTO health_transitions (timestamp, previous, state, server_version, pending_commands)
                   VALUES (?, ?, ?, ?, ?)''',
                (timestamp or time.time(), previous, state, server_version, pending_commands)
            )
        except sqlite3.Error as e:
            log.error(f"Failed to record health transition to '{state}': {e}")

    def fetch_health_history(self, limit: int) -> List[HealthTransition]:
        """Fetches the newest `limit` health transitions, returned oldest first."""
        try:
            rows = self.fetch_all(
                f"SELECT {', '.join(HealthTransition._fields)} FROM health_transitions ORDER BY id DESC LIMIT ?",
                (limit,)
            )
        except sqlite3.Error:
            return []
        return [HealthTransition(**dict(row)) for row in reversed(rows)]
