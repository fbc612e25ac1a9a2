import sys
import sqlite3
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional
from bridge_tray.local import app_globals
from bridge_tray.local.database import LogDBManager


class SQLiteHandler(logging.Handler):
    """
    Persists log records to the host's log database.

    Records are buffered in memory and written in batches, either when the
    buffer fills up or every LOG_BUFFER_FLUSH_INTERVAL seconds from a
    background thread. A second thread keeps the database file below
    MAX_LOG_DB_SIZE_MB by pruning the oldest records.
    """

    def __init__(self, db_path: Path, log_db: Optional[LogDBManager] = None):
        """
        :param db_path: The path to the SQLite database file.
        :param log_db: An existing manager for the same database, if any.
        """
        super().__init__()
        self.db_path = Path(db_path)
        self.buffer_size = app_globals.LOG_BUFFER_SIZE
        self.max_db_size_mb = app_globals.MAX_LOG_DB_SIZE_MB
        self.keep_records = app_globals.LOG_DB_KEEP_RECORDS
        self.log_buffer: List[Dict[str, Any]] = []
        self.buffer_lock = threading.Lock()
        self.stop_event = threading.Event()

        self.logDB = log_db or LogDBManager(self.db_path)
        self.logDB.initialize_database()

        self._threads = [
            self._start_thread(self.flush, app_globals.LOG_BUFFER_FLUSH_INTERVAL, "SQLiteFlushThread"),
            self._start_thread(self.enforce_size_limit, app_globals.LOG_DB_SIZE_CHECK_INTERVAL_SECONDS, "LogDbSizeCheckThread"),
        ]

    def _start_thread(self, task, interval: float, name: str) -> threading.Thread:
        """Runs `task` every `interval` seconds until the handler is closed."""
        def loop() -> None:
            while not self.stop_event.wait(interval):
                task()

        thread = threading.Thread(target=loop, daemon=True, name=name)
        thread.start()
        return thread

    @staticmethod
    def _to_entry(record: logging.LogRecord) -> Dict[str, Any]:
        """Builds a 'logs' row. Sidecar output has no call site, so its stream stands in for funcName."""
        if record.name.startswith('proc.'):
            module = record.name.split('.', 1)[1]
            func_name, lineno = ('stdout' if record.levelno < logging.WARNING else 'stderr'), 0
        else:
            module, func_name, lineno = record.module, record.funcName, record.lineno
        return {
            "timestamp": record.created,
            "level": record.levelname,
            "module": module,
            "funcName": func_name,
            "lineno": lineno,
            "message": record.getMessage(),
        }

    def emit(self, record: logging.LogRecord) -> None:
        entry = self._to_entry(record)
        with self.buffer_lock:
            self.log_buffer.append(entry)
            buffer_full = len(self.log_buffer) >= self.buffer_size
        if buffer_full:
            self.flush()

    def flush(self) -> None:
        """Writes out the buffer. The database write happens outside the buffer lock."""
        with self.buffer_lock:
            pending, self.log_buffer = self.log_buffer, []
        if not pending:
            return
        try:
            self.logDB.insert_log_batch(pending)
        except sqlite3.Error as e:
            # Logging from here would re-enter this handler.
            print(f"Error writing {len(pending)} log entries to DB: {e}", file=sys.stderr)

    def enforce_size_limit(self) -> int:
        """
        Prunes the oldest records if the database file is over its size limit.

        :return: The number of deleted records.
        """
        logger = logging.getLogger(__name__)
        try:
            size_mb = self.db_path.stat().st_size / (1024 * 1024)
        except FileNotFoundError:
            return 0
        except OSError as e:
            logger.error(f"Could not read size of log database '{self.db_path}': {e}")
            return 0
        if size_mb <= self.max_db_size_mb:
            return 0

        logger.warning(
            f"Log database '{self.db_path}' is {size_mb:.2f} MB, over the {self.max_db_size_mb} MB limit. "
            f"Keeping the newest {self.keep_records} records."
        )
        try:
            deleted = self.logDB.prune_logs(self.keep_records)
            self.logDB.vacuum()
        except sqlite3.Error as e:
            logger.error(f"Failed to prune log database: {e}")
            return 0
        logger.info(f"Pruned {deleted} old log records.")
        return deleted

    def close(self) -> None:
        """Stops the background threads and writes out whatever is still buffered."""
        self.stop_event.set()
        for thread in self._threads:
            if thread.is_alive() and thread is not threading.current_thread():
                thread.join(timeout=2)
        self.flush()
        super().close()
