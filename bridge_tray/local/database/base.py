import sqlite3
import logging
import threading
from pathlib import Path
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional, Sequence, Tuple

log = logging.getLogger(__name__)

Params = Optional[Sequence[Any]]


class BaseDBManager:
    """
    Shared plumbing for the host's SQLite databases.

    Every call opens a short-lived connection. Calls from one manager are
    serialized through a thread lock, since the log handler's flush thread and
    the health monitor's callback write to the same file.
    """

    def __init__(self, db_path: Path):
        """
        :param db_path: The path to the SQLite database file. Its directory is created on first use.
        """
        self.db_path = Path(db_path)
        self.lock = threading.Lock()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Yields an open connection, holding the manager lock until it is closed."""
        with self.lock:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, timeout=10)
            try:
                yield conn
            finally:
                conn.close()

    def execute(self, sql: str, params: Params = None) -> List[Tuple[Any, ...]]:
        """
        Runs one statement and commits it.

        :return: Any rows the statement produced.
        :raises sqlite3.Error: After logging it.
        """
        try:
            with self._get_connection() as conn:
                rows = conn.execute(sql, params or ()).fetchall()
                conn.commit()
                return rows
        except sqlite3.Error as e:
            log.error(f"Database statement failed on '{self.db_path.name}': {e}")
            raise

    def execute_many(self, sql: str, params: Sequence[Sequence[Any]]) -> int:
        """
        Runs one statement per parameter row inside a single transaction.

        :return: The number of rows affected.
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.executemany(sql, params)
                conn.commit()
                return cursor.rowcount
        except sqlite3.Error as e:
            log.error(f"Batch statement failed on '{self.db_path.name}': {e}")
            raise

    def fetch_all(self, sql: str, params: Params = None) -> List[sqlite3.Row]:
        """Runs a query and returns its rows as sqlite3.Row objects."""
        try:
            with self._get_connection() as conn:
                conn.row_factory = sqlite3.Row
                return conn.execute(sql, params or ()).fetchall()
        except sqlite3.Error as e:
            log.error(f"Query failed on '{self.db_path.name}': {e}")
            raise

    def vacuum(self) -> None:
        """Rebuilds the database file so deleted rows give their space back."""
        with self._get_connection() as conn:
            conn.execute("VACUUM")
