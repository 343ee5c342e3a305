import sqlite3
import logging
from pathlib import Path
from contextlib import contextmanager
from typing import List, Optional, Tuple, Any, Generator, Iterable

log = logging.getLogger(__name__)

Params = Optional[Tuple[Any, ...]]


class BaseDBManager:
    """
    Base class for the SQLite managers: one short-lived connection per call.
    """

    def __init__(self, db_path: Path, pragmas: Iterable[str] = ()):
        """
        :param db_path: The path to the SQLite database file.
        :param pragmas: PRAGMA statements run on every new connection.
        """
        self.db_path = db_path
        self.pragmas = list(pragmas)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Opens a connection with the configured pragmas applied and closes it afterwards."""
        conn = sqlite3.connect(self.db_path, timeout=10)
        try:
            for pragma in self.pragmas:
                conn.execute(f"PRAGMA {pragma};")
            yield conn
        finally:
            conn.close()

    def execute(self, sql: str, params: Params = None) -> None:
        """Runs a single statement and commits it."""
        try:
            with self._get_connection() as conn:
                conn.execute(sql, params or ())
                conn.commit()
        except sqlite3.Error as e:
            log.error(f"Database operation failed on {self.db_path.name}: {e}")
            raise

    def execute_many(self, sql: str, params: List[Tuple[Any, ...]]) -> None:
        """Runs one statement per parameter tuple inside a single transaction."""
        try:
            with self._get_connection() as conn:
                conn.executemany(sql, params)
                conn.commit()
        except sqlite3.Error as e:
            log.error(f"Batch database operation failed on {self.db_path.name}: {e}")
            raise

    def fetch_all(self, sql: str, params: Params = None) -> List[sqlite3.Row]:
        """
        Fetches all rows from a query.

        :return: A list of sqlite3.Row objects.
        """
        try:
            with self._get_connection() as conn:
                conn.row_factory = sqlite3.Row
                return conn.execute(sql, params or ()).fetchall()
        except sqlite3.Error as e:
            log.error(f"Failed to fetch data from {self.db_path.name}: {e}")
            raise
