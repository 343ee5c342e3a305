import sys
import sqlite3
import logging
import threading
from pathlib import Path
from typing import List, Dict, Any

import pebble.settings as settings
from pebble.local.database import LogDBManager


class SQLiteHandler(logging.Handler):
    """
    A logging handler that writes records to the activity log database.

    Records are buffered and written in one batch when the buffer fills up
    and when the handler is closed, which logging does at interpreter exit.
    """
    def __init__(self, db_path: Path, buffer_size: int = settings.LOG_BUFFER_SIZE):
        """
        Initializes the SQLite handler.

        :param db_path: The path to the SQLite database file.
        :param buffer_size: Number of records kept in memory before a write.
        """
        super().__init__()
        self.db_path = db_path
        self.buffer_size = buffer_size
        self.log_buffer: List[Dict[str, Any]] = []
        self.buffer_lock = threading.Lock()
        self.logDB = LogDBManager(self.db_path)
        self.logDB.initialize_database()

    def emit(self, record: logging.LogRecord) -> None:
        """
        Adds a log record to the internal buffer for batch writing.

        :param record: The log record to be processed.
        """
        try:
            log_entry = {
                "timestamp": record.created,
                "level": record.levelname,
                "module": record.module,
                "funcName": record.funcName,
                "lineno": record.lineno,
                "message": record.getMessage(),
            }
            with self.buffer_lock:
                self.log_buffer.append(log_entry)
                should_flush = len(self.log_buffer) >= self.buffer_size
            if should_flush:
                self.flush()
        except Exception:
            self.handleError(record)

    def flush(self) -> None:
        """Writes all buffered records to the database."""
        with self.buffer_lock:
            entries_to_write = list(self.log_buffer)
            self.log_buffer.clear()
        if not entries_to_write:
            return
        try:
            self.logDB.insert_log_batch(entries_to_write)
        except sqlite3.Error as e:
            print(f"Error writing logs to DB: {e}. Log entries: {len(entries_to_write)}", file=sys.stderr)

    def close(self) -> None:
        """Flushes the remaining buffer and closes the handler."""
        self.flush()
        super().close()
