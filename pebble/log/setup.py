import sys
import logging
from pathlib import Path
from typing import Optional

import pebble.settings as settings
from pebble.log.handler import SQLiteHandler


class MainFormatter(logging.Formatter):
    """Console formatter: terse for warnings and above, detailed at DEBUG."""

    def __init__(self, verbose: bool = False):
        if verbose:
            fmt = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'
        else:
            fmt = '%(levelname)s: %(message)s'
        super().__init__(fmt)


def _is_own_handler(handler: logging.Handler) -> bool:
    return isinstance(handler, SQLiteHandler) or isinstance(handler.formatter, MainFormatter)


def get_console_handler() -> Optional[logging.Handler]:
    """The console handler installed by setup_logging, if any."""
    for handler in logging.getLogger().handlers:
        if isinstance(handler.formatter, MainFormatter):
            return handler
    return None


def setup_logging(console_level: int = logging.WARNING, log_db_path: Optional[Path] = None) -> None:
    """
    Configures the root logger for the application.
    This sets up handlers for the console and, optionally, the SQLite activity
    log, replacing the ones installed by a previous call.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    :param log_db_path: Activity log database; None disables database logging.
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    for handler in list(root_logger.handlers):
        if _is_own_handler(handler):
            root_logger.removeHandler(handler)
            handler.close()

    # --- Console Handler ---
    # stderr keeps stdout free for command results.
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter(verbose=console_level <= logging.DEBUG))
    root_logger.addHandler(console_handler)

    # --- SQLite Handler ---
    if log_db_path is not None and settings.LOG_TO_DB:
        try:
            sqlite_handler = SQLiteHandler(db_path=log_db_path)
            sqlite_handler.setLevel(logging.DEBUG)
            root_logger.addHandler(sqlite_handler)
        except Exception as e:
            root_logger.error(f"Failed to initialize SQLite logging handler: {e}. Logging to DB will be disabled.")


def level_from_name(name: str) -> int:
    """Maps a level name such as 'info' to its logging constant, defaulting to WARNING."""
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.WARNING
