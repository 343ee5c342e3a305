"""
Logging module for the application.
This module provides functionality to set up console and activity-log logging.
"""

from .setup import setup_logging, get_console_handler
from .handler import SQLiteHandler

__all__ = ["setup_logging", "get_console_handler", "SQLiteHandler"]
