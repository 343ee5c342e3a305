"""
This module initializes the console package, exposing command execution,
verbose logging toggling, and help printing.
"""

from .process import execute_command
from .handler import toggle_verbose_logging, print_help

__all__ = ["execute_command", "toggle_verbose_logging", "print_help"]
