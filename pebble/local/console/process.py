import sys
import logging
from typing import List

from pebble.local.errors import PebbleError
from pebble.local.console.handler import (
    EXIT_ERROR,
    EXIT_OK,
    handle_config_command,
    handle_logs_command,
    handle_registry_command,
    print_help,
    toggle_verbose_logging,
)

log = logging.getLogger(__name__)


def execute_command(command: str, args: List[str]) -> int:
    """
    Executes a single command from the user.

    Domain errors are reported as `Error: <message>` on stderr; anything
    unexpected is logged with its traceback. Both yield exit code 1.

    :param command: The main command string (e.g., 'registry', 'config').
    :param args: A list of arguments for the command.
    :return int: The exit code of the command.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    command_map = {
        "registry": lambda: handle_registry_command(args),
        "config": lambda: handle_config_command(args),
        "logs": lambda: handle_logs_command(args),
        "verbose": toggle_verbose_logging,
        "help": print_help,
    }

    if command not in command_map:
        print(f"Unknown command: '{command}'. Type 'help' for a list of commands.", file=sys.stderr)
        return EXIT_ERROR

    try:
        return command_map[command]()
    except PebbleError as e:
        log.debug(f"Command '{command}' failed: {e!r}")
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except Exception as e:
        log.error(f"Unexpected error while running '{command}': {e}", exc_info=True)
        return EXIT_ERROR
