import sys
import shlex
import logging
from typing import List, Optional

import pebble.settings as settings
import pebble.local.console as console
from pebble.local.home import PebbleHome
from pebble.log.setup import setup_logging, level_from_name

log = logging.getLogger("console")


def main(argv: Optional[List[str]] = None) -> int:
    """
    The main entry point for the `pebble` command.

    With arguments, runs one command and returns its exit code. Without,
    starts the interactive management console.
    """
    args = list(sys.argv[1:] if argv is None else argv)

    verbose = "--verbose" in args
    if verbose:
        args = [a for a in args if a != "--verbose"]
    console_level = logging.DEBUG if verbose else level_from_name(settings.LOG_LEVEL)
    setup_logging(console_level, PebbleHome.from_root(PebbleHome.get_home_dir()).log_db_path)

    # Non-interactive mode for one-off commands
    if args:
        command, command_args = args[0].lower(), args[1:]
        return console.execute_command(command, command_args)

    return run_console()


def run_console() -> int:
    """Reads commands from stdin until 'exit', EOF or Ctrl+C."""
    print("--- Pebble Management Console ---")
    print("Type 'help' for a list of commands.")

    while True:
        try:
            command_line_str = input("> ")
        except (KeyboardInterrupt, EOFError):
            print()
            log.debug("Exiting console on interrupt or end of input.")
            break

        try:
            command_line = shlex.split(command_line_str)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            continue
        if not command_line:
            continue

        command, args = command_line[0].lower(), command_line[1:]
        if command in ("exit", "quit"):
            break
        log.debug(f"Received command: {command}, args: {args}")
        console.execute_command(command, args)

    print("Exiting console application. See you next time!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
