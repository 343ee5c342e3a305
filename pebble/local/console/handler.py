import sys
import logging
from typing import List, Optional, Tuple

import pebble.settings as settings
from pebble.local.home import PebbleHome
from pebble.local.manager import SiteManager
from pebble.local.database import LogDBManager
from pebble.local.registry import RegistrySite
from pebble.local.errors import InvalidValue
from pebble.log.setup import get_console_handler, level_from_name

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1


#* --- Argument Helpers ---
def _pop_option(args: List[str], flag: str) -> Tuple[Optional[str], List[str]]:
    """
    Removes `flag VALUE` (or `flag=VALUE`) from the argument list.

    :return: The option value, or None if absent, and the remaining arguments.
    """
    remaining = []
    value = None
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == flag:
            if i + 1 >= len(args):
                raise InvalidValue(f"Option '{flag}' requires a value")
            value = args[i + 1]
            i += 2
            continue
        if arg.startswith(flag + "="):
            value = arg.split("=", 1)[1]
        else:
            remaining.append(arg)
        i += 1
    return value, remaining


def _pop_flag(args: List[str], flag: str) -> Tuple[bool, List[str]]:
    remaining = [a for a in args if a != flag]
    return len(remaining) != len(args), remaining


def _parse_port(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        port = int(value)
    except ValueError:
        raise InvalidValue(f"Invalid port '{value}': expected an integer")
    if not 1 <= port <= 65535:
        raise InvalidValue(f"Invalid port {port}: must be between 1 and 65535")
    return port


def _usage(text: str) -> int:
    print(f"Usage: {text}", file=sys.stderr)
    return EXIT_ERROR


#* --- Registry Commands ---
def format_site_table(sites: List[RegistrySite]) -> List[str]:
    """Renders the `registry list` table, one string per output line."""
    lines = [f"{'NAME':<20} {'STATUS':<12} {'PORT':<8} {'TITLE':<30}", "-" * 72]
    for site in sites:
        port = str(site.port) if site.port is not None else "-"
        title = f"{site.title[:25]}..." if len(site.title) > 28 else site.title
        lines.append(f"{site.name:<20} {str(site.status):<12} {port:<8} {title:<30}".rstrip())
    return lines


def _registry_init(manager: SiteManager, args: List[str]) -> int:
    title, args = _pop_option(args, "--title")
    if len(args) != 1:
        return _usage("registry init <name> [--title TITLE]")
    name = args[0]
    manager.init(name, title)
    print(f"Created site '{name}' at {manager.home.site_path(name)}")
    print(f"Run: pebble registry serve {name} to start it")
    return EXIT_OK


def _registry_list(manager: SiteManager, args: List[str]) -> int:
    sites = manager.list()
    if not sites:
        print("No sites registered.")
        print("Run: pebble registry init <name> to create one")
        return EXIT_OK
    for line in format_site_table(sites):
        print(line)
    return EXIT_OK


def _registry_start(manager: SiteManager, args: List[str], production: bool) -> int:
    port_value, args = _pop_option(args, "--port")
    if len(args) != 1:
        return _usage(f"registry {'deploy' if production else 'serve'} <name> [--port PORT]")
    name = args[0]
    port = _parse_port(port_value)
    outcome = manager.deploy(name, port) if production else manager.serve(name, port)
    if outcome.already_running:
        print(f"Site '{name}' is already running on port {outcome.port}")
        return EXIT_OK
    print(f"Started '{name}' ({outcome.mode}) on {outcome.url}")
    print(f"PID: {outcome.pid}")
    return EXIT_OK


def _registry_stop(manager: SiteManager, args: List[str]) -> int:
    if len(args) != 1:
        return _usage("registry stop <name>")
    name = args[0]
    outcome = manager.stop(name)
    if not outcome.stopped:
        print(f"Site '{name}' is not running")
    else:
        print(f"Stopped site '{name}' (PID: {outcome.pid})")
    return EXIT_OK


def _registry_stop_all(manager: SiteManager, args: List[str]) -> int:
    outcomes = manager.stop_all()
    if not outcomes:
        print("No sites are running")
        return EXIT_OK
    exit_code = EXIT_OK
    for outcome in outcomes:
        if outcome.stopped:
            print(f"Stopped '{outcome.name}' (PID: {outcome.pid})")
        else:
            print(f"Failed to stop '{outcome.name}': {outcome.error}", file=sys.stderr)
            exit_code = EXIT_ERROR
    return exit_code


def _registry_remove(manager: SiteManager, args: List[str]) -> int:
    force, args = _pop_flag(args, "--force")
    if len(args) != 1:
        return _usage("registry remove <name> [--force]")
    name = args[0]
    manager.remove(name, force=force)
    print(f"Removed site '{name}'")
    return EXIT_OK


def _registry_status(manager: SiteManager, args: List[str]) -> int:
    if len(args) != 1:
        return _usage("registry status <name>")
    site = manager.status(args[0])
    print(f"Name:        {site.name}")
    print(f"Title:       {site.title}")
    print(f"Status:      {site.status}")
    if site.port is not None:
        print(f"Port:        {site.port}")
        print(f"URL:         http://localhost:{site.port}")
    if site.pid is not None:
        print(f"PID:         {site.pid}")
    print(f"Created:     {site.created_at}")
    if site.last_started:
        print(f"Last Start:  {site.last_started}")
    return EXIT_OK


def _registry_path(manager: SiteManager, args: List[str]) -> int:
    if len(args) > 1:
        return _usage("registry path [name]")
    print(manager.path(args[0] if args else None))
    return EXIT_OK


def _registry_help(manager: Optional[SiteManager] = None, args: Optional[List[str]] = None) -> int:
    print("\nRegistry Command Help:")
    print("  registry init <name> [--title T]    - Create a new site.")
    print("  registry list                       - List all registered sites.")
    print("  registry serve <name> [--port P]    - Start a site in development mode.")
    print("  registry deploy <name> [--port P]   - Start a site in production mode.")
    print("  registry stop <name>                - Stop a running site.")
    print("  registry stop-all                   - Stop every running site.")
    print("  registry remove <name> [--force]    - Delete a site and its files.")
    print("  registry status <name>              - Show details for a site.")
    print("  registry path [name]                - Print a site's directory, or the registry root.")
    return EXIT_OK


def handle_registry_command(args: List[str]) -> int:
    """
    Handles all sub-commands for the 'registry' command-line interface.

    :param args: A list of string arguments following the 'registry' command.
    :return int: The process exit code.
    """
    if not args:
        return _registry_help()

    sub_command, sub_args = args[0].lower(), args[1:]
    handlers = {
        "init": _registry_init,
        "list": _registry_list,
        "serve": lambda m, a: _registry_start(m, a, production=False),
        "deploy": lambda m, a: _registry_start(m, a, production=True),
        "stop": _registry_stop,
        "stop-all": _registry_stop_all,
        "remove": _registry_remove,
        "status": _registry_status,
        "path": _registry_path,
        "help": _registry_help,
    }
    handler = handlers.get(sub_command)
    if handler is None:
        print(f"Unknown registry sub-command: '{sub_command}'. Type 'registry help' for available commands.", file=sys.stderr)
        return EXIT_ERROR
    if sub_command == "help":
        return handler()

    manager = SiteManager.load()
    return handler(manager, sub_args)


#* --- Config Commands ---
def _config_help() -> int:
    print("\nConfig Command Help:")
    print("  config get <key>           - Print a setting's value.")
    print("  config set <key> <value>   - Change a setting.")
    print("  config list                - Show every setting.")
    print("  config remove <key>        - Remove a custom setting.")
    print("  config path                - Print the config file location.")
    return EXIT_OK


def handle_config_command(args: List[str]) -> int:
    """
    Handles all sub-commands for the 'config' command-line interface.

    :param args: A list of string arguments following the 'config' command.
    :return int: The process exit code.
    """
    sub_command = args[0].lower() if args else "list"
    sub_args = args[1:]
    if sub_command == "help":
        return _config_help()
    if sub_command not in ("get", "set", "list", "remove", "path"):
        print(f"Unknown config sub-command: '{sub_command}'. Type 'config help' for available commands.", file=sys.stderr)
        return EXIT_ERROR

    manager = SiteManager.load()

    if sub_command == "get":
        if len(sub_args) != 1:
            return _usage("config get <key>")
        value = manager.config_get(sub_args[0])
        if value is None:
            print(f"Unknown config key: {sub_args[0]}", file=sys.stderr)
            return EXIT_ERROR
        print(value)

    elif sub_command == "set":
        if len(sub_args) < 2:
            return _usage("config set <key> <value>")
        key, value = sub_args[0], " ".join(sub_args[1:])
        manager.config_set(key, value)
        print(f"Set {key} = {value}")

    elif sub_command == "list":
        entries = manager.config_list()
        width = max((len(key) for key, _ in entries), default=0)
        for key, value in entries:
            print(f"{key:<{width}}  {value}")

    elif sub_command == "remove":
        if len(sub_args) != 1:
            return _usage("config remove <key>")
        if manager.config_remove(sub_args[0]):
            print(f"Removed {sub_args[0]}")
        else:
            print(f"Key not found: {sub_args[0]}")

    else:
        print(manager.config_path())

    return EXIT_OK


#* --- Logs / Console ---
def handle_logs_command(args: List[str]) -> int:
    """Prints the most recent activity log entries."""
    count = settings.LOG_HISTORY_COUNT
    if args:
        try:
            count = int(args[0])
        except ValueError:
            return _usage("logs [N]")
        if count < 1:
            return _usage("logs [N] (N must be at least 1)")

    log_db = LogDBManager(PebbleHome.from_root(PebbleHome.get_home_dir()).log_db_path)
    entries = log_db.fetch_last_entries(count, include_debug=_console_level() <= logging.DEBUG)
    if not entries:
        print("No log entries recorded.")
        return EXIT_OK
    for entry in entries:
        print(entry.message)
    return EXIT_OK


def _console_level() -> int:
    handler = get_console_handler()
    return handler.level if handler is not None else logging.WARNING


def toggle_verbose_logging() -> int:
    """Toggles verbose (DEBUG level) logging for the console handler."""
    handler = get_console_handler()
    if handler is None:
        print("Could not find console handler to modify level.")
        return EXIT_ERROR

    verbose = handler.level > logging.DEBUG
    handler.setLevel(logging.DEBUG if verbose else max(level_from_name(settings.LOG_LEVEL), logging.INFO))
    print(f"Verbose console logging is now {'ON' if verbose else 'OFF'}.")
    log.debug("Debug logging test: This message should only appear when verbose is ON.")
    return EXIT_OK


def print_help() -> int:
    """Prints the main help text for the console."""
    print("\nAvailable commands:")
    print("  registry <cmd>         - Manage sites. Use 'registry help' for more details.")
    print("  config <cmd>           - Manage global settings. Use 'config help' for more details.")
    print("  logs [N]               - Show the last N activity log entries.")
    print("  verbose                - Toggle detailed DEBUG log output in the console.")
    print("  help                   - Show this help message.")
    print("  exit                   - Exit the management console.")
    print()
    return EXIT_OK
