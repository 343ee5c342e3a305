import socket
import logging
from typing import Iterable, Optional

import pebble.settings as settings
from pebble.local.errors import PortExhausted

log = logging.getLogger(__name__)


def is_port_available(port: int, host: str = settings.PORT_CHECK_HOST) -> bool:
    """
    Tests a port by binding a TCP socket to it and releasing it immediately.

    :param port: The port to test.
    :param host: The interface to bind on (loopback by default).
    :return: True if the bind succeeded.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind((host, port))
        return True
    except (OSError, OverflowError):
        return False


def find_available_port(start: int, end: int, claimed: Iterable[int] = ()) -> Optional[int]:
    """
    Scans `start..=end` in ascending order for a port that is free.

    A port qualifies when it is not claimed by a registered site and a real
    bind on loopback succeeds.

    :param start: First port of the range (inclusive).
    :param end: Last port of the range (inclusive).
    :param claimed: Ports already recorded for active sites.
    :return: The first qualifying port, or None if the range is exhausted.
    """
    claimed_ports = set(claimed)
    for port in range(start, end + 1):
        if port in claimed_ports:
            continue
        if is_port_available(port):
            return port
        log.debug(f"Port {port} is in use, skipping.")
    return None


def allocate_port(start: int, end: int, claimed: Iterable[int] = ()) -> int:
    """Like find_available_port, but raises PortExhausted when nothing is free."""
    port = find_available_port(start, end, claimed)
    if port is None:
        raise PortExhausted(f"No free port in range {start}-{end}")
    return port
