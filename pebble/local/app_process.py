import os
import sys
import signal
import psutil
import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from pebble.local.errors import ProcessFailure

log = logging.getLogger(__name__)


#* --- Process Status & Monitoring ---
def pid_exists(pid: int) -> bool:
    """A wrapper for psutil.pid_exists for easy testing/mocking if needed."""
    return psutil.pid_exists(pid)

def get_process_from_pid(pid: int) -> psutil.Process:
    """A wrapper for psutil.Process for easy testing/mocking if needed."""
    return psutil.Process(pid)

def _is_zombie(pid: int) -> bool:
    """True if the pid belongs to an exited child that has not been reaped yet."""
    try:
        return get_process_from_pid(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True
    except psutil.Error:
        return False

#* --- Process Creation ---
def get_executable_path(base_path: Path) -> Path:
    """Returns the platform-specific full path for an executable."""
    return base_path.with_suffix(".exe") if sys.platform == "win32" and not base_path.suffix else base_path

def _get_popen_creation_flags() -> Dict[str, Any]:
    """Returns platform-specific creation flags for subprocess.Popen."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.DETACHED_PROCESS | subprocess.CREATE_NO_WINDOW}
    return {"start_new_session": True}


class ProcessBackend(ABC):
    """
    Platform-specific process control used by the supervisor.

    Callers depend only on these three operations; each platform family
    provides its own implementation.
    """

    def start(self, args: List[str], cwd: Path) -> int:
        """
        Spawns a detached process with its standard I/O discarded.

        The parent never waits on the child, so it keeps running after the
        calling command exits.

        :param args: The full command line.
        :param cwd: Working directory for the child.
        :return int: The child's PID.
        :raises ProcessFailure: If the process cannot be spawned.
        """
        try:
            p = subprocess.Popen(
                args,
                cwd=str(cwd),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                **_get_popen_creation_flags(),
            )
        except (OSError, ValueError) as e:
            raise ProcessFailure(f"Failed to spawn server process '{args[0]}': {e}") from e
        log.debug(f"Spawned {args[0]} with PID {p.pid} in {cwd}")
        return p.pid

    @abstractmethod
    def terminate(self, pid: int) -> None:
        """
        Asks the process to exit. Does not wait for it.

        A pid that no longer exists is not an error.

        :raises ProcessFailure: If the signal cannot be delivered.
        """

    @abstractmethod
    def is_alive(self, pid: int) -> bool:
        """Non-blocking check whether the pid still belongs to a live process."""


class PosixProcessBackend(ProcessBackend):
    """Signal-based control: SIGTERM to stop, a zero-effect signal for liveness."""

    def terminate(self, pid: int) -> None:
        try:
            os.kill(pid, signal.SIGTERM)
            log.debug(f"Sent SIGTERM to PID {pid}")
        except ProcessLookupError:
            log.debug(f"PID {pid} no longer exists, nothing to terminate.")
        except OSError as e:
            raise ProcessFailure(f"Failed to kill process {pid}: {e}") from e

    def is_alive(self, pid: int) -> bool:
        if pid <= 0:
            return False
        # psutil.pid_exists sends signal 0 on POSIX
        return pid_exists(pid) and not _is_zombie(pid)


class WindowsProcessBackend(ProcessBackend):
    """Process-list based control. There is no graceful signal, so stop is a forced kill."""

    def terminate(self, pid: int) -> None:
        try:
            get_process_from_pid(pid).kill()
            log.debug(f"Killed PID {pid}")
        except psutil.NoSuchProcess:
            log.debug(f"PID {pid} no longer exists, nothing to terminate.")
        except psutil.Error as e:
            raise ProcessFailure(f"Failed to kill process {pid}: {e}") from e

    def is_alive(self, pid: int) -> bool:
        if pid <= 0:
            return False
        return pid_exists(pid)


_backend: Optional[ProcessBackend] = None

def get_process_backend() -> ProcessBackend:
    """Returns the process backend for the current platform."""
    global _backend
    if _backend is None:
        _backend = WindowsProcessBackend() if sys.platform == "win32" else PosixProcessBackend()
    return _backend

def is_process_alive(pid: int) -> bool:
    """Liveness check for a recorded PID using the platform backend."""
    return get_process_backend().is_alive(pid)
