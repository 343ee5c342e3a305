"""
Shared fixtures: an isolated Pebble home per test, a recording process
backend, and a real long-running child process for liveness checks.
"""

import sys
import logging
import subprocess
from pathlib import Path
from typing import Dict, List, Set, Tuple

import pytest

import pebble.settings as settings
import pebble.local.app_process as app_process
from pebble.local.app_process import ProcessBackend
from pebble.local.errors import ProcessFailure
from pebble.local.home import PebbleHome
from pebble.local.manager import SiteManager
from pebble.log.handler import SQLiteHandler
from pebble.log.setup import MainFormatter


class FakeProcessBackend(ProcessBackend):
    """Records every call instead of touching real processes."""

    def __init__(self, first_pid: int = 40000) -> None:
        self.next_pid = first_pid
        self.started: List[Tuple[List[str], Path]] = []
        self.terminated: List[int] = []
        self.alive: Set[int] = set()
        self.fail_start = False
        self.fail_terminate: Dict[int, str] = {}

    def start(self, args: List[str], cwd: Path) -> int:
        if self.fail_start:
            raise ProcessFailure(f"Failed to spawn server process '{args[0]}': not found")
        pid = self.next_pid
        self.next_pid += 1
        self.started.append((list(args), Path(cwd)))
        self.alive.add(pid)
        return pid

    def terminate(self, pid: int) -> None:
        if pid in self.fail_terminate:
            raise ProcessFailure(self.fail_terminate[pid])
        self.terminated.append(pid)
        self.alive.discard(pid)

    def is_alive(self, pid: int) -> bool:
        return pid in self.alive


@pytest.fixture
def pebble_home(tmp_path, monkeypatch) -> Path:
    """Points PEBBLE_HOME at a fresh directory and disables the activity log."""
    root = tmp_path / "pebble-home"
    monkeypatch.setenv(settings.HOME_ENV_VAR, str(root))
    monkeypatch.setattr(settings, "LOG_TO_DB", False)
    return root


@pytest.fixture
def home(pebble_home) -> PebbleHome:
    return PebbleHome.init()


@pytest.fixture
def fake_backend(monkeypatch) -> FakeProcessBackend:
    """A fake backend that is also returned by get_process_backend()."""
    backend = FakeProcessBackend()
    monkeypatch.setattr(app_process, "_backend", backend)
    return backend


@pytest.fixture
def manager(pebble_home, fake_backend) -> SiteManager:
    return SiteManager.load(backend=fake_backend, executable="pebble-server")


@pytest.fixture
def sleeper():
    """A real child process that stays alive for the duration of the test."""
    proc = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
    try:
        yield proc
    finally:
        if proc.poll() is None:
            proc.kill()
        proc.wait(timeout=10)


@pytest.fixture
def dead_pid() -> int:
    """The pid of a child that has already exited and been reaped."""
    proc = subprocess.Popen([sys.executable, "-c", "pass"])
    proc.wait(timeout=10)
    return proc.pid


@pytest.fixture
def restore_logging():
    """Removes the handlers installed by setup_logging and restores the root level."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if isinstance(handler, SQLiteHandler) or isinstance(handler.formatter, MainFormatter):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
