import logging
from pathlib import Path
from dataclasses import dataclass
from typing import List, Optional

import pebble.settings as settings
from pebble.local.home import PebbleHome
from pebble.local.global_config import GlobalConfig
from pebble.local.registry import Registry, SiteStatus
from pebble.local.registry.ports import allocate_port
from pebble.local.errors import ConfigMissing, NotFound, PebbleError, PortExhausted, SiteNotFound
from pebble.local.app_process import ProcessBackend, get_executable_path, get_process_backend

log = logging.getLogger(__name__)


@dataclass
class StartOutcome:
    """Result of starting a site. `already_running` means nothing was spawned."""
    name: str
    mode: str
    host: str
    port: int
    pid: int
    already_running: bool = False

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


@dataclass
class StopOutcome:
    """Result of stopping one site. `error` is set when the signal could not be sent."""
    name: str
    pid: Optional[int]
    stopped: bool
    error: Optional[str] = None


class SiteSupervisor:
    """
    Spawns, signals and records the content-server process of each site.

    Processes are fire-and-forget: `start` returns as soon as the child is
    spawned and `stop` marks the site stopped as soon as the signal is sent.
    Neither waits for the server to bind or exit. All state changes are made
    on the in-memory registry; the caller saves it.
    """

    def __init__(
        self,
        home: PebbleHome,
        config: GlobalConfig,
        registry: Registry,
        backend: Optional[ProcessBackend] = None,
        executable: Optional[str] = None,
    ) -> None:
        self.home = home
        self.config = config
        self.registry = registry
        self.backend = backend or get_process_backend()
        self.executable = executable or settings.SERVER_EXECUTABLE

    def _require_site(self, name: str):
        site = self.registry.get_site(name)
        if site is None:
            raise NotFound(f"Site '{name}' not found in registry")
        return site

    def resolve_port(self, port: Optional[int], production: bool = False) -> int:
        """
        Picks the port for a start: explicit argument, else a free port from
        the auto-assign range, else the global default for the mode.
        """
        if port is not None:
            return port
        range_cfg = self.config.registry
        try:
            return allocate_port(
                range_cfg.auto_port_range_start,
                range_cfg.auto_port_range_end,
                self.registry.claimed_ports(),
            )
        except PortExhausted as e:
            fallback = self.config.defaults.prod_port if production else self.config.defaults.dev_port
            log.warning(f"{e}. Falling back to default port {fallback}.")
            return fallback

    def build_command(self, config_path: Path, mode: str, host: str, port: int) -> List[str]:
        """The exact command line handed to the content server."""
        return [
            str(get_executable_path(Path(self.executable))),
            "--config", str(config_path),
            mode,
            "-H", host,
            "-p", str(port),
        ]

    def start(self, name: str, port: Optional[int] = None, production: bool = False) -> StartOutcome:
        """
        Starts a site's content server in 'serve' or 'deploy' mode.

        :param name: The registered site name.
        :param port: Explicit port; auto-assigned when omitted.
        :param production: Deploy on all interfaces instead of serving on loopback.
        :raises NotFound: If the site is not registered.
        :raises SiteNotFound: If the site directory is missing.
        :raises ConfigMissing: If the site's config file is missing.
        :raises ProcessFailure: If the server process cannot be spawned.
        """
        site = self._require_site(name)
        mode = "deploy" if production else "serve"
        host = settings.PROD_HOST if production else settings.DEV_HOST

        if site.is_active:
            log.info(f"Site '{name}' is already {site.status} on port {site.port}.")
            return StartOutcome(name, mode, host, site.port, site.pid, already_running=True)

        site_path = self.home.site_path(name)
        if not site_path.is_dir():
            raise SiteNotFound(f"Site directory not found: {site_path}")
        config_path = site_path / settings.SITE_CONFIG_FILE
        if not config_path.is_file():
            raise ConfigMissing(f"Site config not found: {config_path}")

        chosen_port = self.resolve_port(port, production)
        args = self.build_command(config_path, mode, host, chosen_port)
        log.info(f"Starting site '{name}' ({mode}) on {host}:{chosen_port}...")
        pid = self.backend.start(args, site_path)

        status = SiteStatus.DEPLOYING if production else SiteStatus.RUNNING
        self.registry.update_site_status(name, status, chosen_port, pid)
        log.info(f"Site '{name}' started with PID: {pid}")
        return StartOutcome(name, mode, host, chosen_port, pid)

    def stop(self, name: str) -> StopOutcome:
        """
        Sends a termination signal to a site's process and marks it stopped.

        Stopping a stopped site is a no-op. The site is marked stopped right
        after the signal is sent, without waiting for the process to exit.

        :raises NotFound: If the site is not registered.
        :raises ProcessFailure: If the signal cannot be delivered. The site keeps its state.
        """
        site = self._require_site(name)
        if not site.is_active:
            log.debug(f"Site '{name}' is not running. Nothing to stop.")
            return StopOutcome(name, None, stopped=False)

        pid = site.pid
        self.backend.terminate(pid)
        self.registry.update_site_status(name, SiteStatus.STOPPED)
        log.info(f"Stopped site '{name}' (PID: {pid})")
        return StopOutcome(name, pid, stopped=True)

    def stop_all(self) -> List[StopOutcome]:
        """Stops every active site, continuing past individual failures."""
        outcomes: List[StopOutcome] = []
        for site in self.registry.active_sites():
            try:
                outcomes.append(self.stop(site.name))
            except PebbleError as e:
                log.error(f"Failed to stop site '{site.name}': {e}")
                outcomes.append(StopOutcome(site.name, site.pid, stopped=False, error=str(e)))
        return outcomes
