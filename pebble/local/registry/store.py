import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional

from pebble.local.errors import DuplicateSite, RegistryError
from pebble.local.persistence import read_json, write_json_atomic
from pebble.local.registry import ports
from pebble.local.registry.models import RegistrySite, SiteStatus, Stopped, make_state, utc_now
from pebble.local.app_process import is_process_alive

log = logging.getLogger(__name__)


class Registry:
    """
    The persisted map of all known sites and their runtime state.

    Usage is load -> mutate -> save. Nothing is written until `save()` is
    called. The file is not locked: two invocations that mutate it at the same
    time race, and whichever saves last silently wins.
    """

    def __init__(self, sites: Optional[Dict[str, RegistrySite]] = None) -> None:
        self.sites: Dict[str, RegistrySite] = dict(sites or {})

    #* --- Persistence ---
    @classmethod
    def load(cls, path: Path) -> "Registry":
        """
        Loads the registry file, or returns an empty registry if it does not exist.

        :raises RegistryError: If the file cannot be read or parsed.
        """
        try:
            data = read_json(path)
        except (ValueError, IOError, OSError) as e:
            raise RegistryError(f"Failed to parse registry from {path}: {e}") from e
        if data is None:
            return cls()

        sites: Dict[str, RegistrySite] = {}
        raw_sites = data.get("sites") or {}
        if not isinstance(raw_sites, dict):
            raise RegistryError(f"Failed to parse registry from {path}: 'sites' must be a mapping")
        for name, record in raw_sites.items():
            try:
                site = RegistrySite.from_dict({**record, "name": name})
            except (KeyError, TypeError) as e:
                raise RegistryError(f"Failed to parse registry entry '{name}' in {path}: {e}") from e
            sites[site.name] = site
        return cls(sites)

    def save(self, path: Path) -> None:
        """Writes the full site map to disk atomically."""
        write_json_atomic(path, self.to_dict())
        log.debug(f"Registry saved with {len(self.sites)} site(s) to {path}")

    def to_dict(self) -> Dict[str, Dict[str, Dict]]:
        return {"sites": {name: self.sites[name].to_dict() for name in sorted(self.sites)}}

    #* --- Lookup & Mutation ---
    def add_site(self, site: RegistrySite) -> None:
        if site.name in self.sites:
            raise DuplicateSite(f"Site '{site.name}' already exists in registry")
        self.sites[site.name] = site

    def get_site(self, name: str) -> Optional[RegistrySite]:
        return self.sites.get(name)

    def get_site_mut(self, name: str) -> Optional[RegistrySite]:
        """Same record as get_site; edits to it are saved with the registry."""
        return self.sites.get(name)

    def remove_site(self, name: str) -> Optional[RegistrySite]:
        return self.sites.pop(name, None)

    def list_sites(self) -> List[RegistrySite]:
        """All sites, sorted by name."""
        return [self.sites[name] for name in sorted(self.sites)]

    def running_sites(self) -> List[RegistrySite]:
        return [site for site in self.list_sites() if site.status == SiteStatus.RUNNING]

    def active_sites(self) -> List[RegistrySite]:
        """Sites with a recorded process, whether running or deploying."""
        return [site for site in self.list_sites() if site.is_active]

    def update_site_status(
        self,
        name: str,
        status: SiteStatus,
        port: Optional[int] = None,
        pid: Optional[int] = None,
    ) -> None:
        """
        Replaces a site's runtime state in memory.

        Entering RUNNING also stamps `last_started`. Unknown names are ignored.

        :raises ValueError: If an active status is given without port and pid.
        """
        site = self.sites.get(name)
        if site is None:
            return
        now = utc_now()
        site.state = make_state(status, port, pid, since=now)
        if status == SiteStatus.RUNNING:
            site.last_started = now

    #* --- Reconciliation ---
    def claimed_ports(self) -> List[int]:
        return [site.port for site in self.active_sites() if site.port is not None]

    def find_available_port(self, start: int, end: int) -> Optional[int]:
        """First port in `start..=end` not claimed by an active site and bindable on loopback."""
        return ports.find_available_port(start, end, self.claimed_ports())

    def cleanup_dead_processes(self, is_alive: Callable[[int], bool] = is_process_alive) -> List[str]:
        """
        Resets every active site whose recorded process is gone to STOPPED.

        Runs at the start of every command so the registry heals after
        crashes, external kills or a reboot. A check that fails for any
        reason counts as a dead process.

        :param is_alive: Liveness check taking a pid.
        :return: Names of the sites that were reset.
        """
        reset: List[str] = []
        for site in self.active_sites():
            try:
                alive = is_alive(site.pid)
            except Exception as e:
                log.debug(f"Liveness check for PID {site.pid} failed: {e}")
                alive = False
            if not alive:
                log.warning(f"Site '{site.name}' was marked {site.status} but PID {site.pid} is gone. Marking it stopped.")
                site.state = Stopped()
                reset.append(site.name)
        return reset
