import re
import shutil
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import pebble.settings as settings
from pebble.local.home import PebbleHome
from pebble.local.global_config import GlobalConfig
from pebble.local.registry import Registry, RegistrySite
from pebble.local.database import SiteDBManager
from pebble.local.app_process import ProcessBackend
from pebble.local.supervisor import SiteSupervisor, StartOutcome, StopOutcome
from pebble.local.errors import AlreadyExists, IoFailure, InvalidName, NotFound, ProcessFailure, StillRunning

log = logging.getLogger(__name__)

SITE_NAME_PATTERN = re.compile(r"[a-z0-9-]+")


def is_valid_site_name(name: str) -> bool:
    """Lowercase ASCII letters, digits and hyphens, 1-64 chars, no leading or trailing hyphen."""
    return (
        0 < len(name) <= settings.SITE_NAME_MAX_LENGTH
        and SITE_NAME_PATTERN.fullmatch(name) is not None
        and not name.startswith("-")
        and not name.endswith("-")
    )


_TOML_ESCAPES = {'"': '\\"', "\\": "\\\\", "\b": "\\b", "\t": "\\t", "\n": "\\n", "\f": "\\f", "\r": "\\r"}


def toml_escape(value: str) -> str:
    """Escapes a value for use inside a TOML basic (double-quoted) string."""
    out = []
    for ch in value:
        if ch in _TOML_ESCAPES:
            out.append(_TOML_ESCAPES[ch])
        elif ord(ch) < 0x20 or ord(ch) == 0x7F:
            out.append(f"\\u{ord(ch):04X}")
        else:
            out.append(ch)
    return "".join(out)


def render_site_config(name: str, title: str, config: GlobalConfig) -> str:
    """Renders a new site's pebble.toml from the global defaults."""
    defaults = config.defaults
    strings = {
        "name": name,
        "title": title,
        "host": settings.DEV_HOST,
        "language": defaults.language,
        "theme": defaults.theme,
        "data_dir": settings.SITE_DATA_DIR,
        "media_dir": settings.SITE_MEDIA_DIR,
        "db_file": settings.SITE_DB_FILE,
    }
    return settings.SITE_CONFIG_TEMPLATE.format(
        port=defaults.dev_port,
        posts_per_page=defaults.posts_per_page,
        excerpt_length=defaults.excerpt_length,
        **{key: toml_escape(value) for key, value in strings.items()},
    )



class SiteManager:
    """
    The operation layer behind every `registry` and `config` command.

    A manager is built per command with `load()`, which reads the global
    config and the registry and reconciles dead processes. Mutating
    operations save the registry before returning.
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
        self.supervisor = SiteSupervisor(home, config, registry, backend=backend, executable=executable)

    @classmethod
    def load(cls, backend: Optional[ProcessBackend] = None, executable: Optional[str] = None) -> "SiteManager":
        """Resolves the home, loads config and registry, and clears out dead processes."""
        home = PebbleHome.init()
        config = GlobalConfig.load(home.config_path)
        registry = Registry.load(home.registry_path)
        manager = cls(home, config, registry, backend=backend, executable=executable)
        if backend is not None:
            registry.cleanup_dead_processes(backend.is_alive)
        else:
            registry.cleanup_dead_processes()
        return manager

    def save(self) -> None:
        self.registry.save(self.home.registry_path)

    def _require_site(self, name: str) -> RegistrySite:
        site = self.registry.get_site(name)
        if site is None:
            raise NotFound(f"Site '{name}' not found in registry")
        return site

    #* --- Init / Remove ---
    def init(self, name: str, title: Optional[str] = None) -> RegistrySite:
        """
        Creates a new site: directory tree, rendered config, migrated database
        and a stopped registry entry.

        :raises InvalidName: If the name breaks the naming rules.
        :raises AlreadyExists: If the site directory or registry entry already exists.
        :raises IoFailure: If the site files cannot be created.
        """
        if not is_valid_site_name(name):
            raise InvalidName(
                f"Invalid site name '{name}': must be 1-{settings.SITE_NAME_MAX_LENGTH} lowercase "
                "letters, digits or hyphens, not starting or ending with a hyphen"
            )

        site_path = self.home.site_path(name)
        if site_path.exists():
            raise AlreadyExists(f"Site directory already exists: {site_path}")
        if self.registry.get_site(name) is not None:
            raise AlreadyExists(f"Site '{name}' already registered")

        site_title = title or name.replace("-", " ")
        try:
            self._create_site_files(name, site_title, site_path)
        except Exception:
            shutil.rmtree(site_path, ignore_errors=True)
            raise

        site = RegistrySite(name=name, title=site_title)
        self.registry.add_site(site)
        self.save()
        log.info(f"Created site '{name}' at {site_path}")
        return site

    def _create_site_files(self, name: str, title: str, site_path: Path) -> None:
        data_dir = site_path / settings.SITE_DATA_DIR
        try:
            (data_dir / settings.SITE_MEDIA_DIR).mkdir(parents=True)
            (site_path / settings.SITE_CONFIG_FILE).write_text(
                render_site_config(name, title, self.config), encoding="utf-8"
            )
        except OSError as e:
            raise IoFailure(f"Failed to create site files in {site_path}: {e}") from e
        SiteDBManager(data_dir / settings.SITE_DB_FILE).initialize_database()

    def remove(self, name: str, force: bool = False) -> RegistrySite:
        """
        Deletes a site's directory and registry entry.

        A running site needs `force`, in which case it is stopped first; a
        failure to signal it does not stop the removal. If the directory
        cannot be deleted the registry entry is kept.

        :raises NotFound: If the site is not registered.
        :raises StillRunning: If the site is running and force is False.
        :raises IoFailure: If the site directory cannot be deleted.
        """
        site = self._require_site(name)
        if site.is_active and not force:
            raise StillRunning(f"Site '{name}' is running. Stop it first or use --force")

        if site.is_active:
            try:
                self.supervisor.stop(name)
            except ProcessFailure as e:
                log.warning(f"Could not stop site '{name}' before removal: {e}. Removing anyway.")

        site_path = self.home.site_path(name)
        if site_path.exists():
            try:
                shutil.rmtree(site_path)
            except OSError as e:
                # Keep the registry entry while the directory survives.
                self.save()
                raise IoFailure(f"Failed to remove site directory {site_path}: {e}") from e

        removed = self.registry.remove_site(name)
        self.save()
        log.info(f"Removed site '{name}'")
        return removed

    #* --- Process Control ---
    def serve(self, name: str, port: Optional[int] = None) -> StartOutcome:
        outcome = self.supervisor.start(name, port=port, production=False)
        self.save()
        return outcome

    def deploy(self, name: str, port: Optional[int] = None) -> StartOutcome:
        outcome = self.supervisor.start(name, port=port, production=True)
        self.save()
        return outcome

    def stop(self, name: str) -> StopOutcome:
        outcome = self.supervisor.stop(name)
        self.save()
        return outcome

    def stop_all(self) -> List[StopOutcome]:
        outcomes = self.supervisor.stop_all()
        self.save()
        return outcomes

    #* --- Read-only Projections ---
    def status(self, name: str) -> RegistrySite:
        return self._require_site(name)

    def path(self, name: Optional[str] = None) -> Path:
        """The site's directory, or the registry root when no name is given."""
        if name is None:
            return self.home.registry_dir
        self._require_site(name)
        return self.home.site_path(name)

    def list(self) -> List[RegistrySite]:
        return self.registry.list_sites()

    #* --- Global Config ---
    def config_get(self, key: str) -> Optional[str]:
        return self.config.get(key)

    def config_set(self, key: str, value: str) -> None:
        self.config.set(key, value)
        self.config.save(self.home.config_path)
        log.info(f"Config '{key}' set to '{value}'")

    def config_list(self) -> List[Tuple[str, str]]:
        return self.config.list()

    def config_remove(self, key: str) -> bool:
        removed = self.config.remove(key)
        if removed:
            self.config.save(self.home.config_path)
        return removed

    def config_path(self) -> Path:
        return self.home.config_path
