import os
import logging
from pathlib import Path
from dataclasses import dataclass

import pebble.settings as settings
from pebble.local.errors import IoFailure

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PebbleHome:
    """
    Locations of everything the registry keeps on disk.

    The root holds the global config, the registry file, the activity log and
    a `registry/` directory with one subdirectory per site.
    """
    root: Path
    config_path: Path
    registry_dir: Path
    registry_path: Path
    logs_dir: Path

    @staticmethod
    def get_home_dir() -> Path:
        """Returns $PEBBLE_HOME if set, otherwise ~/.pebble."""
        override = os.environ.get(settings.HOME_ENV_VAR)
        if override:
            return Path(override).expanduser()
        return Path.home() / settings.HOME_DIR_NAME

    @classmethod
    def from_root(cls, root: Path) -> "PebbleHome":
        """Builds the locator for a root without touching the filesystem."""
        return cls(
            root=root,
            config_path=root / settings.GLOBAL_CONFIG_FILE,
            registry_dir=root / settings.REGISTRY_DIR_NAME,
            registry_path=root / settings.REGISTRY_FILE,
            logs_dir=root / settings.LOGS_DIR_NAME,
        )

    @classmethod
    def init(cls) -> "PebbleHome":
        """
        Resolves the home directory, creating it and the registry directory if missing.

        :return PebbleHome: The resolved locator.
        :raises IoFailure: If a directory cannot be created.
        """
        home = cls.from_root(cls.get_home_dir())

        if not home.root.exists():
            try:
                home.root.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise IoFailure(f"Failed to create Pebble home at {home.root}: {e}") from e
            log.info(f"Created Pebble home directory: {home.root}")

        if not home.registry_dir.exists():
            try:
                home.registry_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise IoFailure(f"Failed to create registry directory at {home.registry_dir}: {e}") from e

        return home

    @classmethod
    def exists(cls) -> bool:
        return cls.get_home_dir().exists()

    def site_path(self, name: str) -> Path:
        return self.registry_dir / name

    @property
    def log_db_path(self) -> Path:
        return self.logs_dir / settings.LOG_DB_FILE
