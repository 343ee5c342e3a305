import getpass
import logging
from pathlib import Path
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple

import pebble.settings as settings
from pebble.local.errors import ConfigError, InvalidKey, InvalidValue
from pebble.local.persistence import read_json, write_json_atomic

log = logging.getLogger(__name__)


def default_author() -> str:
    """The current OS user name, used as the default post author."""
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "admin"


@dataclass
class SiteDefaults:
    """Values copied into every new site's config."""
    author: str = field(default_factory=default_author)
    language: str = settings.DEFAULT_LANGUAGE
    theme: str = settings.DEFAULT_THEME
    posts_per_page: int = settings.DEFAULT_POSTS_PER_PAGE
    excerpt_length: int = settings.DEFAULT_EXCERPT_LENGTH
    dev_port: int = settings.DEFAULT_DEV_PORT
    prod_port: int = settings.DEFAULT_PROD_PORT


@dataclass
class RegistryConfig:
    """Bounds of the range used when a site is started without an explicit port."""
    auto_port_range_start: int = settings.DEFAULT_AUTO_PORT_RANGE_START
    auto_port_range_end: int = settings.DEFAULT_AUTO_PORT_RANGE_END


# Dotted key -> (section, field, kind). Order is the display order of `list`.
KNOWN_KEYS: Dict[str, Tuple[str, str, str]] = {
    "defaults.author": ("defaults", "author", "str"),
    "defaults.language": ("defaults", "language", "str"),
    "defaults.theme": ("defaults", "theme", "str"),
    "defaults.posts_per_page": ("defaults", "posts_per_page", "int"),
    "defaults.excerpt_length": ("defaults", "excerpt_length", "int"),
    "defaults.dev_port": ("defaults", "dev_port", "port"),
    "defaults.prod_port": ("defaults", "prod_port", "port"),
    "registry.auto_port_range_start": ("registry", "auto_port_range_start", "port"),
    "registry.auto_port_range_end": ("registry", "auto_port_range_end", "port"),
}

CUSTOM_PREFIX = "custom."


def _parse_value(key: str, kind: str, value: str) -> Any:
    """Parses a raw string for a typed key, raising InvalidValue on bad input."""
    if kind == "str":
        return value
    try:
        number = int(value.strip())
    except ValueError:
        raise InvalidValue(f"Invalid {'port' if kind == 'port' else 'number'} for '{key}': {value!r}") from None
    if kind == "port" and not 1 <= number <= 65535:
        raise InvalidValue(f"Invalid port for '{key}': {number} is outside 1-65535")
    if number < 0:
        raise InvalidValue(f"Invalid number for '{key}': {number} must not be negative")
    return number


def _custom_name(key: str) -> Optional[str]:
    """Returns `k` for a `custom.k` key, None for anything else."""
    if key.startswith(CUSTOM_PREFIX) and len(key) > len(CUSTOM_PREFIX):
        return key[len(CUSTOM_PREFIX):]
    return None


class GlobalConfig:
    """
    The user's global Pebble configuration.

    Typed `defaults` and `registry` sections plus an open `custom` string map,
    all addressed by dotted keys such as `defaults.dev_port` or `custom.editor`.
    Changes are only persisted by an explicit `save()`.
    """

    def __init__(
        self,
        defaults: Optional[SiteDefaults] = None,
        registry: Optional[RegistryConfig] = None,
        custom: Optional[Dict[str, str]] = None,
    ) -> None:
        self.defaults = defaults or SiteDefaults()
        self.registry = registry or RegistryConfig()
        self.custom: Dict[str, str] = dict(custom or {})

    #* --- Persistence ---
    @classmethod
    def load(cls, path: Path) -> "GlobalConfig":
        """
        Loads the config file, or returns the defaults if it does not exist.

        Missing sections or keys fall back to their defaults; unknown keys in
        the typed sections are ignored with a warning.

        :param path: Path to the global config file.
        :raises ConfigError: If the file cannot be read or parsed.
        """
        try:
            data = read_json(path)
        except (ValueError, IOError, OSError) as e:
            raise ConfigError(f"Failed to parse config from {path}: {e}") from e
        if data is None:
            return cls()

        sections = {}
        for section in ("defaults", "registry", "custom"):
            value = data.get(section) or {}
            if not isinstance(value, dict):
                raise ConfigError(f"Failed to parse config from {path}: '{section}' must be a mapping")
            sections[section] = value

        config = cls()
        for key, (section, name, kind) in KNOWN_KEYS.items():
            raw = sections[section].get(name)
            if raw is None:
                continue
            try:
                setattr(getattr(config, section), name, _parse_value(key, kind, str(raw)))
            except InvalidValue as e:
                raise ConfigError(f"Failed to parse config from {path}: {e}") from e

        for section in ("defaults", "registry"):
            known = {name for s, name, _ in KNOWN_KEYS.values() if s == section}
            for name in sections[section]:
                if name not in known:
                    log.warning(f"Ignoring unknown config key '{section}.{name}' in {path}")

        config.custom = {str(k): str(v) for k, v in sections["custom"].items()}
        return config

    def save(self, path: Path) -> None:
        """Writes the config to disk, creating parent directories."""
        write_json_atomic(path, self.to_dict())
        log.debug(f"Global config saved to {path}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "defaults": asdict(self.defaults),
            "registry": asdict(self.registry),
            "custom": dict(sorted(self.custom.items())),
        }

    #* --- Dotted-key access ---
    def get(self, key: str) -> Optional[str]:
        """Returns the value for a dotted key as a string, or None if unknown."""
        if key in KNOWN_KEYS:
            section, name, _ = KNOWN_KEYS[key]
            return str(getattr(getattr(self, section), name))
        custom_key = _custom_name(key)
        if custom_key is not None:
            return self.custom.get(custom_key)
        return None

    def set(self, key: str, value: str) -> None:
        """
        Sets a dotted key, parsing the value for typed keys.

        :raises InvalidValue: If a numeric key receives a non-numeric or out-of-range value.
        :raises InvalidKey: If the key is not known and not a `custom.*` key.
        """
        if key in KNOWN_KEYS:
            section, name, kind = KNOWN_KEYS[key]
            setattr(getattr(self, section), name, _parse_value(key, kind, value))
            return
        custom_key = _custom_name(key)
        if custom_key is not None:
            self.custom[custom_key] = value
            return
        raise InvalidKey(f"Unknown config key: {key}")

    def list(self) -> List[Tuple[str, str]]:
        """Returns every known key/value pair followed by all custom entries."""
        items = [(key, self.get(key) or "") for key in KNOWN_KEYS]
        items.extend((f"{CUSTOM_PREFIX}{k}", v) for k, v in sorted(self.custom.items()))
        return items

    def remove(self, key: str) -> bool:
        """
        Removes a `custom.*` key.

        :return bool: True if the key existed.
        :raises InvalidKey: For any key outside the custom map.
        """
        custom_key = _custom_name(key)
        if custom_key is None:
            raise InvalidKey("Can only remove custom.* keys")
        return self.custom.pop(custom_key, None) is not None
