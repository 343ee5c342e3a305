"""
Exception hierarchy for the site registry.

Every error raised on purpose by the registry, the supervisor or the config
layer derives from PebbleError so the console can report it uniformly.
"""


class PebbleError(Exception):
    """Base class for all expected registry errors."""


#* --- Validation ---
class InvalidName(PebbleError):
    """Raised when a site name violates the naming rules."""


class InvalidKey(PebbleError):
    """Raised for unknown or non-removable config keys."""


class InvalidValue(PebbleError):
    """Raised when a config value cannot be parsed for its key."""


#* --- Persistence ---
class ConfigError(PebbleError):
    """Raised when the global config file cannot be read or parsed."""


class RegistryError(PebbleError):
    """Raised when the registry file cannot be read or parsed."""


class IoFailure(PebbleError):
    """Raised when a directory or file cannot be created, written or deleted."""


#* --- Registry State ---
class DuplicateSite(PebbleError):
    """Raised when a site name is already registered."""


class AlreadyExists(DuplicateSite):
    """Raised by init when the site directory or registry entry already exists."""


class NotFound(PebbleError):
    """Raised when a site is not registered."""


class SiteNotFound(NotFound):
    """Raised when a registered site's directory is missing on disk."""


class ConfigMissing(NotFound):
    """Raised when a site's config file is missing on disk."""


class StateConflict(PebbleError):
    """Raised when an operation is not allowed in the site's current state."""


class StillRunning(StateConflict):
    """Raised when removing a running site without force."""


#* --- Processes & Ports ---
class ProcessFailure(PebbleError):
    """Raised when spawning or signalling a site process fails."""


class PortExhausted(PebbleError):
    """Raised when no free port is left in the configured range."""
