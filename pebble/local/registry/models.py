import logging
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

log = logging.getLogger(__name__)


def utc_now() -> str:
    """Current time as an RFC 3339 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat()


class SiteStatus(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    DEPLOYING = "deploying"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Stopped:
    status = SiteStatus.STOPPED


@dataclass(frozen=True)
class Running:
    """A site started in 'serve' mode on loopback."""
    port: int
    pid: int
    since: str = field(default_factory=utc_now)
    status = SiteStatus.RUNNING


@dataclass(frozen=True)
class Deploying:
    """A site started in 'deploy' mode on all interfaces."""
    port: int
    pid: int
    since: str = field(default_factory=utc_now)
    status = SiteStatus.DEPLOYING


SiteState = Union[Stopped, Running, Deploying]
ACTIVE_STATES = (Running, Deploying)


def make_state(
    status: SiteStatus,
    port: Optional[int] = None,
    pid: Optional[int] = None,
    since: Optional[str] = None,
) -> SiteState:
    """
    Builds a state from loose status/port/pid fields.

    :raises ValueError: If an active status is missing its port or pid.
    """
    if status == SiteStatus.STOPPED:
        return Stopped()
    if port is None or pid is None:
        raise ValueError(f"status '{status}' requires both a port and a pid")
    since = since or utc_now()
    if status == SiteStatus.RUNNING:
        return Running(port=port, pid=pid, since=since)
    return Deploying(port=port, pid=pid, since=since)


@dataclass
class RegistrySite:
    """
    One registered site.

    Runtime state lives in `state`; `status`, `port` and `pid` are derived from
    it so a stopped site can never carry a stale port or pid.
    """
    name: str
    title: str
    description: str = ""
    created_at: str = field(default_factory=utc_now)
    state: SiteState = field(default_factory=Stopped)
    last_started: Optional[str] = None

    @property
    def status(self) -> SiteStatus:
        return self.state.status

    @property
    def port(self) -> Optional[int]:
        return self.state.port if isinstance(self.state, ACTIVE_STATES) else None

    @property
    def pid(self) -> Optional[int]:
        return self.state.pid if isinstance(self.state, ACTIVE_STATES) else None

    @property
    def since(self) -> Optional[str]:
        return self.state.since if isinstance(self.state, ACTIVE_STATES) else None

    @property
    def is_active(self) -> bool:
        """True while a process is recorded for the site (running or deploying)."""
        return isinstance(self.state, ACTIVE_STATES)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "created_at": self.created_at,
            "status": self.status.value,
            "port": self.port,
            "pid": self.pid,
            "since": self.since,
            "last_started": self.last_started,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistrySite":
        """
        Restores a site from its on-disk record.

        An unknown status, or an active status without port and pid, is
        loaded as stopped.
        """
        name = str(data["name"])
        try:
            status = SiteStatus(str(data.get("status") or SiteStatus.STOPPED.value).lower())
        except ValueError:
            log.warning(f"Site '{name}' has unknown status {data.get('status')!r}. Treating it as stopped.")
            status = SiteStatus.STOPPED

        port, pid = data.get("port"), data.get("pid")
        try:
            state = make_state(
                status,
                int(port) if port is not None else None,
                int(pid) if pid is not None else None,
                data.get("since"),
            )
        except (TypeError, ValueError):
            log.warning(f"Site '{name}' is marked {status} without a valid port/pid. Treating it as stopped.")
            state = Stopped()

        return cls(
            name=name,
            title=str(data.get("title", name)),
            description=str(data.get("description", "")),
            created_at=str(data.get("created_at") or utc_now()),
            state=state,
            last_started=data.get("last_started"),
        )
