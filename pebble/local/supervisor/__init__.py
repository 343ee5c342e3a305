"""
The Supervisor package.
Manages the lifecycle of each site's content-server process.

This package contains the SiteSupervisor class and the platform-specific
process backends it uses to spawn, signal and check processes.
"""
from .supervisor import SiteSupervisor, StartOutcome, StopOutcome

__all__ = ['SiteSupervisor', 'StartOutcome', 'StopOutcome']
