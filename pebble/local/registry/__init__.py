"""
The site registry.

A persisted map from site name to site record, plus the port allocator used
to pick a port when a site is started without one.
"""
from .models import RegistrySite, SiteStatus, Stopped, Running, Deploying
from .store import Registry

__all__ = ['Registry', 'RegistrySite', 'SiteStatus', 'Stopped', 'Running', 'Deploying']
