"""
This module initializes the local database management system.
It exposes the managers for the per-site content database and the
registry's activity log.
"""

from .log import LogDBManager
from .site import SiteDBManager

__all__ = ["LogDBManager", "SiteDBManager"]
