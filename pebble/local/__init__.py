"""
Local package for the Pebble site registry.

Holds the home locator, global config, site registry, process supervision,
the per-site and activity-log databases, and the management console.
"""
