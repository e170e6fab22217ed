"""
tether Plugin System - Declarative git plugin synchronization.

This module handles:
- Plugin spec parsing and registry building
- Git-based plugin installation
- Revision resolution (pins, lockfile, latest release)
- Lockfile persistence
- Install / sync / restore walks over the dependency graph
- Update collection, review and application
"""

__all__ = []
