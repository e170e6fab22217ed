"""
tether - Declarative git plugin manager with a reproducible lockfile.

This is the main package that exports the public API for tether.
"""

__version__ = "0.1.0"

from tether.plugin.declarations import discover_declarations, load_registry
from tether.plugin.lockfile import LockStore
from tether.plugin.registry import DeclarationSource, build_registry
from tether.plugin.spec import BranchPin, CommitPin, PluginSpec, TagPin
from tether.plugin.sync import Orchestrator, Session, SyncReport
from tether.plugin.update import Decision, UpdateEngine, UpdateInfo

__all__ = [
    "__version__",
    "BranchPin",
    "CommitPin",
    "DeclarationSource",
    "Decision",
    "LockStore",
    "Orchestrator",
    "PluginSpec",
    "Session",
    "SyncReport",
    "TagPin",
    "UpdateEngine",
    "UpdateInfo",
    "build_registry",
    "discover_declarations",
    "load_registry",
]
