"""
pm install command (-S).

Sync declared plugins to their resolved revisions, or with --needed only
install the ones that are missing.
"""

from typing import Any

from pm.commands.common import load_command_registry, load_command_settings
from tether.plugin.sync import Orchestrator, SyncReport


def install_command(args: Any) -> int:
    """
    Execute install command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    settings = load_command_settings(args)
    registry = load_command_registry(settings)

    if not registry:
        print(f"No plugins declared in {settings.declarations}")
        return 0

    orchestrator = Orchestrator(settings.install_dir, settings.lockfile)

    if args.needed:
        report = orchestrator.ensure_installed(registry)
    else:
        print(f"Syncing {len(registry)} plugin(s)...")
        report = orchestrator.sync(registry)

    print_summary(report, args.verbose)
    return 0


def print_summary(report: SyncReport, verbose: bool = False) -> None:
    """Print what an operation changed."""
    if not report.changed:
        print("Everything up to date")
        return

    counts = [
        ("installed", report.cloned),
        ("moved", report.checked_out),
        ("locked", report.locked),
        ("unlocked", report.unlocked),
        ("removed", report.removed),
    ]
    print(", ".join(f"{len(items)} {label}" for label, items in counts if items))

    if verbose:
        for label, items in counts:
            for item in items:
                print(f"  {label}: {item}")
