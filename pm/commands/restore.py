"""
pm restore command (-R).

Restore installed plugins to the lockfile state and remove installs that
have no lock entry.
"""

from typing import Any

from pm.commands.common import load_command_settings
from pm.commands.install import print_summary
from tether.plugin.sync import Orchestrator


def restore_command(args: Any) -> int:
    """
    Execute restore command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    settings = load_command_settings(args)

    print(f"Restoring plugins from {settings.lockfile}...")
    report = Orchestrator(settings.install_dir, settings.lockfile).restore()

    print_summary(report, args.verbose)
    return 0
