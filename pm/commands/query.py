"""
pm query command (-Q).

List locked plugins, their revisions and whether they are installed.
With -i the declared pin of each plugin is shown as well.
"""

from typing import Any

from pm.commands.common import load_command_registry, load_command_settings, short
from tether.plugin.lockfile import LockStore
from tether.plugin.spec import install_name


def query_command(args: Any) -> int:
    """
    Execute query command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    settings = load_command_settings(args)
    lock = LockStore.load(settings.lockfile)
    registry = load_command_registry(settings) if args.info else {}

    if not len(lock):
        print(f"No plugins locked in {settings.lockfile}")
        return 0

    for identity in lock.identities():
        name = install_name(identity)
        installed = (settings.install_dir / name).is_dir()
        line = f"{name} {short(lock.get(identity))}"
        if not installed:
            line += " (not installed)"
        print(line)

        if args.info:
            spec = registry.get(identity)
            print(f"    URL  : {identity}")
            if spec is None:
                print("    Pin  : (no longer declared)")
            else:
                print(f"    Pin  : {spec.pin or 'latest release'}")
                if spec.dependencies:
                    print(f"    Deps : {', '.join(install_name(d) for d in spec.dependencies)}")

    return 0
