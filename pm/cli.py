"""
pm CLI - tether Package Manager.

Pacman-style interface for managing declared plugins.

Usage:
    pm -S                        Sync plugins to their declared revisions
    pm -S --needed               Install missing plugins only
    pm -R                        Restore plugins from the lockfile
    pm -U                        Review and apply available updates
    pm -Q                        List locked plugins
    pm -Qi                       List locked plugins with their pins
    pm --init-config             Write a default tether.toml
"""

import argparse
import importlib
import logging
import sys
import traceback
from pathlib import Path

from pm.errors import PMError


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with pacman-style flags."""
    parser = argparse.ArgumentParser(
        prog="pm",
        description="tether Package Manager - Pacman-style plugin manager",
        add_help=False,
    )

    # Operation flags (mutually exclusive)
    ops = parser.add_mutually_exclusive_group()
    ops.add_argument("-S", "--sync", action="store_true", help="Sync plugins")
    ops.add_argument("-R", "--restore", action="store_true", help="Restore from lockfile")
    ops.add_argument("-U", "--upgrade", action="store_true", help="Update plugins")
    ops.add_argument("-Q", "--query", action="store_true", help="Query lockfile")
    ops.add_argument("--init-config", action="store_true", help="Write default config")
    ops.add_argument("-h", "--help", action="store_true", help="Show help")

    # Sub-flags
    parser.add_argument("-i", "--info", action="store_true", help="Show pins (-Qi)")
    parser.add_argument(
        "--needed", action="store_true", help="Only install missing plugins (-S)"
    )

    # Common options
    parser.add_argument(
        "-c", "--config", type=Path, default=None, help="Configuration file"
    )
    parser.add_argument(
        "--noconfirm", action="store_true", help="Skip confirmation prompts"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    return parser


def print_help():
    """Print help message."""
    help_text = """
pm - tether Package Manager

Usage:
    pm -S                        Sync plugins to their declared revisions
    pm -S --needed               Install missing plugins only
    pm -R                        Restore plugins from the lockfile
    pm -U                        Review and apply available updates
    pm -Q                        List locked plugins
    pm -Qi                       List locked plugins with their pins
    pm --init-config             Write a default tether.toml

Options:
    -c, --config PATH            Configuration file (default: tether.toml)
    --noconfirm                  Approve all updates without prompting
    -v, --verbose                Verbose output
    -h, --help                   Show this help
"""
    print(help_text.strip())


def configure_logging(level: str, verbose: bool) -> None:
    """Configure root logging for command-line use."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level, logging.INFO),
        format="%(levelname)s: %(message)s",
    )


# Operation flag -> (command module, function); imported on demand
COMMANDS = {
    "init_config": ("pm.commands.init_config", "init_config_command"),
    "sync": ("pm.commands.install", "install_command"),
    "restore": ("pm.commands.restore", "restore_command"),
    "upgrade": ("pm.commands.upgrade", "upgrade_command"),
    "query": ("pm.commands.query", "query_command"),
}


def library_errors() -> tuple[type[Exception], ...]:
    """Exceptions reported as plain "Error: ..." lines."""
    from tether.config import ConfigError
    from tether.plugin.git_ops import GitError
    from tether.plugin.lockfile import LockfileError
    from tether.plugin.registry import RegistryError
    from tether.plugin.resolver import ResolutionError
    from tether.plugin.sync import SyncError
    from tether.plugin.update import UpdateError

    return (
        PMError,
        ConfigError,
        GitError,
        LockfileError,
        RegistryError,
        ResolutionError,
        SyncError,
        UpdateError,
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point for pm CLI."""
    args = create_parser().parse_args(argv)

    operation = next((op for op in COMMANDS if getattr(args, op)), None)
    if args.help or operation is None:
        print_help()
        return 0

    module_name, function_name = COMMANDS[operation]
    errors = library_errors()

    try:
        command = getattr(importlib.import_module(module_name), function_name)
        return command(args)
    except errors as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        if args.verbose:
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
