"""
Shared helpers for pm commands.
"""

from typing import Any

from pm.cli import configure_logging
from pm.errors import PMError
from tether.config import Settings, load_settings
from tether.plugin.declarations import load_registry
from tether.plugin.registry import Registry


def load_command_settings(args: Any) -> Settings:
    """
    Load settings for a command and configure logging from them.

    Args:
        args: Parsed command-line arguments

    Returns:
        Settings instance

    Raises:
        PMError: If a configuration file was given but does not exist
    """
    if args.config is not None and not args.config.exists():
        raise PMError(f"Configuration file not found: {args.config}")

    settings = load_settings(args.config)
    configure_logging(settings.log_level, args.verbose)
    return settings


def load_command_registry(settings: Settings) -> Registry:
    """Scan the configured declarations directory into a registry."""
    return load_registry(settings.declarations, strict_duplicates=settings.strict_duplicates)


def short(revision: str | None) -> str:
    """Abbreviate a revision for display."""
    return revision[:7] if revision else "-------"
