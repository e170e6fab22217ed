"""
pm --init-config command.

Write a commented default configuration file.
"""

from pathlib import Path
from typing import Any

from tether.config import DEFAULT_CONFIG_FILE, write_default_config


def init_config_command(args: Any) -> int:
    """
    Execute init-config command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    path: Path = args.config or DEFAULT_CONFIG_FILE
    write_default_config(path)
    print(f"Wrote {path}")
    return 0
