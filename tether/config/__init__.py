"""
tether Configuration System - TOML-based settings.

This module provides:
- The settings schema (install directory, lockfile, declarations)
- Loading and validating settings from a TOML file
- Generating a commented default configuration file

Example usage:
    from tether.config import load_settings

    settings = load_settings(Path("tether.toml"))
    print(settings.install_dir)

Configuration file layout:
    [tether]
    install_dir = ".tether/plugins"
    lockfile = "tether-lock.json"
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import tomlkit

from tether.config.schema import ConfigField, ValidationError, validate_config
from tether.config.toml_handler import TOMLError, generate_toml_from_schema, read_section, write_toml

SECTION = "tether"

DEFAULT_CONFIG_FILE = Path("tether.toml")

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


class ConfigError(Exception):
    """Base exception for config API errors."""

    pass


def field(
    type_: type,
    default: Any,
    description: str = "",
    min: Any = None,
    max: Any = None,
    choices: list[Any] | None = None,
    path: bool = False,
) -> ConfigField:
    """
    Helper function to create a ConfigField.

    Example:
        field(str, "INFO", "Log level", choices=["DEBUG", "INFO"])
        field(str, "plugins", "Declarations directory", path=True)
    """
    return ConfigField(
        type_=type_,
        default=default,
        description=description,
        min=min,
        max=max,
        choices=choices,
        path=path,
    )


SETTINGS_SCHEMA: dict[str, ConfigField] = {
    "install_dir": field(
        str, ".tether/plugins", "Directory holding installed plugins", min=1, path=True
    ),
    "lockfile": field(
        str, "tether-lock.json", "Lockfile recording the installed revisions", min=1, path=True
    ),
    "declarations": field(
        str, "plugins", "Directory scanned for plugin declaration files", min=1, path=True
    ),
    "strict_duplicates": field(
        bool, False, "Fail when two files declare the same plugin instead of using the last one"
    ),
    "log_level": field(str, "INFO", "Log level", choices=LOG_LEVELS),
}


@dataclass(frozen=True)
class Settings:
    """
    Resolved tether settings.

    Attributes:
        install_dir: Directory holding installed plugins
        lockfile: Lockfile path
        declarations: Declarations directory
        strict_duplicates: Reject duplicate full declarations
        log_level: Logging level name
        config_file: File the settings were loaded from (None for defaults)
    """

    install_dir: Path
    lockfile: Path
    declarations: Path
    strict_duplicates: bool = False
    log_level: str = "INFO"
    config_file: Path | None = None


def settings_from_dict(data: dict[str, Any], base_dir: Path, config_file: Path | None = None) -> Settings:
    """
    Build Settings from a raw [tether] table.

    Relative paths are resolved against base_dir.

    Raises:
        ConfigError: If the table fails schema validation
    """
    try:
        values = validate_config(data, SETTINGS_SCHEMA, base_dir=base_dir)
    except ValidationError as e:
        source = config_file or "settings"
        raise ConfigError(f"Invalid configuration in {source}: {e}") from e

    return Settings(**values, config_file=config_file)


def load_settings(config_file: Path | None = None) -> Settings:
    """
    Load settings from a TOML configuration file.

    Args:
        config_file: Configuration file (default: ./tether.toml). A missing
            file yields default settings relative to its directory.

    Returns:
        Settings instance

    Raises:
        ConfigError: If the file cannot be parsed or is invalid
    """
    path = config_file or DEFAULT_CONFIG_FILE
    base_dir = path.parent.resolve()

    if not path.exists():
        return settings_from_dict({}, base_dir)

    try:
        section = read_section(path, SECTION)
    except TOMLError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    return settings_from_dict(section, base_dir, config_file=path)


def generate_config_toml() -> str:
    """Render the default configuration with descriptive comments."""
    return tomlkit.dumps(generate_toml_from_schema(SECTION, SETTINGS_SCHEMA, {}))


def write_default_config(config_file: Path) -> None:
    """
    Write a commented default configuration file.

    Raises:
        ConfigError: If the file already exists or cannot be written
    """
    if config_file.exists():
        raise ConfigError(f"Configuration file already exists: {config_file}")

    try:
        write_toml(config_file, generate_toml_from_schema(SECTION, SETTINGS_SCHEMA, {}))
    except TOMLError as e:
        raise ConfigError(str(e)) from e


__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_FILE",
    "SETTINGS_SCHEMA",
    "Settings",
    "field",
    "generate_config_toml",
    "load_settings",
    "settings_from_dict",
    "write_default_config",
]
