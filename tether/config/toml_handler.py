"""
TOML File I/O Handler.

Reads configuration and declaration files with tomllib and writes them with
tomlkit so generated comments survive.
"""

import tomllib
from pathlib import Path
from typing import Any

import tomlkit

from tether.config.schema import ConfigField


class TOMLError(Exception):
    """Base exception for TOML-related errors."""

    pass


def read_toml(file_path: Path) -> dict[str, Any]:
    """
    Read and parse a TOML file.

    Args:
        file_path: Path to the TOML file

    Returns:
        Parsed TOML data as dictionary

    Raises:
        TOMLError: If file cannot be read or parsed
    """
    try:
        with open(file_path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise TOMLError(f"TOML file not found: {file_path}") from e
    except tomllib.TOMLDecodeError as e:
        raise TOMLError(f"Failed to parse TOML file {file_path}: {e}") from e
    except OSError as e:
        raise TOMLError(f"Failed to read TOML file {file_path}: {e}") from e


def read_section(file_path: Path, section: str) -> dict[str, Any]:
    """
    Read one table from a TOML file.

    Args:
        file_path: Path to the TOML file
        section: Table name (e.g., "tether")

    Returns:
        The table contents, or an empty dict if the file has no such table

    Raises:
        TOMLError: If the file cannot be read, or section is not a table
    """
    table = read_toml(file_path).get(section, {})
    if not isinstance(table, dict):
        raise TOMLError(f"[{section}] in {file_path} must be a table, got {type(table).__name__}")
    return table


def write_toml(file_path: Path, data: Any) -> None:
    """
    Write data to a TOML file using tomlkit (preserves formatting).

    Args:
        file_path: Path to the TOML file
        data: Mapping or tomlkit document to write

    Raises:
        TOMLError: If file cannot be written
    """
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(file_path, "w", encoding="utf-8") as f:
            tomlkit.dump(data, f)
    except (OSError, TypeError, ValueError) as e:
        raise TOMLError(f"Failed to write TOML file {file_path}: {e}") from e


def generate_toml_from_schema(
    section: str, schema: dict[str, ConfigField], config_data: dict[str, Any]
) -> tomlkit.TOMLDocument:
    """
    Build a commented TOML document for one settings table.

    Each field is preceded by its description, its allowed choices and, for
    path fields, a note on how relative paths resolve.

    Args:
        section: Name of the table holding the settings
        schema: Schema dictionary (field_name -> ConfigField)
        config_data: Values to write (missing fields use their default)

    Returns:
        tomlkit document ready for write_toml or tomlkit.dumps
    """
    doc = tomlkit.document()
    doc.add(tomlkit.comment(f"{section} configuration"))
    doc.add(tomlkit.nl())

    table = tomlkit.table()

    for field_name, field in schema.items():
        if field.description:
            table.add(tomlkit.comment(field.description))
        if field.choices is not None:
            table.add(tomlkit.comment(f"Choices: {', '.join(map(str, field.choices))}"))
        if field.path:
            table.add(tomlkit.comment("Relative to the directory of this file"))

        table.add(field_name, config_data.get(field_name, field.default))
        table.add(tomlkit.nl())

    doc.add(section, table)
    return doc
