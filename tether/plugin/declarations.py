"""
Declaration discovery.

Plugin declarations live in TOML files under a declarations directory.
A file either declares one plugin at its top level:

    url = "https://github.com/user/plugin"
    tag = "v1.2.0"

or several in a `plugins` array:

    [[plugins]]
    url = "https://github.com/user/one"

    [[plugins]]
    url = "https://github.com/user/two"
    dependencies = ["https://github.com/user/one"]
"""

import logging
from pathlib import Path

from tether.config.toml_handler import TOMLError, read_toml
from tether.plugin.registry import DeclarationSource, Registry, RegistryError, build_registry

logger = logging.getLogger(__name__)


def discover_declarations(directory: Path) -> list[DeclarationSource]:
    """
    Collect declaration sources from a directory tree.

    Args:
        directory: Declarations directory (searched recursively for *.toml)

    Returns:
        Declaration sources in sorted path order (empty if directory is missing)

    Raises:
        RegistryError: If a file cannot be parsed or has no declarations
    """
    if not directory.is_dir():
        logger.info("Declarations directory not found: %s", directory)
        return []

    sources = []

    for path in sorted(directory.rglob("*.toml")):
        if not path.is_file():
            continue

        try:
            data = read_toml(path)
        except TOMLError as e:
            raise RegistryError(f"Failed to load {path}: {e}") from e

        if "url" in data:
            payload = data
        elif "plugins" in data:
            payload = data["plugins"]
            if not isinstance(payload, list):
                raise RegistryError(f"Invalid declaration in {path}: 'plugins' must be an array")
        else:
            raise RegistryError(
                f"Invalid declaration in {path}: expected a 'url' field or a [[plugins]] array"
            )

        sources.append(DeclarationSource(name=str(path), payload=payload))

    return sources


def load_registry(directory: Path, strict_duplicates: bool = False) -> Registry:
    """Discover declarations under directory and build the registry."""
    return build_registry(discover_declarations(directory), strict_duplicates=strict_duplicates)
