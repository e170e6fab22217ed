"""
Plugin Spec Registry.

This module merges plugin declarations from several sources into one
canonical identity -> PluginSpec map.

Key features:
- Single records and record lists per source
- Full declarations take precedence over bare ones
- Bare stubs for referenced-but-undeclared dependencies
- All-or-nothing build with per-source diagnostics
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from tether.plugin.spec import PluginSpec, SpecValidationError, install_name, spec_from_record

logger = logging.getLogger(__name__)

Registry = Mapping[str, PluginSpec]


class RegistryError(Exception):
    """Base exception for registry build errors."""

    pass


class DuplicateSpecError(RegistryError):
    """Raised when two full declarations share an identity in strict mode."""

    pass


@dataclass
class DeclarationSource:
    """
    A source of plugin declarations.

    Attributes:
        name: Source name used in diagnostics (usually a file path)
        payload: A single record (mapping with 'url') or a list of records
    """

    name: str
    payload: Any

    def records(self) -> list[Any]:
        """
        Get the declaration records of this source.

        Raises:
            RegistryError: If the payload is neither a record nor a list
        """
        if self.payload is None:
            return []
        if isinstance(self.payload, Mapping):
            if "url" in self.payload:
                return [dict(self.payload)]
            raise RegistryError(
                f"Invalid declaration in {self.name}: table has no 'url' field"
            )
        if isinstance(self.payload, (list, tuple)):
            return list(self.payload)
        raise RegistryError(
            f"Invalid declaration in {self.name}: expected table or list, "
            f"got {type(self.payload).__name__}"
        )


def _merge(
    registry: dict[str, PluginSpec],
    origins: dict[str, str],
    spec: PluginSpec,
    source: str,
    strict_duplicates: bool,
) -> None:
    existing = registry.get(spec.url)

    if existing is not None and not existing.bare:
        if spec.bare:
            return
        if strict_duplicates:
            raise DuplicateSpecError(
                f"Plugin {spec.url} is declared in both {origins[spec.url]} and {source}"
            )
        logger.warning(
            "Plugin %s is declared in both %s and %s; using %s",
            spec.url,
            origins[spec.url],
            source,
            source,
        )

    registry[spec.url] = spec
    origins[spec.url] = source


def build_registry(
    sources: Iterable[DeclarationSource], strict_duplicates: bool = False
) -> Registry:
    """
    Build the spec registry from declaration sources.

    Args:
        sources: Declaration sources, in discovery order
        strict_duplicates: Raise instead of last-wins on duplicate full declarations

    Returns:
        Read-only identity -> PluginSpec mapping

    Raises:
        RegistryError: If any record is malformed (no partial registry is returned)
        DuplicateSpecError: If strict_duplicates and an identity is declared twice
    """
    parsed: list[tuple[str, PluginSpec]] = []

    for source in sources:
        for index, record in enumerate(source.records()):
            try:
                parsed.append((source.name, spec_from_record(record)))
            except SpecValidationError as e:
                raise RegistryError(
                    f"Invalid declaration #{index + 1} in {source.name}: {e}"
                ) from e

    registry: dict[str, PluginSpec] = {}
    origins: dict[str, str] = {}

    for source_name, spec in parsed:
        _merge(registry, origins, spec, source_name, strict_duplicates)

    # Dependencies without their own declaration become bare stubs
    for spec in list(registry.values()):
        for dep in spec.dependencies:
            if dep not in registry:
                registry[dep] = PluginSpec.stub(dep)
                origins[dep] = f"dependency of {spec.url}"

    _check_install_names(registry)

    logger.debug("Built registry with %d plugin(s)", len(registry))
    return MappingProxyType(dict(sorted(registry.items())))


def _check_install_names(registry: Mapping[str, PluginSpec]) -> None:
    """
    Ensure no two identities share an install directory.

    Raises:
        RegistryError: If two identities map to the same install name
    """
    seen: dict[str, str] = {}

    for url in sorted(registry):
        name = install_name(url)
        if name in seen:
            raise RegistryError(
                f"Plugins {seen[name]} and {url} would both install to '{name}'"
            )
        seen[name] = url
