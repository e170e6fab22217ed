"""
Plugin Spec Model.

This module provides the canonical representation of a declared plugin.

Key features:
- Identity (source URL) to install directory name mapping
- Explicit pin variants (commit, tag, branch)
- Declaration record validation
- Bare stub specs for undeclared dependencies
"""

import re
from dataclasses import dataclass, field
from typing import Any


class SpecError(Exception):
    """Base exception for spec-related errors."""

    pass


class SpecValidationError(SpecError):
    """Raised when a declaration record is malformed."""

    pass


COMMIT_PIN_PATTERN = re.compile(r"^[0-9a-f]{7,40}$")

PIN_FIELDS = ("commit", "tag", "branch")
TRIGGER_FIELDS = ("ft", "event", "keys")
KNOWN_FIELDS = frozenset(("url", "dependencies", "config", *PIN_FIELDS, *TRIGGER_FIELDS))


@dataclass(frozen=True)
class CommitPin:
    """Pin to an exact commit id."""

    sha: str

    def __post_init__(self):
        if not isinstance(self.sha, str) or not COMMIT_PIN_PATTERN.match(self.sha):
            raise SpecValidationError(
                f"Invalid commit pin: {self.sha!r}. "
                f"Must be 7 to 40 lowercase hexadecimal characters."
            )

    def matches(self, revision: str) -> bool:
        """Check whether a full revision is the pinned commit."""
        return revision.startswith(self.sha)

    def __str__(self) -> str:
        return f"commit {self.sha[:7]}"


@dataclass(frozen=True)
class TagPin:
    """Pin to a tag."""

    name: str

    def __str__(self) -> str:
        return f"tag {self.name}"


@dataclass(frozen=True)
class BranchPin:
    """Pin to the latest commit of a branch."""

    name: str

    def __str__(self) -> str:
        return f"branch {self.name}"


Pin = CommitPin | TagPin | BranchPin | None


@dataclass(frozen=True)
class PluginSpec:
    """
    Canonical plugin declaration.

    Attributes:
        url: Plugin identity (source location)
        pin: Optional commit/tag/branch pin
        dependencies: Identities that must be installed first
        post_load_hook: Opaque value passed through to the activation layer
        activation_triggers: Opaque lazy-loading triggers (ft/event/keys)
        bare: True for stubs synthesized from dependency references
    """

    url: str
    pin: Pin = None
    dependencies: tuple[str, ...] = ()
    post_load_hook: Any = None
    activation_triggers: dict[str, Any] = field(default_factory=dict, compare=False)
    bare: bool = False

    @classmethod
    def stub(cls, url: str) -> "PluginSpec":
        """Create a bare spec carrying only an identity."""
        return cls(url=url, bare=True)

    @property
    def name(self) -> str:
        return install_name(self.url)

    @property
    def is_pinned(self) -> bool:
        return self.pin is not None


def install_name(url: str) -> str:
    """
    Get the install directory name for a plugin identity.

    Args:
        url: Plugin identity (e.g., "https://github.com/owner/plugin.git")

    Returns:
        Last path segment without ".git" suffix (e.g., "plugin")
    """
    name = url.rstrip("/").rsplit("/", 1)[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name or url


def parse_pin(record: dict[str, Any]) -> Pin:
    """
    Build the pin variant from a declaration record.

    Args:
        record: Declaration record

    Returns:
        Pin instance, or None when no pin field is set

    Raises:
        SpecValidationError: If more than one pin field is set or a value is invalid
    """
    present = [name for name in PIN_FIELDS if record.get(name) is not None]

    if len(present) > 1:
        raise SpecValidationError(
            f"Only one of commit/tag/branch may be set, got: {', '.join(present)}"
        )

    if not present:
        return None

    kind = present[0]
    value = record[kind]
    if not isinstance(value, str) or not value.strip():
        raise SpecValidationError(f"'{kind}' field must be a non-empty string")

    if kind == "commit":
        return CommitPin(value.strip())
    if kind == "tag":
        return TagPin(value.strip())
    return BranchPin(value.strip())


def _parse_dependencies(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise SpecValidationError("'dependencies' field must be a list")

    urls = []
    for dep in raw:
        if isinstance(dep, str):
            url = dep
        elif isinstance(dep, dict) and isinstance(dep.get("url"), str):
            url = dep["url"]
        else:
            raise SpecValidationError(
                f"Dependency must be a URL string or a table with 'url': {dep!r}"
            )
        if not url.strip():
            raise SpecValidationError("Dependency URL must not be empty")
        urls.append(url.strip())

    return tuple(urls)


def spec_from_record(record: Any) -> PluginSpec:
    """
    Convert a declaration record into a PluginSpec.

    Args:
        record: Mapping with at least a 'url' field

    Returns:
        PluginSpec object

    Raises:
        SpecValidationError: If the record is malformed
    """
    if not isinstance(record, dict):
        raise SpecValidationError(
            f"Plugin declaration must be a table, got {type(record).__name__}"
        )

    url = record.get("url")
    if not isinstance(url, str) or not url.strip():
        raise SpecValidationError("Missing required field: url")

    unknown = sorted(set(record) - KNOWN_FIELDS)
    if unknown:
        raise SpecValidationError(f"Unknown field(s) in {url}: {', '.join(unknown)}")

    try:
        pin = parse_pin(record)
        dependencies = _parse_dependencies(record.get("dependencies"))
    except SpecValidationError as e:
        raise SpecValidationError(f"Invalid declaration for {url}: {e}") from e

    triggers = {name: record[name] for name in TRIGGER_FIELDS if name in record}

    return PluginSpec(
        url=url.strip(),
        pin=pin,
        dependencies=dependencies,
        post_load_hook=record.get("config"),
        activation_triggers=triggers,
        bare=set(record) == {"url"},
    )
