"""
Plugin Lockfile.

This module provides the persisted identity -> revision mapping.

Key features:
- Deterministic JSON serialization (keys sorted, one entry per line)
- Missing file reads as an empty lock
- Atomic replacement on write
- In-memory LockStore with change tracking
"""

import json
import logging
import os
import re
import tempfile
from collections.abc import Iterator, Mapping
from pathlib import Path

logger = logging.getLogger(__name__)

REVISION_PATTERN = re.compile(r"^[0-9a-f]{40}$")


class LockfileError(Exception):
    """Base exception for lockfile-related errors."""

    pass


def validate_revision(identity: str, revision: object) -> str:
    """
    Check that a lock value is a full lowercase commit id.

    Raises:
        LockfileError: If the revision is not 40 lowercase hex characters
    """
    if not isinstance(revision, str) or not REVISION_PATTERN.match(revision):
        raise LockfileError(
            f"Invalid revision for {identity}: {revision!r}. "
            f"Expected a 40-character lowercase hex commit id."
        )
    return revision


def dumps_lockfile(entries: Mapping[str, str]) -> str:
    """
    Serialize lock entries.

    Output is independent of input ordering. An empty mapping serializes
    as "{\\n}".

    Args:
        entries: Identity -> revision mapping

    Returns:
        Serialized lockfile content (without trailing newline)
    """
    lines = ["{"]
    keys = sorted(entries)

    for i, identity in enumerate(keys):
        comma = "," if i < len(keys) - 1 else ""
        lines.append(f"  {json.dumps(identity)}: {json.dumps(entries[identity])}{comma}")

    lines.append("}")
    return "\n".join(lines)


def parse_lockfile(raw: str) -> dict[str, str]:
    """
    Parse lockfile content.

    Args:
        raw: File content

    Returns:
        Identity -> revision mapping

    Raises:
        LockfileError: If content is not a JSON object of revisions
    """
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise LockfileError(f"Failed to parse lockfile: {e}") from e

    if not isinstance(payload, dict):
        raise LockfileError(
            f"Failed to parse lockfile: expected a JSON object, got {type(payload).__name__}"
        )

    return {identity: validate_revision(identity, rev) for identity, rev in payload.items()}


def read_lockfile(path: Path) -> dict[str, str]:
    """
    Read a lockfile from disk.

    Args:
        path: Lockfile path

    Returns:
        Identity -> revision mapping (empty if the file does not exist)

    Raises:
        LockfileError: If the file cannot be read or parsed
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as e:
        raise LockfileError(f"Failed to read lockfile {path}: {e}") from e

    try:
        return parse_lockfile(raw)
    except LockfileError as e:
        raise LockfileError(f"{e} ({path})") from e


def write_lockfile(path: Path, entries: Mapping[str, str]) -> None:
    """
    Write lock entries to disk, replacing the file atomically.

    Args:
        path: Lockfile path
        entries: Identity -> revision mapping

    Raises:
        LockfileError: If the file cannot be written
    """
    content = dumps_lockfile(entries) + "\n"
    temp_path: Path | None = None

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            newline="\n",
            dir=path.parent,
            prefix=path.name + ".",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
            temp_path = Path(tmp.name)
        os.replace(temp_path, path)
        temp_path = None
    except OSError as e:
        raise LockfileError(f"Failed to write lockfile {path}: {e}") from e
    finally:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)


class LockStore:
    """
    In-memory lock state bound to a lockfile path.

    Mutations mark the store as changed; save() rewrites the file only
    when something changed.

    Example:
        lock = LockStore.load(Path("tether-lock.json"))
        lock.set("https://github.com/user/plugin", sha)
        lock.save()
    """

    def __init__(self, path: Path, entries: Mapping[str, str] | None = None, exists: bool = False):
        self.path = path
        self.exists = exists
        self.load_error: LockfileError | None = None
        self._entries: dict[str, str] = dict(entries or {})
        self._changed = False

    @classmethod
    def load(cls, path: Path, strict: bool = True) -> "LockStore":
        """
        Load lock state from a file.

        Args:
            path: Lockfile path
            strict: Raise on malformed content; otherwise log it and start empty

        Returns:
            LockStore instance

        Raises:
            LockfileError: If strict and the file cannot be read or parsed
        """
        try:
            entries = read_lockfile(path)
        except LockfileError as e:
            if strict:
                raise
            logger.error("%s; continuing with an empty lock", e)
            store = cls(path, exists=path.exists())
            store.load_error = e
            return store

        return cls(path, entries, exists=path.exists())

    @property
    def changed(self) -> bool:
        return self._changed

    def get(self, identity: str) -> str | None:
        return self._entries.get(identity)

    def set(self, identity: str, revision: str) -> bool:
        """
        Record a revision for an identity.

        Returns:
            True if the stored value changed
        """
        validate_revision(identity, revision)
        if self._entries.get(identity) == revision:
            return False
        self._entries[identity] = revision
        self._changed = True
        return True

    def remove(self, identity: str) -> bool:
        """Drop an identity; returns True if it was present."""
        if identity not in self._entries:
            return False
        del self._entries[identity]
        self._changed = True
        return True

    def identities(self) -> list[str]:
        return sorted(self._entries)

    def as_dict(self) -> dict[str, str]:
        return dict(sorted(self._entries.items()))

    def save(self, force: bool = False) -> bool:
        """
        Rewrite the lockfile if any entry changed.

        Args:
            force: Write even when nothing changed

        Returns:
            True if the file was written
        """
        if not self._changed and not force:
            return False

        write_lockfile(self.path, self._entries)
        self._changed = False
        self.exists = True
        logger.debug("Wrote %d lock entries to %s", len(self._entries), self.path)
        return True

    def __contains__(self, identity: object) -> bool:
        return identity in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self.identities())

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"LockStore({self.path}, {len(self._entries)} entries)"
