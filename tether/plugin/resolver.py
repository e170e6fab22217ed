"""
Revision Resolution.

This module decides which exact commit a plugin must be at.

Decision order, highest priority first:
1. Commit pin, used verbatim
2. Tag pin, resolved by checking out the tag
3. Branch pin, resolved by checking out the branch and fast-forwarding it
4. Existing lock entry (install and sync only)
5. Latest stable semantic-version tag, else origin/master, else origin/main
   (sync and update only)

In install mode an unpinned, unlocked plugin stays at whatever the fresh
clone checked out.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from tether.plugin import git_ops
from tether.plugin.git_ops import GitError
from tether.plugin.spec import BranchPin, CommitPin, PluginSpec, TagPin
from tether.plugin.versions import latest_semver_tag

logger = logging.getLogger(__name__)

DEFAULT_BRANCHES = ("master", "main")


class ResolutionError(Exception):
    """Raised when no target revision can be determined for a plugin."""

    def __init__(self, message: str, identity: str | None = None):
        super().__init__(f"{identity}: {message}" if identity else message)
        self.identity = identity


class Mode(Enum):
    """Operation the resolution is performed for."""

    INSTALL = "install"
    SYNC = "sync"
    UPDATE = "update"


@dataclass(frozen=True)
class Resolution:
    """
    Result of resolving a plugin.

    Attributes:
        revision: Commit id to check out (may be abbreviated for commit pins)
        source: Rule that produced the revision ("commit", "tag", "branch",
            "lock", "semver-tag", "default-branch" or "clone")
        ref: Tag or branch name involved, if any
    """

    revision: str
    source: str
    ref: str | None = None


def resolve_dynamic(repo_dir: Path, fetch: bool = True) -> Resolution:
    """
    Resolve the newest stable release, or the remote default branch head.

    Args:
        repo_dir: Plugin repository directory
        fetch: Fetch from the remote first

    Returns:
        Resolution with source "semver-tag" or "default-branch"

    Raises:
        GitError: If fetching or listing tags fails
        ResolutionError: If there are no release tags and no master/main branch
    """
    if fetch:
        git_ops.fetch(repo_dir)

    tag = latest_semver_tag(git_ops.get_tags(repo_dir))
    if tag is not None:
        return Resolution(git_ops.get_head(repo_dir, tag), "semver-tag", tag)

    for branch in DEFAULT_BRANCHES:
        try:
            return Resolution(git_ops.get_remote_head(repo_dir, branch), "default-branch", branch)
        except GitError:
            logger.debug("No origin/%s in %s", branch, repo_dir)

    raise ResolutionError(
        "no semantic version tags and no master/main branch on the remote"
    )


def _fetch_unless_known(repo_dir: Path, rev: str) -> None:
    """Fetch once if rev is not in the local clone (published after install)."""
    try:
        git_ops.get_head(repo_dir, rev)
    except GitError:
        logger.debug("%s not known locally in %s, fetching", rev, repo_dir)
        git_ops.fetch(repo_dir)


def resolve_target(
    spec: PluginSpec,
    repo_dir: Path,
    locked: str | None,
    mode: Mode,
) -> Resolution:
    """
    Compute the target revision for a plugin.

    Tag and branch pins are resolved by checking them out, so the working
    copy may already be at the target when this returns.

    Args:
        spec: Plugin spec
        repo_dir: Installed copy of the plugin
        locked: Current lock entry for the plugin, if any
        mode: Operation being performed

    Returns:
        Resolution describing the target revision

    Raises:
        ResolutionError: If resolution fails; carries the plugin identity
    """
    pin = spec.pin

    try:
        if isinstance(pin, CommitPin):
            return Resolution(pin.sha, "commit")

        if isinstance(pin, TagPin):
            _fetch_unless_known(repo_dir, pin.name)
            git_ops.checkout(repo_dir, pin.name)
            return Resolution(git_ops.get_head(repo_dir), "tag", pin.name)

        if isinstance(pin, BranchPin):
            _fetch_unless_known(repo_dir, f"origin/{pin.name}")
            git_ops.checkout(repo_dir, pin.name)
            git_ops.pull(repo_dir)
            return Resolution(git_ops.get_head(repo_dir), "branch", pin.name)

        if locked is not None and mode in (Mode.INSTALL, Mode.SYNC):
            return Resolution(locked, "lock")

        if mode is Mode.INSTALL:
            return Resolution(git_ops.get_head(repo_dir), "clone")

        return resolve_dynamic(repo_dir)

    except GitError as e:
        raise ResolutionError(str(e), spec.url) from e
    except ResolutionError as e:
        if e.identity is not None:
            raise
        raise ResolutionError(str(e), spec.url) from e
