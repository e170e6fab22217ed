"""
Plugin Updates.

This module finds, presents and applies updates for unpinned plugins.

Updates run in three phases:
1. Collect: resolve the newest release for every unpinned, locked and
   installed plugin and describe the commits between the locked revision
   and the candidate.
2. Review: ask a decide() callback to approve, skip or abort each update.
3. Apply: write the approved revisions to the lockfile, then check them out.

Apply writes the lockfile before touching the working copies. If a checkout
fails the lockfile is ahead of disk; running sync reconciles it.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from tether.plugin import git_ops
from tether.plugin.git_ops import GitError
from tether.plugin.lockfile import LockStore
from tether.plugin.resolver import ResolutionError, resolve_dynamic
from tether.plugin.spec import PluginSpec, install_name
from tether.plugin.versions import first_semver_tag, is_major_bump

logger = logging.getLogger(__name__)


class UpdateError(Exception):
    """Raised when collecting or applying updates fails."""

    def __init__(self, message: str, identity: str | None = None):
        super().__init__(message)
        self.identity = identity


class Decision(Enum):
    """Reviewer answer for one update."""

    APPROVE = "approve"
    SKIP = "skip"
    ABORT = "abort"


@dataclass
class UpdateInfo:
    """
    An available update for one plugin.

    Attributes:
        identity: Plugin identity
        name: Install name of the plugin
        old_revision: Locked commit id
        new_revision: Candidate commit id
        commits: One-line summaries of the new commits, newest first
        old_tag: Release tag at the old revision, if any
        new_tag: Release tag at the new revision, if any
        is_major_bump: True if the major version increases
    """

    identity: str
    name: str
    old_revision: str
    new_revision: str
    commits: list[str] = field(default_factory=list)
    old_tag: str | None = None
    new_tag: str | None = None
    is_major_bump: bool = False


def _tag_at(repo_dir: Path, revision: str) -> str | None:
    return first_semver_tag(git_ops.tags_pointing_at(repo_dir, revision))


def collect_one(identity: str, repo_dir: Path, current: str) -> UpdateInfo | None:
    """
    Collect the update for a single plugin.

    Args:
        identity: Plugin identity
        repo_dir: Installed copy of the plugin
        current: Locked revision

    Returns:
        UpdateInfo, or None if there is nothing new

    Raises:
        GitError: If a git operation fails
        ResolutionError: If no candidate revision can be resolved
    """
    candidate = resolve_dynamic(repo_dir).revision

    if candidate == current:
        return None

    commits = git_ops.log_range(repo_dir, current, candidate)
    if not commits:
        # Moved tag or rewritten history; nothing to report
        logger.debug("No new commits for %s between %s and %s", identity, current[:7], candidate[:7])
        return None

    old_tag = _tag_at(repo_dir, current)
    new_tag = _tag_at(repo_dir, candidate)

    return UpdateInfo(
        identity=identity,
        name=install_name(identity),
        old_revision=current,
        new_revision=candidate,
        commits=commits,
        old_tag=old_tag,
        new_tag=new_tag,
        is_major_bump=is_major_bump(old_tag, new_tag),
    )


def collect_updates(
    registry: Mapping[str, PluginSpec], lock: LockStore, install_dir: Path
) -> list[UpdateInfo]:
    """
    Collect available updates for all unpinned plugins.

    Plugins with a commit, tag or branch pin, without a lock entry, or not
    installed are skipped.

    Args:
        registry: Identity -> PluginSpec mapping
        lock: Current lock state
        install_dir: Directory holding installed plugins

    Returns:
        Updates sorted by identity

    Raises:
        UpdateError: If fetching or resolving a plugin fails
    """
    updates = []

    for identity in sorted(registry):
        spec = registry[identity]
        if spec.is_pinned:
            continue

        current = lock.get(identity)
        if current is None:
            continue

        repo_dir = install_dir / install_name(identity)
        if not repo_dir.is_dir():
            continue

        logger.info("Checking %s...", install_name(identity))
        try:
            info = collect_one(identity, repo_dir, current)
        except (GitError, ResolutionError) as e:
            raise UpdateError(f"Failed to check {identity} for updates: {e}", identity) from e

        if info is not None:
            updates.append(info)

    return updates


def format_update(info: UpdateInfo) -> list[str]:
    """
    Format an update for display.

    Args:
        info: Update to format

    Returns:
        Header line, underline, then indented commit summaries
    """
    count = len(info.commits)
    header = f"{info.name} ({count} commit{'s' if count != 1 else ''})"

    if info.is_major_bump:
        header += f" [MAJOR] {info.old_tag} → {info.new_tag}"
    elif info.new_tag and info.new_tag != info.old_tag:
        header += f" {info.old_tag or info.old_revision[:7]} → {info.new_tag}"

    lines = [header, "-" * len(header)]
    lines.extend(f"  {commit}" for commit in info.commits)
    return lines


def review_updates(
    updates: list[UpdateInfo], decide: Callable[[UpdateInfo], Decision]
) -> list[UpdateInfo]:
    """
    Ask for a decision on each update in turn.

    Args:
        updates: Collected updates
        decide: Callback returning APPROVE, SKIP or ABORT for an update

    Returns:
        Approved updates; after ABORT the remaining updates are discarded
    """
    approved = []

    for info in updates:
        decision = decide(info)
        if decision is Decision.ABORT:
            logger.info("Update review aborted")
            break
        if decision is Decision.APPROVE:
            approved.append(info)

    return approved


def apply_updates(approved: list[UpdateInfo], lock: LockStore, install_dir: Path) -> None:
    """
    Apply approved updates.

    The lockfile is rewritten once with every new revision, then each
    installed copy is checked out.

    Args:
        approved: Approved updates
        lock: Lock state to update
        install_dir: Directory holding installed plugins

    Raises:
        LockfileError: If the lockfile cannot be written
        UpdateError: If a checkout fails (the lockfile is already updated)
    """
    if not approved:
        return

    for info in approved:
        lock.set(info.identity, info.new_revision)
    lock.save()

    for info in approved:
        repo_dir = install_dir / install_name(info.identity)
        try:
            git_ops.checkout(repo_dir, info.new_revision)
            head = git_ops.get_head(repo_dir)
        except GitError as e:
            raise UpdateError(
                f"Failed to update {info.identity}: {e}. "
                f"The lockfile already records {info.new_revision[:7]}; run sync to reconcile.",
                info.identity,
            ) from e

        if head != info.new_revision:
            raise UpdateError(
                f"Checkout of {info.identity} left HEAD at {head[:7]}, "
                f"expected {info.new_revision[:7]}",
                info.identity,
            )
        logger.info("Updated %s to %s", info.name, info.new_revision[:7])


class UpdateEngine:
    """
    Runs the collect, review and apply phases against one lockfile.

    Example:
        engine = UpdateEngine(install_dir, lockfile_path)
        updates = engine.collect(registry)
        approved = engine.review(updates, decide)
        engine.apply(approved)
    """

    def __init__(self, install_dir: Path, lockfile_path: Path):
        self.install_dir = install_dir
        self.lock = LockStore.load(lockfile_path)

    def collect(self, registry: Mapping[str, PluginSpec]) -> list[UpdateInfo]:
        return collect_updates(registry, self.lock, self.install_dir)

    def review(
        self, updates: list[UpdateInfo], decide: Callable[[UpdateInfo], Decision]
    ) -> list[UpdateInfo]:
        return review_updates(updates, decide)

    def apply(self, approved: list[UpdateInfo]) -> None:
        apply_updates(approved, self.lock, self.install_dir)
