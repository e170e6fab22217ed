"""
Plugin Synchronization.

This module keeps installed plugins and the lockfile in step with the
declared registry or with the recorded lock state.

Key features:
- Ensure-installed walk for startup (clone missing plugins, fill lock gaps)
- Sync walk (full resolution, pins override the lock, stale lock entries pruned)
- Restore from the lockfile (checkout locked revisions, remove unlocked installs)
- Dependencies processed before their dependents, at most once per session
- Dependency cycles reported before anything touches the disk
"""

import logging
import shutil
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from tether.plugin import git_ops
from tether.plugin.git_ops import GitError
from tether.plugin.lockfile import LockfileError, LockStore
from tether.plugin.resolver import Mode, resolve_target
from tether.plugin.spec import CommitPin, PluginSpec, install_name

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """Raised when installing, syncing or restoring a plugin fails."""

    def __init__(self, message: str, identity: str | None = None):
        super().__init__(message)
        self.identity = identity


class DependencyCycleError(SyncError):
    """Raised when plugin dependencies form a cycle."""

    def __init__(self, cycle: list[str]):
        super().__init__(
            "Circular dependency detected: " + " -> ".join(cycle),
            cycle[0] if cycle else None,
        )
        self.cycle = cycle


@dataclass
class Session:
    """
    Per-invocation bookkeeping shared by the operations of one run.

    Tracks which identities each mode has already handled so a plugin
    reached through several dependency paths is processed once.
    """

    handled: dict[Mode, set[str]] = field(
        default_factory=lambda: {mode: set() for mode in Mode}
    )

    def is_handled(self, mode: Mode, identity: str) -> bool:
        return identity in self.handled[mode]

    def mark_handled(self, mode: Mode, identity: str) -> None:
        self.handled[mode].add(identity)

    def reset(self) -> None:
        for identities in self.handled.values():
            identities.clear()


@dataclass
class SyncReport:
    """
    Summary of what an operation changed.

    Attributes:
        cloned: Identities cloned
        checked_out: Identities whose HEAD moved
        locked: Identities whose lock entry was written
        unlocked: Identities removed from the lockfile
        removed: Install directory names deleted from disk
    """

    cloned: list[str] = field(default_factory=list)
    checked_out: list[str] = field(default_factory=list)
    locked: list[str] = field(default_factory=list)
    unlocked: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return any((self.cloned, self.checked_out, self.locked, self.unlocked, self.removed))


@dataclass
class _Walk:
    """Operation-scoped traversal state."""

    mode: Mode
    registry: Mapping[str, PluginSpec]
    lock: LockStore
    report: SyncReport
    visiting: list[str] = field(default_factory=list)


def find_dependency_cycle(registry: Mapping[str, PluginSpec]) -> list[str] | None:
    """
    Find a dependency cycle in the registry.

    Args:
        registry: Identity -> PluginSpec mapping

    Returns:
        The cycle as a list of identities (first repeated at the end),
        or None if the dependency graph is acyclic
    """
    done: set[str] = set()
    path: list[str] = []

    def visit(identity: str) -> list[str] | None:
        if identity in path:
            return path[path.index(identity):] + [identity]
        if identity in done:
            return None

        path.append(identity)
        spec = registry.get(identity)
        for dep in spec.dependencies if spec else ():
            cycle = visit(dep)
            if cycle:
                return cycle
        path.pop()
        done.add(identity)
        return None

    for identity in sorted(registry):
        cycle = visit(identity)
        if cycle:
            return cycle

    return None


class Orchestrator:
    """
    Drives install, sync and restore over the plugin registry.

    Example:
        orchestrator = Orchestrator(Path(".tether/plugins"), Path("tether-lock.json"))
        report = orchestrator.sync(registry)
    """

    def __init__(self, install_dir: Path, lockfile_path: Path, session: Session | None = None):
        """
        Initialize Orchestrator.

        Args:
            install_dir: Directory holding installed plugins
            lockfile_path: Lockfile path
            session: Session shared with other operations of this run
        """
        self.install_dir = install_dir
        self.lockfile_path = lockfile_path
        self.session = session or Session()

    def install_path(self, identity: str) -> Path:
        """Get the install directory of a plugin."""
        return self.install_dir / install_name(identity)

    def ensure_installed(self, registry: Mapping[str, PluginSpec]) -> SyncReport:
        """
        Make sure every plugin is on disk without moving installed ones.

        Missing plugins are cloned and checked out to their pin (or their
        lock entry); lock entries are only added, never overwritten.

        Args:
            registry: Identity -> PluginSpec mapping

        Returns:
            SyncReport of the changes

        Raises:
            DependencyCycleError: If dependencies form a cycle
            SyncError: If a git operation fails
            ResolutionError: If a pin cannot be resolved
            LockfileError: If the lockfile cannot be read or written
        """
        return self._run(Mode.INSTALL, registry, self._install_one)

    def sync(self, registry: Mapping[str, PluginSpec]) -> SyncReport:
        """
        Bring every plugin to its resolved revision and record it.

        Lock entries for identities no longer in the registry are dropped
        (installed copies are left on disk).

        Args:
            registry: Identity -> PluginSpec mapping

        Returns:
            SyncReport of the changes

        Raises:
            DependencyCycleError: If dependencies form a cycle
            SyncError: If a git operation fails
            ResolutionError: If a plugin cannot be resolved
            LockfileError: If the lockfile cannot be read or written
        """
        return self._run(Mode.SYNC, registry, self._sync_one, prune_lock=True)

    def restore(self) -> SyncReport:
        """
        Restore installed plugins to the lockfile state.

        Every locked plugin is cloned if missing and checked out to its
        locked revision. Installed plugins without a lock entry are removed,
        unless the lockfile does not exist at all.

        Returns:
            SyncReport of the changes

        Raises:
            SyncError: If a git operation or removal fails
            LockfileError: If the lockfile cannot be read
        """
        lock = LockStore.load(self.lockfile_path)
        report = SyncReport()

        for identity in lock.identities():
            path = self.install_path(identity)
            revision = lock.get(identity)
            self._check_checkout(path, identity)

            try:
                if not path.exists():
                    logger.info("Installing %s...", install_name(identity))
                    git_ops.clone(identity, path)
                    report.cloned.append(identity)

                before = git_ops.get_head(path)
                head = self._move_to(path, identity, revision)
            except GitError as e:
                raise SyncError(f"Failed to restore {identity}: {e}", identity) from e

            if head != before:
                report.checked_out.append(identity)
                logger.info("Restored %s to %s", install_name(identity), head[:7])

        if not lock.exists:
            logger.warning(
                "No lockfile at %s; leaving installed plugins untouched", self.lockfile_path
            )
            return report

        self._remove_unlocked(lock, report)
        return report

    def _run(
        self,
        mode: Mode,
        registry: Mapping[str, PluginSpec],
        handle: Callable[[PluginSpec, _Walk], None],
        prune_lock: bool = False,
    ) -> SyncReport:
        cycle = find_dependency_cycle(registry)
        if cycle:
            raise DependencyCycleError(cycle)

        lock = LockStore.load(self.lockfile_path)
        walk = _Walk(mode=mode, registry=registry, lock=lock, report=SyncReport())

        if prune_lock:
            for identity in lock.identities():
                if identity not in registry:
                    logger.info("Removing %s from lockfile", identity)
                    lock.remove(identity)
                    walk.report.unlocked.append(identity)

        try:
            for identity in sorted(registry):
                self._visit(identity, walk, handle)
        except Exception:
            # Entries recorded so far were confirmed against disk; keep them
            try:
                lock.save()
            except LockfileError as save_error:
                logger.error("%s", save_error)
            raise

        lock.save()
        return walk.report

    def _visit(self, identity: str, walk: _Walk, handle: Callable[[PluginSpec, _Walk], None]) -> None:
        if identity in walk.visiting:
            raise DependencyCycleError(walk.visiting[walk.visiting.index(identity):] + [identity])

        if self.session.is_handled(walk.mode, identity):
            return

        spec = walk.registry.get(identity) or PluginSpec.stub(identity)

        walk.visiting.append(identity)
        try:
            for dep in spec.dependencies:
                self._visit(dep, walk, handle)
            handle(spec, walk)
        finally:
            walk.visiting.pop()

        self.session.mark_handled(walk.mode, identity)

    def _install_one(self, spec: PluginSpec, walk: _Walk) -> None:
        path = self.install_path(spec.url)
        self._check_checkout(path, spec.url)
        locked = walk.lock.get(spec.url)

        try:
            if not path.exists():
                logger.info("Installing %s...", spec.name)
                git_ops.clone(spec.url, path)
                walk.report.cloned.append(spec.url)

                if spec.is_pinned or locked is not None:
                    before = git_ops.get_head(path)
                    resolution = resolve_target(spec, path, locked, Mode.INSTALL)
                    if self._move_to(path, spec.url, resolution.revision) != before:
                        walk.report.checked_out.append(spec.url)

                logger.info("Installed %s", spec.url)

            if locked is None:
                walk.lock.set(spec.url, git_ops.get_head(path))
                walk.report.locked.append(spec.url)
        except GitError as e:
            raise SyncError(f"Failed to install {spec.url}: {e}", spec.url) from e

    def _sync_one(self, spec: PluginSpec, walk: _Walk) -> None:
        path = self.install_path(spec.url)
        self._check_checkout(path, spec.url)

        try:
            if not path.exists():
                logger.info("Installing %s...", spec.name)
                git_ops.clone(spec.url, path)
                walk.report.cloned.append(spec.url)

            before = git_ops.get_head(path)
            resolution = resolve_target(spec, path, walk.lock.get(spec.url), Mode.SYNC)
            head = self._move_to(path, spec.url, resolution.revision)
        except GitError as e:
            raise SyncError(f"Failed to sync {spec.url}: {e}", spec.url) from e

        if head != before:
            walk.report.checked_out.append(spec.url)
            via = f" ({resolution.source} {resolution.ref})" if resolution.ref else ""
            logger.info("Synced %s to %s%s", spec.name, head[:7], via)

        if walk.lock.set(spec.url, head):
            walk.report.locked.append(spec.url)

    def _check_checkout(self, path: Path, identity: str) -> None:
        if path.exists() and not git_ops.is_repository(path):
            raise SyncError(f"{path} exists but is not a git checkout of {identity}", identity)

    def _move_to(self, path: Path, identity: str, target: str) -> str:
        """
        Checkout target unless HEAD is already there, then confirm HEAD.

        target may be an abbreviated commit id (commit pins).

        Returns:
            The confirmed full HEAD commit id

        Raises:
            GitError: If fetching or checkout fails
            SyncError: If HEAD does not match target after checkout
        """
        wanted = CommitPin(target)
        head = git_ops.get_head(path)
        if wanted.matches(head):
            return head

        try:
            git_ops.get_head(path, target)
        except GitError:
            # Commit not in the local clone yet
            git_ops.fetch(path)

        git_ops.checkout(path, target)
        head = git_ops.get_head(path)

        if not wanted.matches(head):
            raise SyncError(
                f"Checkout of {identity} left HEAD at {head[:7]}, expected {target[:7]}",
                identity,
            )
        return head

    def _remove_unlocked(self, lock: LockStore, report: SyncReport) -> None:
        if not self.install_dir.is_dir():
            return

        locked_names = {install_name(identity) for identity in lock.identities()}

        for entry in sorted(self.install_dir.iterdir()):
            if not entry.is_dir() or entry.name in locked_names:
                continue

            logger.warning("Plugin %s not in lockfile, removing...", entry.name)
            try:
                shutil.rmtree(entry)
            except OSError as e:
                raise SyncError(f"Failed to remove {entry}: {e}") from e
            report.removed.append(entry.name)
            logger.info("Removed %s", entry.name)
