"""
Tests for the synchronization orchestrator.

This test suite covers:
1. Sync with commit, tag and branch pins
2. Lock entries for unpinned plugins
3. Lock pruning
4. Restore from the lockfile
5. Ensure-installed behavior
6. Dependency ordering and cycle detection
7. Lock state after a failed walk
"""

from pathlib import Path

import pytest
from conftest import git, head, init_repo, requires_git, with_branch, with_commit, with_tag

from tether.plugin.lockfile import read_lockfile, write_lockfile
from tether.plugin.registry import DeclarationSource, build_registry
from tether.plugin.resolver import Mode
from tether.plugin.spec import BranchPin, CommitPin, PluginSpec, TagPin
from tether.plugin.sync import (
    DependencyCycleError,
    Orchestrator,
    Session,
    SyncError,
    find_dependency_cycle,
)

pytestmark = requires_git


def single(spec: PluginSpec) -> dict[str, PluginSpec]:
    return {spec.url: spec}


def orchestrator(workspace) -> Orchestrator:
    return Orchestrator(workspace.install_dir, workspace.lockfile)


def make_plugin(root: Path, name: str, *ops) -> str:
    """Create a source repository named name and return its identity."""
    return str(init_repo(root / "sources" / name, with_commit(f"{name} initial"), *ops))


class TestSync:
    """Test the sync walk."""

    def test_commit_pin_is_installed_and_locked(self, workspace):
        """A commit pin should determine both HEAD and the lock entry."""
        init_repo(workspace.source, with_commit("one"), with_commit("two"), with_commit("three"))
        first = head(workspace.source, "HEAD~2")
        write_lockfile(workspace.lockfile, {workspace.url: head(workspace.source)})

        report = orchestrator(workspace).sync(single(PluginSpec(workspace.url, pin=CommitPin(first[:10]))))

        assert head(workspace.installed) == first
        assert read_lockfile(workspace.lockfile) == {workspace.url: first}
        assert report.cloned == [workspace.url]
        assert report.locked == [workspace.url]

    def test_tag_pin_overrides_lock(self, workspace):
        """A tag pin should win over an existing lock entry."""
        init_repo(workspace.source, with_commit("one"), with_tag("v1.0.0"), with_commit("two"))
        write_lockfile(workspace.lockfile, {workspace.url: head(workspace.source)})

        orchestrator(workspace).sync(single(PluginSpec(workspace.url, pin=TagPin("v1.0.0"))))

        tagged = head(workspace.source, "v1.0.0")
        assert head(workspace.installed) == tagged
        assert read_lockfile(workspace.lockfile) == {workspace.url: tagged}

    def test_branch_pin(self, workspace):
        """A branch pin should install the head of the branch."""
        init_repo(workspace.source, with_commit("one"), with_branch("dev", with_commit("dev work")))

        orchestrator(workspace).sync(single(PluginSpec(workspace.url, pin=BranchPin("dev"))))

        assert head(workspace.installed) == head(workspace.source, "dev")
        assert read_lockfile(workspace.lockfile) == {workspace.url: head(workspace.source, "dev")}

    def test_tag_published_after_install(self, workspace):
        """A tag pin naming a tag the clone has not seen should be fetched."""
        init_repo(workspace.source, with_commit("one"), with_tag("v1.0.0"))
        orchestrator(workspace).sync(single(PluginSpec(workspace.url)))
        with_commit("two")(workspace.source)
        with_tag("v2.0.0")(workspace.source)

        orchestrator(workspace).sync(single(PluginSpec(workspace.url, pin=TagPin("v2.0.0"))))

        released = head(workspace.source, "v2.0.0")
        assert head(workspace.installed) == released
        assert read_lockfile(workspace.lockfile) == {workspace.url: released}

    def test_branch_created_after_install(self, workspace):
        """A branch pin naming a branch the clone has not seen should be fetched."""
        init_repo(workspace.source, with_commit("one"))
        orchestrator(workspace).sync(single(PluginSpec(workspace.url)))
        with_branch("dev", with_commit("dev work"))(workspace.source)

        orchestrator(workspace).sync(single(PluginSpec(workspace.url, pin=BranchPin("dev"))))

        assert head(workspace.installed) == head(workspace.source, "dev")
        assert read_lockfile(workspace.lockfile) == {workspace.url: head(workspace.source, "dev")}

    def test_install_dir_entry_not_a_checkout(self, workspace):
        """A plain directory in place of a plugin should fail with a clear error."""
        init_repo(workspace.source, with_commit("one"))
        workspace.installed.mkdir(parents=True)

        with pytest.raises(SyncError, match="is not a git checkout") as excinfo:
            orchestrator(workspace).sync(single(PluginSpec(workspace.url)))

        assert excinfo.value.identity == workspace.url

    def test_lock_used_when_unpinned(self, workspace):
        """An unpinned plugin should stay at its locked revision."""
        init_repo(
            workspace.source,
            with_commit("one"),
            with_tag("v1.0.0"),
            with_commit("two"),
            with_tag("v1.1.0"),
        )
        locked = head(workspace.source, "v1.0.0")
        write_lockfile(workspace.lockfile, {workspace.url: locked})
        before = workspace.lockfile.read_bytes()

        report = orchestrator(workspace).sync(single(PluginSpec(workspace.url)))

        assert head(workspace.installed) == locked
        assert workspace.lockfile.read_bytes() == before
        assert report.locked == []

    def test_new_unpinned_plugin_gets_latest_release(self, workspace):
        """An unlocked, unpinned plugin should go to the latest release tag."""
        init_repo(
            workspace.source,
            with_commit("one"),
            with_tag("v1.0.0"),
            with_commit("two"),
            with_tag("v2.0.0"),
            with_commit("unreleased"),
        )

        orchestrator(workspace).sync(single(PluginSpec(workspace.url)))

        released = head(workspace.source, "v2.0.0")
        assert head(workspace.installed) == released
        assert read_lockfile(workspace.lockfile) == {workspace.url: released}

    def test_prunes_undeclared_lock_entries(self, workspace):
        """Lock entries for undeclared plugins should be dropped, disk copies kept."""
        init_repo(workspace.source, with_commit("one"))
        gone = "https://example.invalid/user/gone"
        write_lockfile(workspace.lockfile, {gone: "a" * 40})
        (workspace.install_dir / "gone").mkdir(parents=True)

        report = orchestrator(workspace).sync(single(PluginSpec(workspace.url)))

        assert gone not in read_lockfile(workspace.lockfile)
        assert report.unlocked == [gone]
        assert (workspace.install_dir / "gone").is_dir()

    def test_unknown_locked_commit_fails(self, workspace):
        """A lock entry naming a missing commit should fail with the plugin identity."""
        init_repo(workspace.source, with_commit("one"))
        write_lockfile(workspace.lockfile, {workspace.url: "0" * 40})

        with pytest.raises(SyncError) as exc_info:
            orchestrator(workspace).sync(single(PluginSpec(workspace.url)))

        assert exc_info.value.identity == workspace.url

    def test_failure_keeps_confirmed_entries(self, workspace):
        """Entries confirmed before a failure should still be written."""
        good = make_plugin(workspace.dir, "aaa")
        bad = make_plugin(workspace.dir, "zzz")
        registry = {
            good: PluginSpec(good),
            bad: PluginSpec(bad, pin=CommitPin("deadbeef")),
        }

        with pytest.raises(SyncError, match="zzz"):
            orchestrator(workspace).sync(registry)

        assert read_lockfile(workspace.lockfile) == {good: head(Path(good))}

    def test_session_dedupes_repeated_sync(self, workspace):
        """A plugin handled once in a session should not be processed again."""
        init_repo(workspace.source, with_commit("one"))
        session = Session()
        registry = single(PluginSpec(workspace.url))

        Orchestrator(workspace.install_dir, workspace.lockfile, session).sync(registry)
        assert session.is_handled(Mode.SYNC, workspace.url)
        assert not session.is_handled(Mode.INSTALL, workspace.url)

        report = Orchestrator(workspace.install_dir, workspace.lockfile, session).sync(registry)
        assert not report.changed

        session.reset()
        assert not session.is_handled(Mode.SYNC, workspace.url)


class TestRestore:
    """Test restoring from the lockfile."""

    def test_restore_is_idempotent(self, workspace):
        """A second restore should not check anything out."""
        init_repo(workspace.source, with_commit("one"), with_commit("two"))
        locked = head(workspace.source, "HEAD~1")
        write_lockfile(workspace.lockfile, {workspace.url: locked})

        first = orchestrator(workspace).restore()
        second = orchestrator(workspace).restore()

        assert first.cloned == [workspace.url]
        assert head(workspace.installed) == locked
        assert second.cloned == []
        assert second.checked_out == []
        assert not second.changed

    def test_restore_moves_drifted_copy(self, workspace):
        """A copy moved away from its lock entry should be checked out again."""
        init_repo(workspace.source, with_commit("one"), with_commit("two"))
        locked = head(workspace.source, "HEAD~1")
        write_lockfile(workspace.lockfile, {workspace.url: locked})
        orchestrator(workspace).restore()

        git(workspace.installed, "checkout", "-q", "master")
        report = orchestrator(workspace).restore()

        assert report.checked_out == [workspace.url]
        assert head(workspace.installed) == locked

    def test_restore_removes_unlocked_installs(self, workspace):
        """Installed plugins without a lock entry should be deleted."""
        init_repo(workspace.source, with_commit("one"))
        write_lockfile(workspace.lockfile, {workspace.url: head(workspace.source)})
        stray = workspace.install_dir / "stray"
        stray.mkdir(parents=True)

        report = orchestrator(workspace).restore()

        assert report.removed == ["stray"]
        assert not stray.exists()
        assert workspace.installed.is_dir()

    def test_empty_lockfile_removes_everything(self, workspace):
        """An existing empty lockfile should leave no installed plugins."""
        write_lockfile(workspace.lockfile, {})
        (workspace.install_dir / "one").mkdir(parents=True)
        (workspace.install_dir / "two").mkdir()

        report = orchestrator(workspace).restore()

        assert report.removed == ["one", "two"]
        assert list(workspace.install_dir.iterdir()) == []

    def test_missing_lockfile_removes_nothing(self, workspace):
        """Without a lockfile installed plugins should be left alone."""
        stray = workspace.install_dir / "stray"
        stray.mkdir(parents=True)

        report = orchestrator(workspace).restore()

        assert stray.is_dir()
        assert report.removed == []
        assert not workspace.lockfile.exists()

    def test_restore_unknown_commit(self, workspace):
        """A lock entry naming a missing commit should raise SyncError."""
        init_repo(workspace.source, with_commit("one"))
        write_lockfile(workspace.lockfile, {workspace.url: "0" * 40})

        with pytest.raises(SyncError, match="Failed to restore"):
            orchestrator(workspace).restore()


class TestEnsureInstalled:
    """Test the install walk."""

    def test_fresh_install_locks_clone_head(self, workspace):
        """A new unpinned plugin should be locked at the cloned HEAD."""
        init_repo(workspace.source, with_commit("one"), with_tag("v1.0.0"), with_commit("two"))

        report = orchestrator(workspace).ensure_installed(single(PluginSpec(workspace.url)))

        assert report.cloned == [workspace.url]
        assert head(workspace.installed) == head(workspace.source)
        assert read_lockfile(workspace.lockfile) == {workspace.url: head(workspace.source)}

    def test_fresh_install_uses_lock(self, workspace):
        """A missing plugin should be cloned at its locked revision."""
        init_repo(workspace.source, with_commit("one"), with_commit("two"))
        locked = head(workspace.source, "HEAD~1")
        write_lockfile(workspace.lockfile, {workspace.url: locked})

        orchestrator(workspace).ensure_installed(single(PluginSpec(workspace.url)))

        assert head(workspace.installed) == locked
        assert read_lockfile(workspace.lockfile) == {workspace.url: locked}

    def test_does_not_move_installed_plugins(self, workspace):
        """Installed plugins and existing lock entries should not change."""
        init_repo(workspace.source, with_commit("one"))
        original = head(workspace.source)
        orchestrator(workspace).ensure_installed(single(PluginSpec(workspace.url)))

        with_commit("two")(workspace.source)
        with_tag("v2.0.0")(workspace.source)
        report = orchestrator(workspace).ensure_installed(
            single(PluginSpec(workspace.url, pin=TagPin("v2.0.0")))
        )

        assert head(workspace.installed) == original
        assert read_lockfile(workspace.lockfile) == {workspace.url: original}
        assert not report.changed

    def test_fills_missing_lock_entry(self, workspace):
        """An installed plugin without a lock entry should be locked at its HEAD."""
        init_repo(workspace.source, with_commit("one"))
        orchestrator(workspace).ensure_installed(single(PluginSpec(workspace.url)))
        workspace.lockfile.unlink()

        report = orchestrator(workspace).ensure_installed(single(PluginSpec(workspace.url)))

        assert report.cloned == []
        assert report.locked == [workspace.url]
        assert read_lockfile(workspace.lockfile) == {workspace.url: head(workspace.source)}


class TestDependencies:
    """Test dependency ordering and cycles."""

    def test_diamond_dependencies(self, workspace):
        """Shared dependencies should be handled once, before their dependents."""
        d = make_plugin(workspace.dir, "d")
        b = make_plugin(workspace.dir, "b")
        c = make_plugin(workspace.dir, "c")
        a = make_plugin(workspace.dir, "a")
        registry = build_registry(
            [
                DeclarationSource("a.toml", {"url": a, "dependencies": [b, c]}),
                DeclarationSource("b.toml", {"url": b, "dependencies": [d]}),
                DeclarationSource("c.toml", {"url": c, "dependencies": [d]}),
            ]
        )

        report = orchestrator(workspace).sync(registry)

        assert report.cloned == [d, b, c, a]
        assert set(read_lockfile(workspace.lockfile)) == {a, b, c, d}

    def test_cycle_detected_before_touching_disk(self, workspace):
        """A dependency cycle should be reported without cloning anything."""
        a = make_plugin(workspace.dir, "a")
        b = make_plugin(workspace.dir, "b")
        registry = build_registry(
            [
                DeclarationSource("a.toml", {"url": a, "dependencies": [b]}),
                DeclarationSource("b.toml", {"url": b, "dependencies": [a]}),
            ]
        )

        with pytest.raises(DependencyCycleError) as exc_info:
            orchestrator(workspace).sync(registry)

        assert exc_info.value.cycle == [a, b, a]
        assert not workspace.install_dir.exists()
        assert not workspace.lockfile.exists()

    def test_find_dependency_cycle(self):
        """find_dependency_cycle should return None for acyclic graphs."""
        registry = {
            "x/a": PluginSpec("x/a", dependencies=("x/b",)),
            "x/b": PluginSpec("x/b"),
        }
        assert find_dependency_cycle(registry) is None

        registry["x/b"] = PluginSpec("x/b", dependencies=("x/b",))
        assert find_dependency_cycle(registry) == ["x/b", "x/b"]
