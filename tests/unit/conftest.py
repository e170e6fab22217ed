"""
Shared fixtures for tests that need real git repositories.
"""

import shutil
import subprocess
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import pytest

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

GIT_IDENTITY = [
    "-c", "user.email=test@test.com",
    "-c", "user.name=Test",
    "-c", "commit.gpgsign=false",
    "-c", "tag.gpgsign=false",
]


def git(repo: Path, *args: str) -> str:
    """Run a git command in repo and return stripped stdout."""
    result = subprocess.run(
        ["git", *GIT_IDENTITY, *args],
        cwd=repo,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def with_commit(message: str) -> Callable[[Path], None]:
    def apply(repo: Path) -> None:
        git(repo, "commit", "--allow-empty", "-q", "-m", message)

    return apply


def with_tag(name: str) -> Callable[[Path], None]:
    def apply(repo: Path) -> None:
        git(repo, "tag", name)

    return apply


def with_branch(name: str, *ops: Callable[[Path], None]) -> Callable[[Path], None]:
    """Create a branch, apply ops on it, then switch back to master."""

    def apply(repo: Path) -> None:
        git(repo, "checkout", "-q", "-b", name)
        for op in ops:
            op(repo)
        git(repo, "checkout", "-q", "master")

    return apply


def init_repo(path: Path, *ops: Callable[[Path], None]) -> Path:
    """Create a repository on branch master and apply ops in order."""
    path.mkdir(parents=True, exist_ok=True)
    git(path, "init", "-q", "-b", "master")
    for op in ops:
        op(path)
    return path


def head(repo: Path, rev: str = "HEAD") -> str:
    return git(repo, "rev-parse", f"{rev}^{{commit}}")


@dataclass
class Workspace:
    """Temporary layout: a source repository, an install dir and a lockfile."""

    dir: Path
    source: Path
    install_dir: Path
    lockfile: Path

    @property
    def url(self) -> str:
        return str(self.source)

    @property
    def installed(self) -> Path:
        return self.install_dir / self.source.name


@pytest.fixture
def workspace():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        yield Workspace(
            dir=root,
            source=root / "source",
            install_dir=root / "plugins",
            lockfile=root / "lock.json",
        )
