"""
Git Operations for Plugin Management.

This module provides the git commands the plugin synchronizer depends on.

Key features:
- Clone plugins from git repositories
- Fetch remote branches and tags
- Checkout commits, tags and branches
- Resolve revisions (HEAD, HEAD~N, tags, remote branches)
- Commit ranges and tags pointing at a commit
"""

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)


class GitError(Exception):
    """
    Raised when a git command fails.

    The message always carries git's own diagnostic output so callers can
    tell failure categories apart (e.g. "not a git repository" versus
    "did not match any file(s) known to git").
    """

    def __init__(self, message: str, command: list[str] | None = None, returncode: int | None = None):
        super().__init__(message)
        self.command = command or []
        self.returncode = returncode


def _run_git(args: list[str], cwd: Path | None, action: str) -> str:
    """
    Run a git command and return its stdout.

    Args:
        args: Arguments after "git"
        cwd: Working directory (None for the current directory)
        action: Human-readable action used in error messages

    Returns:
        Standard output of the command

    Raises:
        GitError: If git is missing, cwd is missing, or the command fails
    """
    cmd = ["git", *args]
    logger.debug("Running %s (cwd=%s)", " ".join(cmd), cwd)

    if cwd is not None and not Path(cwd).is_dir():
        raise GitError(f"Failed to {action}: not a git repository (missing {cwd})", cmd)

    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as e:
        raise GitError("git command not found. Please install git.", cmd) from e
    except OSError as e:
        raise GitError(f"Failed to {action}: {e}", cmd) from e

    if result.returncode != 0:
        output = (result.stderr or result.stdout or "unknown error").strip()
        raise GitError(f"Failed to {action}: {output}", cmd, result.returncode)

    return result.stdout


def clone(source: str, target_dir: Path) -> None:
    """
    Clone a plugin repository.

    Args:
        source: Repository URL or local path
        target_dir: Destination directory

    Raises:
        GitError: If clone operation fails
    """
    target_dir.parent.mkdir(parents=True, exist_ok=True)
    _run_git(["clone", "--quiet", source, str(target_dir)], None, "clone repository")


def get_head(repo_dir: Path, rev: str = "HEAD") -> str:
    """
    Get the commit id a revision points to.

    Args:
        repo_dir: Plugin repository directory
        rev: Revision (default: "HEAD"); relative forms like "HEAD~2" and tag
            names are supported, annotated tags are peeled to their commit

    Returns:
        Full 40-character commit id

    Raises:
        GitError: If the revision cannot be resolved
    """
    output = _run_git(
        ["rev-parse", "--verify", f"{rev}^{{commit}}"],
        repo_dir,
        f"resolve revision {rev}",
    )
    return output.strip()


def checkout(repo_dir: Path, ref: str) -> None:
    """
    Checkout a commit, tag or branch.

    Args:
        repo_dir: Plugin repository directory
        ref: Reference to checkout

    Raises:
        GitError: If checkout operation fails
    """
    _run_git(["checkout", "--quiet", ref], repo_dir, f"checkout {ref}")


def fetch(repo_dir: Path) -> None:
    """
    Fetch branches and tags from the remote repository.

    Moved tags are updated locally.

    Args:
        repo_dir: Plugin repository directory

    Raises:
        GitError: If fetch operation fails
    """
    _run_git(["fetch", "--quiet", "--tags", "--force", "origin"], repo_dir, "fetch")


def pull(repo_dir: Path) -> None:
    """
    Fast-forward the current branch to its upstream.

    Args:
        repo_dir: Plugin repository directory

    Raises:
        GitError: If the branch cannot be fast-forwarded
    """
    _run_git(["pull", "--quiet", "--ff-only"], repo_dir, "pull")


def get_tags(repo_dir: Path) -> list[str]:
    """
    List all tags in repository.

    Args:
        repo_dir: Plugin repository directory

    Returns:
        List of tag names (empty if the repository has no tags)

    Raises:
        GitError: If list operation fails
    """
    output = _run_git(["tag", "-l"], repo_dir, "list tags")
    return [line.strip() for line in output.splitlines() if line.strip()]


def get_remote_head(repo_dir: Path, branch: str) -> str:
    """
    Get the commit id of a remote branch.

    Args:
        repo_dir: Plugin repository directory
        branch: Branch name (e.g., "master", "main")

    Returns:
        Commit id of origin/<branch>

    Raises:
        GitError: If the remote branch does not exist
    """
    return get_head(repo_dir, f"origin/{branch}")


def log_range(repo_dir: Path, from_sha: str, to_sha: str) -> list[str]:
    """
    List one-line commit summaries between two revisions.

    Args:
        repo_dir: Plugin repository directory
        from_sha: Old revision (exclusive)
        to_sha: New revision (inclusive)

    Returns:
        Summaries ("<short sha> <subject>"), newest first

    Raises:
        GitError: If either revision is unknown
    """
    output = _run_git(
        ["log", "--oneline", "--no-decorate", f"{from_sha}..{to_sha}"],
        repo_dir,
        "read commit log",
    )
    return [line for line in output.splitlines() if line.strip()]


def tags_pointing_at(repo_dir: Path, sha: str) -> list[str]:
    """
    List tags pointing exactly at a commit.

    Args:
        repo_dir: Plugin repository directory
        sha: Commit id

    Returns:
        Tag names, sorted by git

    Raises:
        GitError: If the commit is unknown
    """
    output = _run_git(["tag", "--points-at", sha], repo_dir, f"list tags at {sha[:7]}")
    return [line.strip() for line in output.splitlines() if line.strip()]


def is_repository(path: Path) -> bool:
    """
    Check whether a directory is the root of a git checkout.

    Args:
        path: Directory to check

    Returns:
        True if path contains a .git entry
    """
    return (path / ".git").exists()
