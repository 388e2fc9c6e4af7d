# git.py
# Small wrapper around the Git CLI for build metadata (build numbers, tags).
# The rest of the codebase never calls subprocess("git ...") directly.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Args:
        args: List of git arguments (e.g. ["rev-parse", "HEAD"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.
    """
    # non-zero exit raises CalledProcessError
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def repo_root(cwd: Optional[str] = None) -> Path:
    """Return the absolute path to the root of the current Git repository."""
    return Path(_git(["rev-parse", "--show-toplevel"], cwd=cwd))


def head_sha(cwd: Optional[str] = None, short: bool = False) -> str:
    """
    Return the SHA of the current HEAD commit.

    Short SHAs are handy for image tags (`myapp:3f2a9c1`).
    """
    if short:
        return _git(["rev-parse", "--short", "HEAD"], cwd=cwd)
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def commit_count(cwd: Optional[str] = None) -> int:
    """Number of commits reachable from HEAD; monotonic on a linear branch."""
    return int(_git(["rev-list", "--count", "HEAD"], cwd=cwd))


def is_dirty(cwd: Optional[str] = None) -> bool:
    """True if the working tree has modified, staged or untracked files."""
    return _git(["status", "--porcelain"], cwd=cwd) != ""


def build_number(cwd: Optional[str] = None) -> str:
    """
    Derive a build number from git: "<commit count>.<short sha>", with a
    "-dirty" suffix when the working tree has uncommitted changes.
    """
    number = f"{commit_count(cwd)}.{head_sha(cwd, short=True)}"
    if is_dirty(cwd):
        number += "-dirty"
    return number
