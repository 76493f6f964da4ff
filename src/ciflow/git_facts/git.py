# git.py
# Small wrapper around the Git CLI for facts about the current checkout.
# Steps never go through here; checkout steps run git as their own process.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str | Path] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Raises subprocess.CalledProcessError on a non-zero exit and
    FileNotFoundError when git is not installed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def current_branch(cwd: Optional[str | Path] = None) -> Optional[str]:
    """
    Name of the checked-out branch, or None when it cannot be determined
    (not a repository, git missing, or a detached HEAD).
    """
    try:
        branch = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None
    return None if branch in ("", "HEAD") else branch
