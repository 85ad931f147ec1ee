"""Git repository abstraction.

This module provides the Repository class: the version-control client used
by the change pipeline, the compensating actions and the cleanup paths.
Every operation returns a Result; a non-zero exit from git becomes a
GitError carrying git's own message.

Usage:
    repo = Repository(Path("/path/to/repo"))

    match repo.create_branch("GX-2026-01-01T10-00-00"):
        case Ok(_):
            ...
        case Err(e):
            print(f"branch failed: {e.message}")
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from gx.core.result import Err, Ok, Result
from gx.platform.process import ProcessError
from gx.platform.process import run as run_process

_GIT_TIMEOUT_SECONDS = 30.0
_GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0
_NETWORK_COMMANDS = frozenset({"fetch", "pull", "push", "clone", "ls-remote"})

# Substrings meaning "the thing to remove is already gone"
_MISSING_MARKERS = ("not found", "does not exist")

REMOTE = "origin"

__all__ = [
    "GitError",
    "GitStatus",
    "REMOTE",
    "Repository",
    "StatusEntry",
]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git subcommand that failed (e.g. "push")
        message: Error message from git
        returncode: Process return code
    """

    command: str
    message: str
    returncode: int = 1

    @property
    def is_missing_target(self) -> bool:
        """True if git reported the target as already absent."""
        text = self.message.lower()
        return any(marker in text for marker in _MISSING_MARKERS)

    def __str__(self) -> str:
        return f"git {self.command}: {self.message}"


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """A single entry in git status.

    Attributes:
        xy: Two-character status code (e.g., "M ", " M", "??")
        path: File path
    """

    xy: str
    path: str

    @property
    def is_staged(self) -> bool:
        return self.xy != "??" and self.xy[0] != " "

    @property
    def is_unstaged(self) -> bool:
        return self.xy != "??" and self.xy[1] != " "

    @property
    def is_untracked(self) -> bool:
        return self.xy == "??"


@dataclass(frozen=True, slots=True)
class GitStatus:
    """Parsed `git status --porcelain=v1 -b`.

    Attributes:
        branch: Current branch name
        upstream: Upstream branch (e.g., "origin/main"), None if not set
        ahead: Number of commits ahead of upstream
        behind: Number of commits behind upstream
        entries: All status entries (staged, unstaged, untracked)
    """

    branch: str
    upstream: str | None = None
    ahead: int = 0
    behind: int = 0
    entries: tuple[StatusEntry, ...] = field(default_factory=tuple)

    @property
    def is_clean(self) -> bool:
        return len(self.entries) == 0

    @property
    def has_divergence(self) -> bool:
        return bool(self.ahead or self.behind)

    @property
    def staged_count(self) -> int:
        return sum(1 for e in self.entries if e.is_staged)

    @property
    def unstaged_count(self) -> int:
        return sum(1 for e in self.entries if e.is_unstaged)

    @property
    def untracked_count(self) -> int:
        return sum(1 for e in self.entries if e.is_untracked)


class Repository:
    """Git client bound to one working tree.

    Attributes:
        path: Path to the repository root
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        """Check if this is a git repository (.git dir or worktree file)."""
        return (self.path / ".git").exists()

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def status(self) -> Result[GitStatus, GitError]:
        """Get repository status with branch and divergence info."""
        return self._git(["status", "--porcelain=v1", "-b"]).map(self._parse_status)

    def has_uncommitted_changes(self) -> Result[bool, GitError]:
        """True if anything is staged, modified or untracked."""
        return self._git(["status", "--porcelain"]).map(lambda out: out.strip() != "")

    def current_branch(self) -> Result[str, GitError]:
        """Name of the checked-out branch; detached HEAD is an error."""
        result = self._git(["branch", "--show-current"])
        if isinstance(result, Err):
            return result
        branch = result.value.strip()
        if not branch:
            return Err(GitError(command="branch", message="HEAD is detached"))
        return Ok(branch)

    def branch_exists(self, branch: str) -> bool:
        """Check whether a local branch exists."""
        result = self._run(["rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"])
        return isinstance(result, Ok)

    def remote_branch_exists(self, branch: str) -> Result[bool, GitError]:
        """Ask the remote whether it has `branch`."""
        return self._git(["ls-remote", "--heads", REMOTE, branch]).map(
            lambda out: out.strip() != ""
        )

    # -------------------------------------------------------------------------
    # Branches
    # -------------------------------------------------------------------------

    def create_branch(self, branch: str) -> Result[None, GitError]:
        """Create `branch` from HEAD and switch to it."""
        return self._git(["checkout", "-b", branch]).map(_discard)

    def switch_branch(self, branch: str) -> Result[None, GitError]:
        return self._git(["checkout", branch]).map(_discard)

    def delete_local_branch(self, branch: str) -> Result[None, GitError]:
        """Force-delete a local branch."""
        return self._git(["branch", "-D", branch]).map(_discard)

    # -------------------------------------------------------------------------
    # Commits
    # -------------------------------------------------------------------------

    def add_all(self) -> Result[None, GitError]:
        return self._git(["add", "--all"]).map(_discard)

    def commit(self, message: str) -> Result[None, GitError]:
        return self._git(["commit", "-m", message]).map(_discard)

    def reset_commit(self) -> Result[None, GitError]:
        """Drop the last commit and its changes (`reset --hard HEAD~1`)."""
        return self._git(["reset", "--hard", "HEAD~1"]).map(_discard)

    def reset_hard(self) -> Result[None, GitError]:
        """Discard all uncommitted changes to tracked files."""
        return self._git(["reset", "--hard", "HEAD"]).map(_discard)

    def stash_pop(self, stash_ref: str | None = None) -> Result[None, GitError]:
        args = ["stash", "pop"]
        if stash_ref:
            args.append(stash_ref)
        return self._git(args).map(_discard)

    # -------------------------------------------------------------------------
    # Remote
    # -------------------------------------------------------------------------

    def push_branch(self, branch: str) -> Result[None, GitError]:
        """Push `branch` to origin and set it as upstream."""
        return self._git(["push", "--set-upstream", REMOTE, branch]).map(_discard)

    def delete_remote_branch(self, branch: str) -> Result[None, GitError]:
        return self._git(["push", REMOTE, "--delete", branch]).map(_discard)

    def fetch(self) -> Result[str, GitError]:
        return self._git(["fetch"]).map(str.strip)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _git(self, args: list[str]) -> Result[str, GitError]:
        """Run git and convert a process failure into a GitError."""
        result = self._run(args)
        match result:
            case Err(e):
                command = args[0] if args else ""
                return Err(
                    GitError(
                        command=command,
                        message=e.output or f"git {command} failed",
                        returncode=e.returncode,
                    )
                )
            case Ok(stdout):
                return Ok(stdout)

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        """Run a git command in this repository."""
        command = args[0] if args else ""
        timeout = (
            _GIT_NETWORK_TIMEOUT_SECONDS if command in _NETWORK_COMMANDS else _GIT_TIMEOUT_SECONDS
        )
        return run_process(["git", "-C", str(self.path), *args], cwd=self.path, timeout=timeout)

    def _parse_status(self, output: str) -> GitStatus:
        """Parse git status --porcelain=v1 -b output."""
        lines = [ln for ln in output.splitlines() if ln.strip()]

        if not lines:
            return GitStatus(branch="")

        branch_line = lines[0]
        branch, upstream = self._parse_branch_line(branch_line)
        ahead, behind = self._parse_ahead_behind(branch_line)

        entries = [StatusEntry(xy=line[:2], path=line[3:]) for line in lines[1:] if len(line) >= 4]

        return GitStatus(
            branch=branch,
            upstream=upstream,
            ahead=ahead,
            behind=behind,
            entries=tuple(entries),
        )

    def _parse_branch_line(self, line: str) -> tuple[str, str | None]:
        """Parse branch line: ## branch...upstream [info]"""
        s = line.strip()
        if s.startswith("##"):
            s = s[2:].lstrip()

        s = s.split(" [", 1)[0].strip()
        if s.startswith("No commits yet on "):
            s = s.removeprefix("No commits yet on ")

        if "..." in s:
            left, right = s.split("...", 1)
            return (left.strip(), right.strip())

        return (s, None)

    def _parse_ahead_behind(self, line: str) -> tuple[int, int]:
        match = re.search(r"\[([^\]]+)\]", line)
        if not match:
            return (0, 0)

        inside = match.group(1)
        ahead_match = re.search(r"ahead\s+(\d+)", inside)
        behind_match = re.search(r"behind\s+(\d+)", inside)

        ahead = int(ahead_match.group(1)) if ahead_match else 0
        behind = int(behind_match.group(1)) if behind_match else 0
        return (ahead, behind)


def _discard(_: str) -> None:
    return None
