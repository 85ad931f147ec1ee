"""Read-only status across repositories.

Usage:
    from gx.services.status import status_all, get_summary

    statuses = status_all(repos, jobs=8)
    print(get_summary(statuses)["dirty"])
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from gx.core.result import Err, Ok
from gx.git.discovery import RepoRef
from gx.git.repository import GitError, GitStatus, Repository
from gx.txn.actions import RepoFactory

from .fanout import fan_out

__all__ = [
    "RepoStatus",
    "get_summary",
    "status_all",
]


@dataclass(frozen=True, slots=True)
class RepoStatus:
    """Status of a repository.

    Attributes:
        repo: The repository
        status: Git status if successful, None on error
        error: Error if status failed, None on success
    """

    repo: RepoRef
    status: GitStatus | None = None
    error: GitError | None = None

    @property
    def ok(self) -> bool:
        """True if status was retrieved successfully."""
        return self.status is not None

    @property
    def is_clean(self) -> bool:
        """True if repository is clean. False if dirty or error."""
        return self.status is not None and self.status.is_clean

    @property
    def is_dirty(self) -> bool:
        return self.status is not None and not self.status.is_clean

    @property
    def has_divergence(self) -> bool:
        return self.status is not None and self.status.has_divergence


def status_all(
    repos: Sequence[RepoRef],
    *,
    jobs: int,
    fetch: bool = False,
    factory: RepoFactory = Repository,
    on_result: Callable[[RepoStatus], None] | None = None,
) -> list[RepoStatus]:
    """Status of every repository, optionally fetching first.

    A failed fetch is not an error: the status still reflects the last
    known remote state.
    """

    def one(ref: RepoRef) -> RepoStatus:
        repo = factory(ref.path)
        if fetch:
            repo.fetch()
        match repo.status():
            case Ok(status):
                return RepoStatus(repo=ref, status=status)
            case Err(error):
                return RepoStatus(repo=ref, error=error)

    def crashed(ref: RepoRef, error: Exception) -> RepoStatus:
        return RepoStatus(repo=ref, error=GitError(command="status", message=str(error)))

    return fan_out(repos, one, jobs=jobs, on_crash=crashed, on_result=on_result)


def get_summary(statuses: Sequence[RepoStatus]) -> dict[str, int]:
    """Counts: total, clean, dirty, diverged, errors."""
    return {
        "total": len(statuses),
        "clean": sum(1 for s in statuses if s.is_clean),
        "dirty": sum(1 for s in statuses if s.is_dirty),
        "diverged": sum(1 for s in statuses if s.has_divergence),
        "errors": sum(1 for s in statuses if not s.ok),
    }

