"""`gx review`: act on the PRs of a change across an organization.

PRs are found by head branch (the change id) with `gh search prs`.
Approve and delete only touch open PRs. Every per-PR or per-repository
action runs through the fan-out scheduler and yields one ReviewResult.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

from gx.core.errors import error_exit_code
from gx.core.ids import CHANGE_ID_PREFIX
from gx.core.result import Err, Ok, Result
from gx.git.discovery import RepoRef

from .changes import ChangeStore
from .fanout import fan_out
from .github import GitHubClient, GitHubError, PrInfo

__all__ = [
    "ReviewAction",
    "ReviewResult",
    "ReviewSummary",
    "approve_prs",
    "delete_prs",
    "list_change_prs",
    "purge_branches",
    "record_review",
    "resolve_orgs",
]

logger = logging.getLogger(__name__)

PURGE_CHANGE_ID = "PURGE"


class ReviewAction(Enum):
    LISTED = "Listed"
    APPROVED = "Approved"
    DELETED = "Deleted"
    PURGED = "Purged"


@dataclass(frozen=True, slots=True)
class ReviewResult:
    repo_slug: str
    change_id: str
    action: ReviewAction
    pr_number: int | None = None
    error: str | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class ReviewSummary:
    results: tuple[ReviewResult, ...]

    @property
    def errors(self) -> int:
        return sum(1 for r in self.results if not r.ok)

    @property
    def succeeded(self) -> int:
        return len(self.results) - self.errors

    @property
    def exit_code(self) -> int:
        return error_exit_code(self.errors)


def resolve_orgs(
    explicit: str | None,
    configured: str | None,
    repos: Sequence[RepoRef] = (),
) -> list[str]:
    """Organizations to search: --org, then config, then owners seen locally."""
    if explicit:
        return [explicit]
    if configured:
        return [configured]
    owners = {r.slug.split("/", 1)[0] for r in repos if r.slug}
    return sorted(owners, key=str.lower)


def list_change_prs(
    github: GitHubClient, orgs: Sequence[str], change_id: str
) -> Result[list[PrInfo], GitHubError]:
    """PRs for `change_id` across `orgs`; fails only if every org fails."""
    prs: list[PrInfo] = []
    last_error: GitHubError | None = None
    for org in orgs:
        match github.list_prs_by_change_id(org, change_id):
            case Ok(found):
                logger.info("found %d PR(s) for %s in %s", len(found), change_id, org)
                prs.extend(found)
            case Err(error):
                logger.warning("failed to list PRs in %s: %s", org, error)
                last_error = error
    if not prs and last_error is not None:
        return Err(last_error)
    return Ok(sorted(prs, key=lambda p: (p.repo_slug.lower(), p.number)))


def approve_prs(
    github: GitHubClient,
    prs: Sequence[PrInfo],
    change_id: str,
    *,
    admin: bool = False,
    jobs: int,
    on_result: Callable[[ReviewResult], None] | None = None,
) -> ReviewSummary:
    def approve(pr: PrInfo) -> ReviewResult:
        result = github.approve_and_merge_pr(pr.repo_slug, pr.number, admin=admin)
        error = f"Failed to approve/merge: {result.error}" if isinstance(result, Err) else None
        return ReviewResult(pr.repo_slug, change_id, ReviewAction.APPROVED, pr.number, error)

    return _run(
        [p for p in prs if p.is_open], approve, change_id, ReviewAction.APPROVED, jobs, on_result
    )


def delete_prs(
    github: GitHubClient,
    prs: Sequence[PrInfo],
    change_id: str,
    *,
    jobs: int,
    on_result: Callable[[ReviewResult], None] | None = None,
) -> ReviewSummary:
    """Close each open PR, then delete its head branch."""

    def delete(pr: PrInfo) -> ReviewResult:
        def result(error: str | None) -> ReviewResult:
            return ReviewResult(pr.repo_slug, change_id, ReviewAction.DELETED, pr.number, error)

        closed = github.close_pr(pr.repo_slug, pr.number)
        if isinstance(closed, Err):
            return result(f"Failed to close PR: {closed.error}")
        deleted = github.delete_remote_branch(pr.repo_slug, pr.branch)
        if isinstance(deleted, Err):
            return result(f"Failed to delete branch: {deleted.error}")
        return result(None)

    return _run(
        [p for p in prs if p.is_open], delete, change_id, ReviewAction.DELETED, jobs, on_result
    )


def purge_branches(
    github: GitHubClient,
    repos: Sequence[RepoRef],
    *,
    prefix: str = CHANGE_ID_PREFIX,
    jobs: int,
    on_result: Callable[[ReviewResult], None] | None = None,
) -> ReviewSummary:
    """Delete every remote branch starting with `prefix` in each repository."""

    def purge(ref: RepoRef) -> ReviewResult:
        slug = ref.slug or ref.name

        def result(error: str | None, detail: str | None = None) -> ReviewResult:
            return ReviewResult(slug, PURGE_CHANGE_ID, ReviewAction.PURGED, None, error, detail)

        if ref.slug is None:
            return result("No GitHub remote")
        listed = github.list_branches_with_prefix(ref.slug, prefix)
        if isinstance(listed, Err):
            return result(f"Failed to list branches: {listed.error}")

        errors: list[str] = []
        deleted = 0
        for branch in listed.value:
            match github.delete_remote_branch(ref.slug, branch):
                case Ok(_):
                    deleted += 1
                case Err(e):
                    errors.append(f"Failed to delete {branch}: {e}")

        detail = f"{deleted} branch(es) deleted"
        if errors:
            logger.warning("%s: %d of %d deletions failed", slug, len(errors), len(listed.value))
            return result(f"Partial success: {'; '.join(errors)}", detail)
        return result(None, detail)

    def crashed(ref: RepoRef, error: Exception) -> ReviewResult:
        return ReviewResult(
            ref.slug or ref.name,
            PURGE_CHANGE_ID,
            ReviewAction.PURGED,
            error=f"Unexpected error: {error}",
        )

    results = fan_out(repos, purge, jobs=jobs, on_crash=crashed, on_result=on_result)
    return ReviewSummary(results=tuple(results))


def record_review(store: ChangeStore, change_id: str, summary: ReviewSummary) -> None:
    """Reflect successful merges and closes in the stored change state."""
    loaded = store.load(change_id)
    if isinstance(loaded, Err):
        logger.warning("%s", loaded.error)
        return
    state = loaded.value
    if state is None:
        logger.debug("no stored state for %s", change_id)
        return

    for result in summary.results:
        if not result.ok:
            continue
        match result.action:
            case ReviewAction.APPROVED:
                state.mark_merged(result.repo_slug)
            case ReviewAction.DELETED:
                state.mark_closed(result.repo_slug)
            case _:
                pass

    saved = store.save(state)
    if isinstance(saved, Err):
        logger.warning("%s", saved.error)


def _run(
    prs: Sequence[PrInfo],
    work: Callable[[PrInfo], ReviewResult],
    change_id: str,
    action: ReviewAction,
    jobs: int,
    on_result: Callable[[ReviewResult], None] | None,
) -> ReviewSummary:
    def crashed(pr: PrInfo, error: Exception) -> ReviewResult:
        message = f"Unexpected error: {error}"
        return ReviewResult(pr.repo_slug, change_id, action, pr.number, message)

    results = fan_out(prs, work, jobs=jobs, on_crash=crashed, on_result=on_result)
    return ReviewSummary(results=tuple(results))
