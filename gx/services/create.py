"""`gx create`: apply one change to many repositories.

Per repository the pipeline is

    precondition -> plan -> branch -> edit -> [commit -> push -> PR]

Every forward step that succeeds registers its compensation on a
Transaction. Any failure before the PR step rolls the repository back to
where it started. Without a commit message the run is a dry run: the
edits are made, diffed, then rolled back. A failed PR leaves the pushed
commit in place and downgrades the outcome to Committed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path

from gx.core.errors import error_exit_code
from gx.core.ids import TransactionIdGenerator
from gx.core.result import Err, Ok
from gx.git.discovery import RepoRef
from gx.git.repository import Repository
from gx.txn import (
    DeleteBackup,
    DeleteRemoteBranch,
    RecoveryStore,
    RemoveFile,
    ResetCommit,
    ResetHard,
    RestoreBranch,
    RestoreFile,
    RollbackReport,
    Transaction,
)
from gx.txn.actions import RepoFactory

from .changes import ChangeState, ChangeStore, RepoChangeState, RepoChangeStatus
from .fanout import fan_out
from .files import (
    Change,
    ChangePlan,
    PlannedEdit,
    SubstitutionStats,
    apply_edit,
    backup_file,
    plan_change,
)
from .github import GitHubClient, PrInfo

__all__ = [
    "ChangeOutcome",
    "ChangePipeline",
    "ChangeRequest",
    "CreateAction",
    "CreateSummary",
    "PrMode",
    "create_changes",
    "record_change_state",
]

logger = logging.getLogger(__name__)

DIRTY_TREE_MESSAGE = "Repository has uncommitted changes"


# -----------------------------------------------------------------------------
# Data Types
# -----------------------------------------------------------------------------


class CreateAction(Enum):
    DRY_RUN = "DryRun"
    COMMITTED = "Committed"
    PR_CREATED = "PrCreated"


class PrMode(Enum):
    NONE = "none"
    READY = "ready"
    DRAFT = "draft"


@dataclass(frozen=True, slots=True)
class ChangeRequest:
    """What to do to every selected repository."""

    change: Change
    change_id: str
    commit_message: str | None = None
    pr: PrMode = PrMode.NONE
    base_branch: str = "main"
    pr_body_footer: str = ""

    @property
    def pr_title(self) -> str:
        return self.change_id

    @property
    def pr_body(self) -> str:
        body = self.commit_message or ""
        if self.pr_body_footer:
            body = f"{body}\n\n{self.pr_body_footer}" if body else self.pr_body_footer
        return body


@dataclass(frozen=True, slots=True)
class ChangeOutcome:
    """Result of the pipeline for one repository.

    Attributes:
        repo: The target repository
        change_id: Change identifier (branch name)
        action: Furthest stage reached
        files_affected: Relative paths touched, in plan order
        diffs: (marker + path, unified diff) per touched file
        error: Set when the repository failed; it has been rolled back
        warning: Set when the run degraded (e.g. PR creation failed)
        pr: The created PR, if any
        stats: Substitution statistics for sub/regex changes
        rollback: Report of the rollback, when one ran
        original_branch: Branch checked out before the run
    """

    repo: RepoRef
    change_id: str
    action: CreateAction = CreateAction.DRY_RUN
    files_affected: tuple[str, ...] = ()
    diffs: tuple[tuple[str, str], ...] = ()
    error: str | None = None
    warning: str | None = None
    pr: PrInfo | None = None
    stats: SubstitutionStats | None = None
    rollback: RollbackReport | None = None
    original_branch: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_noop(self) -> bool:
        return self.ok and self.action is CreateAction.DRY_RUN and not self.files_affected

    @property
    def rollback_incomplete(self) -> bool:
        return self.rollback is not None and not self.rollback.complete


@dataclass(frozen=True, slots=True)
class CreateSummary:
    outcomes: tuple[ChangeOutcome, ...]

    @property
    def errors(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    @property
    def exit_code(self) -> int:
        return error_exit_code(self.errors)

    def count(self, action: CreateAction) -> int:
        return sum(1 for o in self.outcomes if o.ok and not o.is_noop and o.action is action)

    @property
    def noops(self) -> int:
        return sum(1 for o in self.outcomes if o.is_noop)

    @property
    def stats(self) -> SubstitutionStats | None:
        collected = [o.stats for o in self.outcomes if o.stats is not None]
        if not collected:
            return None
        total = SubstitutionStats()
        for stats in collected:
            total += stats
        return total


# -----------------------------------------------------------------------------
# Pipeline
# -----------------------------------------------------------------------------


class ChangePipeline:
    """Runs one ChangeRequest against one repository at a time.

    Holds no per-repository state, so a single instance is shared by all
    workers; each `run` owns its own Transaction.
    """

    def __init__(
        self,
        request: ChangeRequest,
        *,
        ids: TransactionIdGenerator,
        store: RecoveryStore | None = None,
        repos: RepoFactory = Repository,
        github: GitHubClient | None = None,
        stop_on_failure: bool = False,
    ) -> None:
        self._request = request
        self._ids = ids
        self._store = store
        self._repos = repos
        self._github = github or GitHubClient()
        self._stop_on_failure = stop_on_failure

    @property
    def change_id(self) -> str:
        return self._request.change_id

    def run(self, ref: RepoRef) -> ChangeOutcome:
        request = self._request
        repo = self._repos(ref.path)

        match repo.has_uncommitted_changes():
            case Err(e):
                return self._failed(ref, f"Cannot read status: {e.message}")
            case Ok(True):
                return self._failed(ref, DIRTY_TREE_MESSAGE)
            case _:
                pass

        planned = plan_change(ref.path, request.change)
        if isinstance(planned, Err):
            return self._failed(ref, planned.error.message)
        plan = planned.value
        if plan.is_empty:
            logger.debug("%s: nothing to change", ref.label)
            return ChangeOutcome(repo=ref, change_id=request.change_id, stats=plan.stats)

        original = repo.current_branch()
        if isinstance(original, Err):
            return self._failed(ref, f"Cannot determine current branch: {original.error.message}")
        if repo.branch_exists(request.change_id):
            return self._failed(ref, f"Branch {request.change_id} already exists")

        tx = Transaction(
            ids=self._ids,
            store=self._store,
            repos=self._repos,
            stop_on_failure=self._stop_on_failure,
        )
        try:
            return self._mutate(ref, repo, tx, plan, original.value)
        except Exception:
            tx.rollback()
            raise

    def _mutate(
        self,
        ref: RepoRef,
        repo: Repository,
        tx: Transaction,
        plan: ChangePlan,
        original: str,
    ) -> ChangeOutcome:
        request = self._request
        branch = request.change_id
        repo_path = str(ref.path)
        base = ChangeOutcome(
            repo=ref,
            change_id=branch,
            files_affected=plan.files,
            diffs=tuple((f"{e.marker} {e.relpath}", e.diff) for e in plan.edits),
            stats=plan.stats,
            original_branch=original,
        )

        created = repo.create_branch(branch)
        if isinstance(created, Err):
            message = f"Failed to create branch {branch}: {created.error.message}"
            return self._abort(base, tx, message)
        tx.add_compensation(RestoreBranch(repo_path=repo_path, original=original, created=branch))
        tx.add_rollback_point("branch created")

        for edit in plan.edits:
            applied = self._apply(ref.path, tx, edit)
            if applied is not None:
                return self._abort(base, tx, applied)
        tx.add_rollback_point("files modified")

        if request.commit_message is None:
            report = tx.rollback()
            if not report.complete:
                return _with(base, error="Dry run could not be fully reverted", rollback=report)
            return _with(base, rollback=report)

        staged = repo.add_all()
        if isinstance(staged, Err):
            return self._abort(base, tx, f"Failed to stage changes: {staged.error.message}")
        tx.add_compensation(ResetHard(repo_path=repo_path))

        committed = repo.commit(request.commit_message)
        if isinstance(committed, Err):
            return self._abort(base, tx, f"Failed to commit changes: {committed.error.message}")
        tx.add_compensation(ResetCommit(repo_path=repo_path))
        tx.add_rollback_point("changes committed")

        pushed = repo.push_branch(branch)
        if isinstance(pushed, Err):
            return self._abort(base, tx, f"Failed to push branch: {pushed.error.message}")
        tx.add_compensation(DeleteRemoteBranch(repo_path=repo_path, branch=branch))

        outcome = _with(base, action=CreateAction.COMMITTED)
        if request.pr is not PrMode.NONE:
            outcome = self._open_pr(outcome)

        tx.commit()
        return outcome

    def _apply(self, root: Path, tx: Transaction, edit: PlannedEdit) -> str | None:
        """Apply one edit; returns an error message on failure."""
        repo_path = str(root)
        target = str(root / edit.relpath)

        if edit.kind == "create":
            written = apply_edit(root, edit)
            if isinstance(written, Err):
                return written.error.message
            tx.add_compensation(RemoveFile(repo_path=repo_path, target=target))
            return None

        backup = backup_file(root, tx.id, edit.relpath)
        if isinstance(backup, Err):
            return backup.error.message
        tx.add_compensation(
            RestoreFile(repo_path=repo_path, target=target, backup=str(backup.value))
        )
        tx.add_compensation(DeleteBackup(repo_path=repo_path, backup=str(backup.value)))

        written = apply_edit(root, edit)
        if isinstance(written, Err):
            return written.error.message
        return None

    def _open_pr(self, outcome: ChangeOutcome) -> ChangeOutcome:
        request = self._request
        slug = outcome.repo.slug
        if slug is None:
            return _with(outcome, warning="No GitHub remote; PR not created")

        result = self._github.create_pr(
            slug,
            request.change_id,
            title=request.pr_title,
            body=request.pr_body,
            base=request.base_branch,
            draft=request.pr is PrMode.DRAFT,
        )
        if isinstance(result, Err):
            logger.warning("%s: %s", slug, result.error)
            return _with(outcome, warning=f"PR creation failed: {result.error}")
        return _with(outcome, action=CreateAction.PR_CREATED, pr=result.value)

    def _abort(self, base: ChangeOutcome, tx: Transaction, message: str) -> ChangeOutcome:
        logger.warning("%s: %s, rolling back", base.repo.label, message)
        report = tx.rollback()
        return _with(base, error=message, rollback=report)

    def _failed(self, ref: RepoRef, message: str) -> ChangeOutcome:
        return ChangeOutcome(repo=ref, change_id=self._request.change_id, error=message)


def _with(outcome: ChangeOutcome, **changes: object) -> ChangeOutcome:
    return replace(outcome, **changes)  # type: ignore[arg-type]


# -----------------------------------------------------------------------------
# Fan-out
# -----------------------------------------------------------------------------


def create_changes(
    repos: Sequence[RepoRef],
    pipeline: ChangePipeline,
    *,
    jobs: int,
    on_outcome: Callable[[ChangeOutcome], None] | None = None,
) -> CreateSummary:
    """Run `pipeline` over every repository; one outcome per repository."""

    def crashed(ref: RepoRef, error: Exception) -> ChangeOutcome:
        return ChangeOutcome(
            repo=ref,
            change_id=pipeline.change_id,
            error=f"Unexpected error: {error}",
        )

    outcomes = fan_out(repos, pipeline.run, jobs=jobs, on_crash=crashed, on_result=on_outcome)
    return CreateSummary(outcomes=tuple(outcomes))


def record_change_state(
    store: ChangeStore,
    request: ChangeRequest,
    summary: CreateSummary,
) -> ChangeState | None:
    """Persist what a committed run left behind; None for dry runs."""
    if request.commit_message is None:
        return None

    touched = [o for o in summary.outcomes if o.ok and o.action is not CreateAction.DRY_RUN]
    if not touched:
        return None

    state = ChangeState.new(request.change_id)
    state.commit_message = request.commit_message
    for outcome in touched:
        key = outcome.repo.label
        pr = outcome.pr
        status = RepoChangeStatus.BRANCH_CREATED
        if pr is not None:
            status = RepoChangeStatus.PR_DRAFT if pr.draft else RepoChangeStatus.PR_OPEN
        state.add_repository(
            RepoChangeState(
                repo_slug=key,
                branch_name=request.change_id,
                local_path=str(outcome.repo.path),
                original_branch=outcome.original_branch,
                pr_number=pr.number if pr else None,
                pr_url=pr.url if pr else None,
                status=status,
                files_modified=outcome.files_affected,
                error=outcome.warning,
            )
        )

    match store.save(state):
        case Err(message):
            logger.warning("%s", message)
        case _:
            pass
    return state
