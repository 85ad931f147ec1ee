"""Out-of-process recovery of persisted transactions.

Used by `gx rollback`: inspect what a crashed or failed run left behind,
check that replaying it is safe, and replay it newest-first exactly like
an in-process rollback.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from gx.core.result import Err, Ok, Result
from gx.git.repository import Repository

from .actions import (
    ActionRecord,
    Compensation,
    DeleteRemoteBranch,
    PopStash,
    RemoveFile,
    RepoFactory,
    ResetCommit,
    ResetHard,
    RestoreBranch,
    RestoreFile,
    compensation_from_record,
)
from .store import RecoveryError, RecoveryStore
from .transaction import ActionFailure, RollbackReport, execute_actions

__all__ = [
    "ValidationResult",
    "execute_recovery",
    "validate_rollback_operations",
]

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Pre-replay safety check. Errors block unless forced; warnings never do."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


class _RepoView:
    """Read-only facts about one repository, gathered lazily once."""

    def __init__(self, path: Path, repos: RepoFactory) -> None:
        self.path = path
        self.repo = repos(path)
        self._dirty: bool | None = None
        self.current: str | None = None
        match self.repo.current_branch():
            case Ok(branch):
                self.current = branch
            case Err(_):
                self.current = None

    @property
    def dirty(self) -> bool:
        if self._dirty is None:
            self._dirty = self.repo.has_uncommitted_changes().unwrap_or(False)
        return self._dirty


def validate_rollback_operations(
    records: Sequence[ActionRecord],
    *,
    repos: RepoFactory = Repository,
) -> ValidationResult:
    """Check every replayable record without changing anything.

    Records are walked in replay order (newest first). Each repository is
    inspected once, before any of its records are checked.
    """
    result = ValidationResult()
    views: dict[str, _RepoView | None] = {}

    for record in reversed(records):
        if record.is_cleanup:
            continue

        view = views.get(record.repo_path, ...)
        if view is ...:
            view = _inspect_repo(record.repo_path, repos, result)
            views[record.repo_path] = view
        if view is None:
            continue

        match compensation_from_record(record):
            case Err(message):
                result.errors.append(f"{record.description}: {message}")
            case Ok(action):
                _check_action(action, view, result)

    return result


def _inspect_repo(
    repo_path: str, repos: RepoFactory, result: ValidationResult
) -> _RepoView | None:
    path = Path(repo_path)
    if not path.is_dir():
        result.errors.append(f"Repository path does not exist: {repo_path}")
        return None
    if not (path / ".git").exists():
        result.errors.append(f"Not a git repository: {repo_path}")
        return None
    view = _RepoView(path, repos)
    if view.current is None:
        result.warnings.append(f"Cannot determine current branch in {repo_path}")
    return view


def _check_action(action: Compensation, view: _RepoView, result: ValidationResult) -> None:
    match action:
        case RestoreFile(target=target, backup=backup):
            if not Path(backup).is_file():
                result.errors.append(f"Backup for {target} is missing: {backup}")
        case RemoveFile(target=target):
            if not Path(target).exists():
                result.warnings.append(f"{target} is already gone")
        case ResetHard():
            if view.dirty:
                result.warnings.append(
                    f"Reset in {view.path} will discard uncommitted changes"
                )
        case ResetCommit():
            if view.dirty:
                result.warnings.append(
                    f"Undoing the last commit in {view.path} will discard uncommitted changes"
                )
        case RestoreBranch(original=original, created=created):
            if original == created:
                result.errors.append(
                    f"Cannot delete branch {created} in {view.path}: it is the branch checked out"
                )
            elif not view.repo.branch_exists(original):
                result.errors.append(
                    f"Cannot switch back to {original} in {view.path}: branch not found"
                )
            if not view.repo.branch_exists(created):
                result.warnings.append(f"Branch {created} in {view.path} is already deleted")
        case PopStash(stash_ref=ref):
            if view.dirty:
                result.warnings.append(
                    f"Popping {ref} in {view.path} may conflict with uncommitted changes"
                )
        case DeleteRemoteBranch():
            pass
        case _:
            result.warnings.append(f"{action.description}: cannot be checked")


def execute_recovery(
    store: RecoveryStore,
    transaction_id: str,
    *,
    repos: RepoFactory = Repository,
) -> Result[RollbackReport, RecoveryError]:
    """Replay a persisted transaction newest-first, then delete its file.

    The file is deleted even when some actions fail; the returned report
    is the only record of those failures.
    """
    loaded = store.load(transaction_id)
    if isinstance(loaded, Err):
        return loaded
    state = loaded.value
    logger.info(
        "recovering transaction %s (%d actions)", transaction_id, len(state.rollback_actions)
    )

    actions: list[Compensation] = []
    broken: list[ActionFailure] = []
    skipped = 0
    for record in reversed(state.rollback_actions):
        if record.is_cleanup:
            skipped += 1
            continue
        match compensation_from_record(record):
            case Ok(action):
                actions.append(action)
            case Err(message):
                logger.warning("cannot rebuild %r: %s", record.description, message)
                broken.append(
                    ActionFailure(
                        description=record.description,
                        operation_type=record.operation_type,
                        message=message,
                    )
                )

    replay = execute_actions(actions, repos)
    report = RollbackReport(
        succeeded=replay.succeeded,
        failed=replay.failed + len(broken),
        skipped_cleanup=skipped,
        failures=tuple(broken) + replay.failures,
    )

    deleted = store.delete(transaction_id, missing_ok=True)
    if isinstance(deleted, Err):
        logger.warning("%s", deleted.error.message)

    if report.failed:
        logger.warning(
            "recovery of %s finished with %d failure(s)", transaction_id, report.failed
        )
    return Ok(report)
