"""`gx cleanup`: remove branches of changes whose PRs are done.

Works from the stored change state, using the local path recorded when
the change was created. A branch that is already gone counts as cleaned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from gx.core.result import Err, Ok, Result
from gx.git.repository import Repository
from gx.txn.actions import RepoFactory

from .changes import ChangeState, ChangeStatus, ChangeStore, RepoChangeState, RepoChangeStatus

__all__ = [
    "CleanupResult",
    "cleanable_changes",
    "cleanup_all",
    "cleanup_change",
    "cleanup_one",
]

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    change_id: str
    cleaned: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    state_removed: bool = False

    def __iadd__(self, other: CleanupResult) -> CleanupResult:
        self.cleaned += other.cleaned
        self.skipped += other.skipped
        self.failed += other.failed
        self.errors.extend(other.errors)
        return self


def cleanable_changes(store: ChangeStore, *, force: bool = False) -> list[ChangeState]:
    """Fully merged changes; with `force`, also partially merged and abandoned."""
    wanted = {ChangeStatus.FULLY_MERGED}
    if force:
        wanted |= {ChangeStatus.PARTIALLY_MERGED, ChangeStatus.ABANDONED}
    return [s for s in store.list_states() if s.status in wanted]


def cleanup_change(
    state: ChangeState,
    *,
    include_remote: bool = False,
    force: bool = False,
    repos: RepoFactory = Repository,
) -> CleanupResult:
    """Delete the local (and optionally remote) branch in each finished repo.

    Without `force` only merged PRs are cleaned; closed ones are skipped.
    Mutates `state` to mark cleaned repositories.
    """
    result = CleanupResult(change_id=state.change_id)

    for entry in state.repos_needing_cleanup():
        if not force and entry.status is not RepoChangeStatus.PR_MERGED:
            logger.info("skipping %s: PR not merged", entry.repo_slug)
            result.skipped += 1
            continue
        if not entry.local_path or not Path(entry.local_path).is_dir():
            logger.info("skipping %s: local repository not found", entry.repo_slug)
            result.skipped += 1
            continue

        repo = repos(Path(entry.local_path))
        match _delete_local_branch(repo, entry):
            case Ok(True):
                result.cleaned += 1
                state.mark_cleaned_up(entry.repo_slug)
            case Ok(False):
                logger.info("branch %s already deleted in %s", entry.branch_name, entry.repo_slug)
                result.skipped += 1
                state.mark_cleaned_up(entry.repo_slug)
            case Err(message):
                logger.warning("%s: %s", entry.repo_slug, message)
                result.failed += 1
                result.errors.append(f"{entry.repo_slug}: {message}")

        if include_remote:
            remote = repo.delete_remote_branch(entry.branch_name)
            if isinstance(remote, Err) and not remote.error.is_missing_target:
                logger.warning(
                    "failed to delete remote branch %s in %s: %s",
                    entry.branch_name,
                    entry.repo_slug,
                    remote.error,
                )

    return result


def _delete_local_branch(repo: Repository, entry: RepoChangeState) -> Result[bool, str]:
    """True if deleted, False if it was already gone."""
    current = repo.current_branch()
    if isinstance(current, Ok) and current.value == entry.branch_name:
        fallback = entry.original_branch or "main"
        switched = repo.switch_branch(fallback)
        if isinstance(switched, Err):
            return Err(f"cannot leave {entry.branch_name}: {switched.error.message}")

    deleted = repo.delete_local_branch(entry.branch_name)
    if isinstance(deleted, Err):
        if deleted.error.is_missing_target:
            return Ok(False)
        return Err(str(deleted.error))
    logger.info("deleted local branch %s in %s", entry.branch_name, entry.repo_slug)
    return Ok(True)


def cleanup_one(
    store: ChangeStore,
    change_id: str,
    *,
    include_remote: bool = False,
    force: bool = False,
    repos: RepoFactory = Repository,
) -> Result[CleanupResult, str]:
    loaded = store.load(change_id)
    if isinstance(loaded, Err):
        return loaded
    if loaded.value is None:
        return Err(f"Change not found: {change_id}")
    return Ok(_cleanup_and_save(store, loaded.value, include_remote, force, repos))


def cleanup_all(
    store: ChangeStore,
    *,
    include_remote: bool = False,
    force: bool = False,
    repos: RepoFactory = Repository,
) -> list[CleanupResult]:
    return [
        _cleanup_and_save(store, state, include_remote, force, repos)
        for state in cleanable_changes(store, force=force)
    ]


def _cleanup_and_save(
    store: ChangeStore,
    state: ChangeState,
    include_remote: bool,
    force: bool,
    repos: RepoFactory,
) -> CleanupResult:
    result = cleanup_change(state, include_remote=include_remote, force=force, repos=repos)

    if state.is_fully_cleaned and result.failed == 0:
        match store.delete(state.change_id):
            case Ok(_):
                result.state_removed = True
            case Err(message):
                logger.warning("%s", message)
        return result

    saved = store.save(state)
    if isinstance(saved, Err):
        logger.warning("%s", saved.error)
    return result
