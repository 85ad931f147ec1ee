"""Compensating actions.

A compensation is one recorded reversal of a forward step (a file edit, a
branch switch, a commit, a push). Each kind is a small frozen dataclass
carrying exactly the data needed to undo the step, so the in-memory form
and the persisted record are the same information: `to_record` flattens
it to `{description, operation_type, repo_path, parameters}` and
`compensation_from_record` rebuilds it. `parameters[0]` is the kind tag.

Every action must tolerate having nothing left to undo (a file already
removed, a branch already deleted) because rollback keeps going past
failures and recovery may replay a partially reverted transaction.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import ClassVar

from gx.core.result import Err, Ok, Result
from gx.core.structured import StrDict, as_obj_list, get_raw_str
from gx.git.repository import Repository

__all__ = [
    "ActionRecord",
    "CLEANUP_TAG",
    "Callback",
    "Compensation",
    "DeleteBackup",
    "DeleteRemoteBranch",
    "OperationType",
    "PopStash",
    "RemoveFile",
    "RepoFactory",
    "ResetCommit",
    "ResetHard",
    "RestoreBranch",
    "RestoreFile",
    "compensation_from_record",
]

logger = logging.getLogger(__name__)

type RepoFactory = Callable[[Path], Repository]

# Descriptions starting with this run on commit, never on rollback
CLEANUP_TAG = "Cleanup backup file: "


class OperationType(Enum):
    FILE = "FileOperation"
    GIT = "GitOperation"
    BRANCH = "BranchOperation"
    STASH = "StashOperation"
    REMOTE = "RemoteOperation"

    @classmethod
    def parse(cls, value: str) -> OperationType | None:
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class ActionRecord:
    """Serialized form of one compensation (one entry of `rollback_actions`)."""

    description: str
    operation_type: str
    repo_path: str
    parameters: tuple[str, ...] = ()

    @property
    def is_cleanup(self) -> bool:
        return self.description.startswith(CLEANUP_TAG)

    @property
    def tag(self) -> str:
        return self.parameters[0] if self.parameters else ""

    def to_dict(self) -> StrDict:
        return {
            "description": self.description,
            "operation_type": self.operation_type,
            "repo_path": self.repo_path,
            "parameters": list(self.parameters),
        }

    @classmethod
    def from_dict(cls, data: StrDict) -> ActionRecord | None:
        """Build from parsed JSON; None if a field is missing or mistyped."""
        description = get_raw_str(data, "description")
        operation_type = get_raw_str(data, "operation_type")
        repo_path = get_raw_str(data, "repo_path")
        raw_params = as_obj_list(data.get("parameters"))
        if description is None or operation_type is None or repo_path is None:
            return None
        if raw_params is None or not all(isinstance(p, str) for p in raw_params):
            return None
        return cls(
            description=description,
            operation_type=operation_type,
            repo_path=repo_path,
            parameters=tuple(str(p) for p in raw_params),
        )


# -----------------------------------------------------------------------------
# File operations
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RestoreFile:
    """Put a backed-up file back in place, then drop the backup."""

    TAG: ClassVar[str] = "restore_file"
    OPERATION: ClassVar[OperationType] = OperationType.FILE

    repo_path: str
    target: str
    backup: str

    @property
    def description(self) -> str:
        return f"Restore {self.target} from backup"

    def parameters(self) -> tuple[str, ...]:
        return (self.TAG, self.target, self.backup)

    def run(self, repos: RepoFactory) -> Result[None, str]:
        backup, target = Path(self.backup), Path(self.target)
        if not backup.is_file():
            return Err(f"backup not found: {backup}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(backup, target)
            backup.unlink()
        except OSError as e:
            return Err(f"failed to restore {target}: {e}")
        _prune_backup_dirs(backup.parent, Path(self.repo_path))
        return Ok(None)


@dataclass(frozen=True, slots=True)
class RemoveFile:
    """Remove a file the forward pass created."""

    TAG: ClassVar[str] = "remove_file"
    OPERATION: ClassVar[OperationType] = OperationType.FILE

    repo_path: str
    target: str

    @property
    def description(self) -> str:
        return f"Remove created file {self.target}"

    def parameters(self) -> tuple[str, ...]:
        return (self.TAG, self.target)

    def run(self, repos: RepoFactory) -> Result[None, str]:
        try:
            Path(self.target).unlink(missing_ok=True)
        except OSError as e:
            return Err(f"failed to remove {self.target}: {e}")
        _prune_empty_dirs(Path(self.target).parent, Path(self.repo_path))
        return Ok(None)


@dataclass(frozen=True, slots=True)
class DeleteBackup:
    """Cleanup-tagged: delete a backup once the change is committed."""

    TAG: ClassVar[str] = "delete_backup"
    OPERATION: ClassVar[OperationType] = OperationType.FILE

    repo_path: str
    backup: str

    @property
    def description(self) -> str:
        return f"{CLEANUP_TAG}{self.backup}"

    def parameters(self) -> tuple[str, ...]:
        return (self.TAG, self.backup)

    def run(self, repos: RepoFactory) -> Result[None, str]:
        backup = Path(self.backup)
        try:
            backup.unlink(missing_ok=True)
        except OSError as e:
            return Err(f"failed to delete backup {backup}: {e}")
        _prune_backup_dirs(backup.parent, Path(self.repo_path))
        return Ok(None)


@dataclass(frozen=True, slots=True)
class ResetHard:
    """Discard uncommitted changes to tracked files."""

    TAG: ClassVar[str] = "reset_hard"
    OPERATION: ClassVar[OperationType] = OperationType.FILE

    repo_path: str

    @property
    def description(self) -> str:
        return f"Reset working tree of {self.repo_path} to HEAD"

    def parameters(self) -> tuple[str, ...]:
        return (self.TAG,)

    def run(self, repos: RepoFactory) -> Result[None, str]:
        return repos(Path(self.repo_path)).reset_hard().map_err(str)


# -----------------------------------------------------------------------------
# Git, branch, stash and remote operations
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ResetCommit:
    """Drop the commit made by the forward pass."""

    TAG: ClassVar[str] = "reset_commit"
    OPERATION: ClassVar[OperationType] = OperationType.GIT

    repo_path: str

    @property
    def description(self) -> str:
        return f"Undo last commit in {self.repo_path}"

    def parameters(self) -> tuple[str, ...]:
        return (self.TAG,)

    def run(self, repos: RepoFactory) -> Result[None, str]:
        return repos(Path(self.repo_path)).reset_commit().map_err(str)


@dataclass(frozen=True, slots=True)
class RestoreBranch:
    """Switch back to the original branch and delete the one we created."""

    TAG: ClassVar[str] = "restore_branch"
    OPERATION: ClassVar[OperationType] = OperationType.BRANCH

    repo_path: str
    original: str
    created: str

    @property
    def description(self) -> str:
        return f"Switch back to {self.original} and delete branch {self.created}"

    def parameters(self) -> tuple[str, ...]:
        return (self.TAG, self.original, self.created)

    def run(self, repos: RepoFactory) -> Result[None, str]:
        repo = repos(Path(self.repo_path))
        switched = repo.switch_branch(self.original)
        if isinstance(switched, Err):
            return Err(f"cannot switch back to {self.original}: {switched.error.message}")
        deleted = repo.delete_local_branch(self.created)
        if isinstance(deleted, Err) and not deleted.error.is_missing_target:
            return Err(f"cannot delete branch {self.created}: {deleted.error.message}")
        return Ok(None)


@dataclass(frozen=True, slots=True)
class PopStash:
    """Re-apply changes stashed before the forward pass."""

    TAG: ClassVar[str] = "pop_stash"
    OPERATION: ClassVar[OperationType] = OperationType.STASH

    repo_path: str
    stash_ref: str

    @property
    def description(self) -> str:
        return f"Pop stash {self.stash_ref}"

    def parameters(self) -> tuple[str, ...]:
        return (self.TAG, self.stash_ref)

    def run(self, repos: RepoFactory) -> Result[None, str]:
        return repos(Path(self.repo_path)).stash_pop(self.stash_ref).map_err(str)


@dataclass(frozen=True, slots=True)
class DeleteRemoteBranch:
    """Delete a pushed branch from origin; already-absent counts as done."""

    TAG: ClassVar[str] = "delete_remote_branch"
    OPERATION: ClassVar[OperationType] = OperationType.REMOTE

    repo_path: str
    branch: str

    @property
    def description(self) -> str:
        return f"Delete remote branch {self.branch}"

    def parameters(self) -> tuple[str, ...]:
        return (self.TAG, self.branch)

    def run(self, repos: RepoFactory) -> Result[None, str]:
        result = repos(Path(self.repo_path)).delete_remote_branch(self.branch)
        if isinstance(result, Err) and not result.error.is_missing_target:
            return Err(str(result.error))
        return Ok(None)


# -----------------------------------------------------------------------------
# In-process only
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Callback:
    """Arbitrary in-process reversal. Never persisted or replayed."""

    TAG: ClassVar[str] = "callback"

    fn: Callable[[], Result[None, str]] = field(compare=False)
    label: str
    operation_type: OperationType = OperationType.GIT
    repo_path: str = ""

    @property
    def OPERATION(self) -> OperationType:  # noqa: N802
        return self.operation_type

    @property
    def description(self) -> str:
        return self.label

    def parameters(self) -> tuple[str, ...]:
        return (self.TAG,)

    def run(self, repos: RepoFactory) -> Result[None, str]:
        return self.fn()


type Compensation = (
    RestoreFile
    | RemoveFile
    | DeleteBackup
    | ResetHard
    | ResetCommit
    | RestoreBranch
    | PopStash
    | DeleteRemoteBranch
    | Callback
)


def is_cleanup(action: Compensation) -> bool:
    return isinstance(action, DeleteBackup) or action.description.startswith(CLEANUP_TAG)


def is_persistable(action: Compensation) -> bool:
    return not isinstance(action, Callback)


def to_record(action: Compensation) -> ActionRecord:
    return ActionRecord(
        description=action.description,
        operation_type=action.OPERATION.value,
        repo_path=action.repo_path,
        parameters=action.parameters(),
    )


def compensation_from_record(record: ActionRecord) -> Result[Compensation, str]:
    """Rebuild a compensation from its persisted record."""
    op = OperationType.parse(record.operation_type)
    if op is None:
        return Err(f"unknown operation type: {record.operation_type!r}")

    repo = record.repo_path
    action: Compensation | None = None
    match record.parameters:
        case (RestoreFile.TAG, target, backup):
            action = RestoreFile(repo_path=repo, target=target, backup=backup)
        case (RemoveFile.TAG, target):
            action = RemoveFile(repo_path=repo, target=target)
        case (DeleteBackup.TAG, backup):
            action = DeleteBackup(repo_path=repo, backup=backup)
        case (ResetHard.TAG,):
            action = ResetHard(repo_path=repo)
        case (ResetCommit.TAG,):
            action = ResetCommit(repo_path=repo)
        case (RestoreBranch.TAG, original, created):
            action = RestoreBranch(repo_path=repo, original=original, created=created)
        case (PopStash.TAG, stash_ref):
            action = PopStash(repo_path=repo, stash_ref=stash_ref)
        case (DeleteRemoteBranch.TAG, branch):
            action = DeleteRemoteBranch(repo_path=repo, branch=branch)
        case _:
            pass

    if action is None:
        return Err(f"cannot reconstruct action from parameters {list(record.parameters)!r}")
    if action.OPERATION is not op:
        return Err(
            f"parameters describe a {action.OPERATION.value}, record says {record.operation_type}"
        )
    return Ok(action)


def _prune_backup_dirs(directory: Path, repo_path: Path) -> None:
    """Remove now-empty backup directories up to .git."""
    _prune_empty_dirs(directory, repo_path / ".git")


def _prune_empty_dirs(directory: Path, stop: Path) -> None:
    """Remove `directory` and its now-empty parents, stopping below `stop`."""
    current = directory
    while current != stop and stop in current.parents:
        try:
            current.rmdir()
        except OSError:
            return
        current = current.parent
