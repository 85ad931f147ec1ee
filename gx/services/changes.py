"""Change state tracking.

A change (one change id fanned out over N repositories) is recorded as
`<state dir>/changes/<change-id>.json`: which repositories got a branch,
which have PRs, which were merged or cleaned up. `gx review` and
`gx cleanup` read and update it.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path

from gx.core.result import Err, Ok, Result
from gx.core.structured import StrDict, as_str_dict, get_int, get_raw_str, get_str_list, get_table
from gx.platform.files import atomic_write_text

__all__ = [
    "ChangeState",
    "ChangeStatus",
    "ChangeStore",
    "RepoChangeState",
    "RepoChangeStatus",
]

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ChangeStatus(Enum):
    IN_PROGRESS = "InProgress"
    PRS_CREATED = "PrsCreated"
    PARTIALLY_MERGED = "PartiallyMerged"
    FULLY_MERGED = "FullyMerged"
    ABANDONED = "Abandoned"
    FAILED = "Failed"


class RepoChangeStatus(Enum):
    BRANCH_CREATED = "BranchCreated"
    PR_OPEN = "PrOpen"
    PR_DRAFT = "PrDraft"
    PR_MERGED = "PrMerged"
    PR_CLOSED = "PrClosed"
    FAILED = "Failed"
    CLEANED_UP = "CleanedUp"


_WITH_PR = frozenset(
    {
        RepoChangeStatus.PR_OPEN,
        RepoChangeStatus.PR_DRAFT,
        RepoChangeStatus.PR_MERGED,
        RepoChangeStatus.PR_CLOSED,
    }
)


@dataclass(frozen=True, slots=True)
class RepoChangeState:
    repo_slug: str
    branch_name: str
    local_path: str | None = None
    original_branch: str | None = None
    pr_number: int | None = None
    pr_url: str | None = None
    status: RepoChangeStatus = RepoChangeStatus.BRANCH_CREATED
    files_modified: tuple[str, ...] = ()
    error: str | None = None

    @property
    def has_open_pr(self) -> bool:
        return self.status in (RepoChangeStatus.PR_OPEN, RepoChangeStatus.PR_DRAFT)

    def to_dict(self) -> StrDict:
        return {
            "repo_slug": self.repo_slug,
            "local_path": self.local_path,
            "branch_name": self.branch_name,
            "original_branch": self.original_branch,
            "pr_number": self.pr_number,
            "pr_url": self.pr_url,
            "status": self.status.value,
            "files_modified": list(self.files_modified),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: StrDict) -> RepoChangeState | None:
        slug = get_raw_str(data, "repo_slug")
        branch = get_raw_str(data, "branch_name")
        try:
            status = RepoChangeStatus(data.get("status"))
        except ValueError:
            return None
        if slug is None or branch is None:
            return None
        return cls(
            repo_slug=slug,
            branch_name=branch,
            local_path=get_raw_str(data, "local_path"),
            original_branch=get_raw_str(data, "original_branch"),
            pr_number=get_int(data, "pr_number"),
            pr_url=get_raw_str(data, "pr_url"),
            status=status,
            files_modified=tuple(get_str_list(data, "files_modified") or ()),
            error=get_raw_str(data, "error"),
        )


@dataclass
class ChangeState:
    """Everything gx knows about one change id across repositories."""

    change_id: str
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    commit_message: str | None = None
    repositories: dict[str, RepoChangeState] = field(default_factory=dict)
    status: ChangeStatus = ChangeStatus.IN_PROGRESS

    @classmethod
    def new(
        cls,
        change_id: str,
        *,
        description: str | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> ChangeState:
        now = clock()
        return cls(change_id=change_id, created_at=now, updated_at=now, description=description)

    # -------------------------------------------------------------------------
    # Updates
    # -------------------------------------------------------------------------

    def add_repository(self, repo: RepoChangeState, *, now: datetime | None = None) -> None:
        self.repositories[repo.repo_slug] = repo
        self._touch(now)
        self.update_overall_status()

    def set_pr_info(
        self, repo_slug: str, number: int, url: str, *, draft: bool, now: datetime | None = None
    ) -> None:
        status = RepoChangeStatus.PR_DRAFT if draft else RepoChangeStatus.PR_OPEN
        self._update(repo_slug, now, pr_number=number, pr_url=url, status=status)
        self.update_overall_status()

    def mark_merged(self, repo_slug: str, *, now: datetime | None = None) -> None:
        self._update(repo_slug, now, status=RepoChangeStatus.PR_MERGED)
        self.update_overall_status()

    def mark_closed(self, repo_slug: str, *, now: datetime | None = None) -> None:
        self._update(repo_slug, now, status=RepoChangeStatus.PR_CLOSED)
        self.update_overall_status()

    def mark_cleaned_up(self, repo_slug: str, *, now: datetime | None = None) -> None:
        self._update(repo_slug, now, status=RepoChangeStatus.CLEANED_UP)

    def mark_failed(self, repo_slug: str, error: str, *, now: datetime | None = None) -> None:
        self._update(repo_slug, now, status=RepoChangeStatus.FAILED, error=error)

    def update_overall_status(self) -> None:
        """Recompute the change status from its repositories.

        All merged wins over some merged, which wins over every repo having
        a PR. A change whose PRs were all closed unmerged is abandoned.
        """
        repos = list(self.repositories.values())
        if not repos:
            return
        merged = sum(1 for r in repos if r.status is RepoChangeStatus.PR_MERGED)
        closed = sum(1 for r in repos if r.status is RepoChangeStatus.PR_CLOSED)
        with_prs = sum(1 for r in repos if r.status in _WITH_PR)

        if merged == len(repos):
            self.status = ChangeStatus.FULLY_MERGED
        elif merged > 0:
            self.status = ChangeStatus.PARTIALLY_MERGED
        elif closed == len(repos):
            self.status = ChangeStatus.ABANDONED
        elif with_prs == len(repos):
            self.status = ChangeStatus.PRS_CREATED

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def repos_needing_cleanup(self) -> list[RepoChangeState]:
        """Repos whose PR is merged or closed but whose branch is still around."""
        return [
            r
            for r in self.repositories.values()
            if r.status in (RepoChangeStatus.PR_MERGED, RepoChangeStatus.PR_CLOSED)
        ]

    def open_prs(self) -> list[RepoChangeState]:
        return [r for r in self.repositories.values() if r.has_open_pr]

    @property
    def is_fully_cleaned(self) -> bool:
        return all(r.status is RepoChangeStatus.CLEANED_UP for r in self.repositories.values())

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> StrDict:
        return {
            "change_id": self.change_id,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "commit_message": self.commit_message,
            "repositories": {k: v.to_dict() for k, v in self.repositories.items()},
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: StrDict) -> Result[ChangeState, str]:
        change_id = get_raw_str(data, "change_id")
        if not change_id:
            return Err("missing change_id")
        try:
            created_at = _parse_time(get_raw_str(data, "created_at"))
            updated_at = _parse_time(get_raw_str(data, "updated_at"))
            status = ChangeStatus(data.get("status"))
        except ValueError as e:
            return Err(str(e))

        repositories: dict[str, RepoChangeState] = {}
        for key, raw in (get_table(data, "repositories") or {}).items():
            d = as_str_dict(raw)
            repo = RepoChangeState.from_dict(d) if d is not None else None
            if repo is None:
                return Err(f"repositories[{key!r}] is malformed")
            repositories[key] = repo

        return Ok(
            cls(
                change_id=change_id,
                created_at=created_at,
                updated_at=updated_at,
                description=get_raw_str(data, "description"),
                commit_message=get_raw_str(data, "commit_message"),
                repositories=repositories,
                status=status,
            )
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _touch(self, now: datetime | None) -> None:
        self.updated_at = now or _utc_now()

    def _update(self, repo_slug: str, now: datetime | None, **changes: object) -> None:
        repo = self.repositories.get(repo_slug)
        if repo is None:
            logger.debug("change %s has no repository %s", self.change_id, repo_slug)
            return
        self.repositories[repo_slug] = replace(repo, **changes)  # type: ignore[arg-type]
        self._touch(now)


def _parse_time(value: str | None) -> datetime:
    if value is None:
        raise ValueError("missing timestamp")
    dt = datetime.fromisoformat(value)
    return dt if dt.tzinfo else dt.replace(tzinfo=UTC)


class ChangeStore:
    """Directory of `<change-id>.json` files."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, change_id: str) -> Path:
        return self.directory / f"{change_id}.json"

    def save(self, state: ChangeState) -> Result[None, str]:
        path = self.path_for(state.change_id)
        try:
            atomic_write_text(path, json.dumps(state.to_dict(), indent=2) + "\n")
        except OSError as e:
            return Err(f"failed to write change state {state.change_id}: {e}")
        logger.debug("saved change state to %s", path)
        return Ok(None)

    def load(self, change_id: str) -> Result[ChangeState | None, str]:
        """None when no state exists for `change_id`."""
        path = self.path_for(change_id)
        if not path.is_file():
            return Ok(None)
        try:
            obj: object = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            return Err(f"cannot read {path}: {e}")
        data = as_str_dict(obj)
        if data is None:
            return Err(f"{path}: root must be an object")
        return ChangeState.from_dict(data).map_err(lambda msg: f"{path}: {msg}")

    def list_states(self) -> list[ChangeState]:
        """All readable states, newest first."""
        if not self.directory.is_dir():
            return []
        states: list[ChangeState] = []
        for path in sorted(self.directory.glob("*.json")):
            match self.load(path.stem):
                case Ok(state) if state is not None:
                    states.append(state)
                case Err(message):
                    logger.warning("skipping change state %s: %s", path.name, message)
                case _:
                    pass
        states.sort(key=lambda s: s.created_at, reverse=True)
        return states

    def delete(self, change_id: str) -> Result[None, str]:
        try:
            self.path_for(change_id).unlink(missing_ok=True)
        except OSError as e:
            return Err(f"failed to delete change state {change_id}: {e}")
        logger.debug("deleted change state %s", change_id)
        return Ok(None)

    def cleanup_old(self, days: int, *, now: datetime | None = None) -> int:
        """Delete fully merged or abandoned changes not updated for `days` days."""
        cutoff = (now or _utc_now()) - timedelta(days=days)
        deleted = 0
        for state in self.list_states():
            if state.status not in (ChangeStatus.FULLY_MERGED, ChangeStatus.ABANDONED):
                continue
            if state.updated_at >= cutoff:
                continue
            match self.delete(state.change_id):
                case Ok(_):
                    deleted += 1
                case Err(message):
                    logger.error("%s", message)
        return deleted
