"""Recovery store: one JSON file per pending transaction.

File layout (`<transaction-id>.json`):

    {
      "transaction_id": "tx-20260101T120000-4242-0001",
      "rollback_actions": [
        {"description": "...", "operation_type": "FileOperation",
         "repo_path": "/src/api", "parameters": ["restore_file", "...", "..."]}
      ],
      "rollback_points": ["Point 1: branch created (after 1 operations)"],
      "operation_count": 3,
      "created_at": "2026-01-01T12:00:00+00:00"
    }

Each transaction only ever touches its own file, so concurrent writers
need no locking. Writes go through a temp file and an atomic rename,
so a listing never sees a half-written state.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Literal

from gx.core.result import Err, Ok, Result
from gx.core.structured import StrDict, as_obj_list, as_str_dict, get_int, get_raw_str
from gx.platform.files import atomic_write_text

from .actions import ActionRecord, OperationType

__all__ = [
    "CleanupSummary",
    "RecoveryError",
    "RecoveryStore",
    "TransactionState",
]

logger = logging.getLogger(__name__)

RecoveryErrorKind = Literal["not_found", "parse_error", "io_error", "validation_failed"]


@dataclass(frozen=True, slots=True)
class RecoveryError:
    kind: RecoveryErrorKind
    message: str
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class TransactionState:
    """Durable projection of a transaction's pending compensations."""

    transaction_id: str
    rollback_actions: tuple[ActionRecord, ...]
    rollback_points: tuple[str, ...]
    operation_count: int
    created_at: str

    @property
    def created(self) -> datetime:
        """Creation time as an aware datetime (epoch if unparseable)."""
        try:
            dt = datetime.fromisoformat(self.created_at)
        except ValueError:
            return datetime.fromtimestamp(0, UTC)
        return dt if dt.tzinfo else dt.replace(tzinfo=UTC)

    def counts_by_type(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for record in self.rollback_actions:
            counts[record.operation_type] = counts.get(record.operation_type, 0) + 1
        return counts

    def to_dict(self) -> StrDict:
        return {
            "transaction_id": self.transaction_id,
            "rollback_actions": [r.to_dict() for r in self.rollback_actions],
            "rollback_points": list(self.rollback_points),
            "operation_count": self.operation_count,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: StrDict) -> Result[TransactionState, str]:
        transaction_id = get_raw_str(data, "transaction_id")
        created_at = get_raw_str(data, "created_at")
        operation_count = get_int(data, "operation_count")
        raw_actions = as_obj_list(data.get("rollback_actions"))
        raw_points = as_obj_list(data.get("rollback_points"))

        if not transaction_id:
            return Err("missing transaction_id")
        if created_at is None:
            return Err("missing created_at")
        if operation_count is None:
            return Err("missing operation_count")
        if raw_actions is None:
            return Err("rollback_actions must be a list")
        if raw_points is None or not all(isinstance(p, str) for p in raw_points):
            return Err("rollback_points must be a list of strings")

        records: list[ActionRecord] = []
        for index, raw in enumerate(raw_actions):
            d = as_str_dict(raw)
            record = ActionRecord.from_dict(d) if d is not None else None
            if record is None:
                return Err(f"rollback_actions[{index}] is malformed")
            if OperationType.parse(record.operation_type) is None:
                return Err(
                    f"rollback_actions[{index}] has unknown operation_type "
                    f"{record.operation_type!r}"
                )
            records.append(record)

        return Ok(
            cls(
                transaction_id=transaction_id,
                rollback_actions=tuple(records),
                rollback_points=tuple(str(p) for p in raw_points),
                operation_count=operation_count,
                created_at=created_at,
            )
        )


@dataclass(frozen=True, slots=True)
class CleanupSummary:
    removed: int = 0
    failed: int = 0


class RecoveryStore:
    """Directory of serialized transaction states."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, transaction_id: str) -> Path:
        return self.directory / f"{transaction_id}.json"

    def exists(self, transaction_id: str) -> bool:
        return self.path_for(transaction_id).is_file()

    def save(self, state: TransactionState) -> Result[None, RecoveryError]:
        path = self.path_for(state.transaction_id)
        try:
            atomic_write_text(path, json.dumps(state.to_dict(), indent=2) + "\n")
        except OSError as e:
            return Err(
                RecoveryError(
                    kind="io_error",
                    message=f"failed to write recovery state {state.transaction_id}: {e}",
                )
            )
        return Ok(None)

    def load(self, transaction_id: str) -> Result[TransactionState, RecoveryError]:
        path = self.path_for(transaction_id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Err(
                RecoveryError(
                    kind="not_found",
                    message=f"no recovery state for transaction {transaction_id}",
                    hint="Run: gx rollback list",
                )
            )
        except (OSError, UnicodeDecodeError) as e:
            return Err(RecoveryError(kind="io_error", message=f"cannot read {path}: {e}"))

        try:
            obj: object = json.loads(text)
        except json.JSONDecodeError as e:
            return Err(RecoveryError(kind="parse_error", message=f"invalid JSON in {path}: {e}"))

        data = as_str_dict(obj)
        if data is None:
            return Err(RecoveryError(kind="parse_error", message=f"{path}: root must be an object"))

        parsed = TransactionState.from_dict(data)
        if isinstance(parsed, Err):
            return Err(RecoveryError(kind="parse_error", message=f"{path}: {parsed.error}"))
        return Ok(parsed.value)

    def list_states(self) -> list[TransactionState]:
        """All readable states, newest first. Corrupt files are skipped."""
        if not self.directory.is_dir():
            return []

        states: list[TransactionState] = []
        for path in sorted(self.directory.glob("*.json")):
            match self.load(path.stem):
                case Ok(state):
                    states.append(state)
                case Err(error):
                    logger.warning("skipping recovery file %s: %s", path.name, error.message)

        states.sort(key=lambda s: s.created, reverse=True)
        return states

    def delete(
        self, transaction_id: str, *, missing_ok: bool = False
    ) -> Result[None, RecoveryError]:
        path = self.path_for(transaction_id)
        try:
            path.unlink()
        except FileNotFoundError:
            if missing_ok:
                return Ok(None)
            return Err(
                RecoveryError(
                    kind="not_found",
                    message=f"no recovery state for transaction {transaction_id}",
                )
            )
        except OSError as e:
            return Err(RecoveryError(kind="io_error", message=f"cannot delete {path}: {e}"))
        logger.debug("deleted recovery state %s", transaction_id)
        return Ok(None)

    def cleanup(
        self,
        *,
        older_than: timedelta | None = None,
        now: datetime | None = None,
    ) -> CleanupSummary:
        """Delete all states, or only those created before `now - older_than`."""
        cutoff = None
        if older_than is not None:
            cutoff = (now or datetime.now(UTC)) - older_than

        removed = failed = 0
        for state in self.list_states():
            if cutoff is not None and state.created >= cutoff:
                continue
            match self.delete(state.transaction_id, missing_ok=True):
                case Ok(_):
                    removed += 1
                case Err(error):
                    logger.error("%s", error.message)
                    failed += 1
        return CleanupSummary(removed=removed, failed=failed)
