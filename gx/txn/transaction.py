"""Transaction: the ordered compensations for one repository mutation.

Lifecycle:
    tx = Transaction(ids=ids, store=store)
    repo.create_branch(...)                    # forward step
    tx.add_compensation(RestoreBranch(...))    # how to undo it
    ...
    tx.commit()      # success: run cleanup-tagged actions, forget the rest
    tx.rollback()    # failure: undo everything, newest first

A transaction ends exactly once. After commit, rollback is a no-op, and
vice versa. Rollback is best-effort and never raises: the returned
RollbackReport is how callers learn what failed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from gx.core.ids import TransactionIdGenerator
from gx.core.result import Err
from gx.git.repository import Repository

from .actions import (
    Compensation,
    OperationType,
    RepoFactory,
    is_cleanup,
    is_persistable,
    to_record,
)
from .store import RecoveryStore, TransactionState

__all__ = [
    "ActionFailure",
    "RollbackReport",
    "Transaction",
    "TransactionStats",
    "execute_actions",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ActionFailure:
    description: str
    operation_type: str
    message: str


@dataclass(frozen=True, slots=True)
class RollbackReport:
    """Outcome of running a batch of compensations.

    Attributes:
        succeeded: Actions that ran and reported success
        failed: Actions that ran and failed
        not_run: Actions left untouched after a stop-on-first-failure halt
        skipped_cleanup: Cleanup-tagged actions deliberately not run
        failures: Per-action error details, in execution order
    """

    succeeded: int = 0
    failed: int = 0
    not_run: int = 0
    skipped_cleanup: int = 0
    failures: tuple[ActionFailure, ...] = ()

    @property
    def attempted(self) -> int:
        return self.succeeded + self.failed

    @property
    def halted(self) -> bool:
        """True if rollback stopped early, leaving a partially reverted repo."""
        return self.not_run > 0

    @property
    def complete(self) -> bool:
        return self.failed == 0 and self.not_run == 0


@dataclass(frozen=True, slots=True)
class TransactionStats:
    total_actions: int
    rollback_points: int
    operation_count: int
    committed: bool
    actions_by_type: dict[str, int] = field(default_factory=dict)


def execute_actions(
    actions: Sequence[Compensation],
    repos: RepoFactory,
    *,
    stop_on_failure: bool = False,
    on_failure: Callable[[Compensation], None] | None = None,
) -> RollbackReport:
    """Run `actions` in the given order, best-effort.

    Each action's own Result decides success; an unexpected exception
    counts as a failure of that action. With `stop_on_failure`, the first
    failure halts the batch and the remainder are counted as not run.
    """
    succeeded = failed = 0
    failures: list[ActionFailure] = []

    for index, action in enumerate(actions):
        op = action.OPERATION.value
        try:
            result = action.run(repos)
            message = result.error if isinstance(result, Err) else None
        except Exception as e:
            logger.exception("compensation raised: %s", action.description)
            message = f"unexpected error: {e}"

        if message is None:
            succeeded += 1
            logger.debug("compensation ok: %s", action.description)
            continue

        failed += 1
        failures.append(
            ActionFailure(description=action.description, operation_type=op, message=message)
        )
        logger.warning("compensation failed: %s: %s", action.description, message)
        if on_failure is not None:
            on_failure(action)

        if stop_on_failure:
            remaining = len(actions) - index - 1
            if remaining:
                logger.error("rollback halted, %d action(s) not run", remaining)
            return RollbackReport(
                succeeded=succeeded,
                failed=failed,
                not_run=remaining,
                failures=tuple(failures),
            )

    return RollbackReport(succeeded=succeeded, failed=failed, failures=tuple(failures))


def _utc_now() -> datetime:
    return datetime.now(UTC)


class Transaction:
    """Ordered compensations for one repository, with optional persistence.

    When a RecoveryStore is given, the pending list is written to disk after
    every change so a crashed run can be replayed by `gx rollback execute`.
    """

    def __init__(
        self,
        *,
        ids: TransactionIdGenerator,
        store: RecoveryStore | None = None,
        repos: RepoFactory = Repository,
        stop_on_failure: bool = False,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.id = ids.next_id()
        self.created_at = clock().isoformat()
        self._store = store
        self._repos = repos
        self._stop_on_failure = stop_on_failure
        self._actions: list[Compensation] = []
        self._points: list[str] = []
        self._operation_count = 0
        self._committed = False
        self._finished = False

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    @property
    def committed(self) -> bool:
        return self._committed

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def pending(self) -> tuple[Compensation, ...]:
        return tuple(self._actions)

    @property
    def operation_count(self) -> int:
        return self._operation_count

    @property
    def rollback_points(self) -> tuple[str, ...]:
        return tuple(self._points)

    def stats(self) -> TransactionStats:
        by_type: dict[str, int] = {}
        for action in self._actions:
            key = action.OPERATION.value
            by_type[key] = by_type.get(key, 0) + 1
        return TransactionStats(
            total_actions=len(self._actions),
            rollback_points=len(self._points),
            operation_count=self._operation_count,
            committed=self._committed,
            actions_by_type=by_type,
        )

    def state(self) -> TransactionState:
        """Serializable view of the persistable pending actions."""
        return TransactionState(
            transaction_id=self.id,
            rollback_actions=tuple(to_record(a) for a in self._actions if is_persistable(a)),
            rollback_points=tuple(self._points),
            operation_count=self._operation_count,
            created_at=self.created_at,
        )

    # -------------------------------------------------------------------------
    # Forward pass
    # -------------------------------------------------------------------------

    def add_compensation(self, action: Compensation) -> None:
        """Record how to undo a step that just succeeded."""
        if self._finished:
            raise RuntimeError(f"transaction {self.id} already finished")
        self._actions.append(action)
        self._operation_count += 1
        logger.debug("[%s] +%s: %s", self.id, action.OPERATION.value, action.description)
        self._persist()

    def add_rollback_point(self, label: str) -> None:
        """Diagnostic marker; not a replay anchor."""
        n = len(self._points) + 1
        self._points.append(f"Point {n}: {label} (after {self._operation_count} operations)")
        self._persist()

    # -------------------------------------------------------------------------
    # Termination
    # -------------------------------------------------------------------------

    def commit(self) -> RollbackReport:
        """Finish successfully: run cleanup actions in order, drop the rest."""
        if self._finished:
            return RollbackReport()

        cleanup = [a for a in self._actions if is_cleanup(a)]
        report = execute_actions(cleanup, self._repos)
        if report.failed:
            logger.warning("[%s] %d cleanup action(s) failed", self.id, report.failed)

        self._actions.clear()
        self._committed = True
        self._finished = True
        if self._store is not None:
            self._store.delete(self.id, missing_ok=True)
        logger.debug("[%s] committed", self.id)
        return report

    def rollback(self) -> RollbackReport:
        """Undo every non-cleanup action, newest first. Never raises."""
        if self._finished:
            return RollbackReport()

        ordered = list(reversed(self._actions))
        to_run = [a for a in ordered if not is_cleanup(a)]
        skipped = len(ordered) - len(to_run)

        failed: list[Compensation] = []
        report = execute_actions(
            to_run,
            self._repos,
            stop_on_failure=self._stop_on_failure,
            on_failure=failed.append,
        )
        report = RollbackReport(
            succeeded=report.succeeded,
            failed=report.failed,
            not_run=report.not_run,
            skipped_cleanup=skipped,
            failures=report.failures,
        )

        # Keep what still needs undoing, in forward order
        untouched = to_run[len(to_run) - report.not_run :] if report.not_run else []
        leftover = list(reversed(failed + untouched))

        self._actions = leftover
        self._finished = True
        if report.complete:
            if self._store is not None:
                self._store.delete(self.id, missing_ok=True)
            logger.info("[%s] rolled back %d action(s)", self.id, report.succeeded)
        else:
            self._persist()
            logger.warning(
                "[%s] rollback incomplete: %d failed, %d not run",
                self.id,
                report.failed,
                report.not_run,
            )
        self._actions = []
        return report

    def rollback_category(self, operation_type: OperationType) -> RollbackReport:
        """Undo only the actions of one category, newest first.

        Successful actions are removed from the pending list; failed ones
        stay. The transaction remains open.
        """
        if self._finished:
            return RollbackReport()

        selected = [
            a
            for a in reversed(self._actions)
            if a.OPERATION is operation_type and not is_cleanup(a)
        ]
        failed: list[Compensation] = []
        report = execute_actions(
            selected,
            self._repos,
            stop_on_failure=self._stop_on_failure,
            on_failure=failed.append,
        )
        ran = selected[: len(selected) - report.not_run]
        done = {id(a) for a in ran if not any(a is f for f in failed)}
        self._actions = [a for a in self._actions if id(a) not in done]
        self._persist()
        return report

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _persist(self) -> None:
        if self._store is None:
            return
        result = self._store.save(self.state())
        if isinstance(result, Err):
            logger.warning("[%s] %s", self.id, result.error.message)
