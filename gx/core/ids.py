"""Identifier generation for transactions and changes.

Transaction ids must never collide inside the shared recovery directory.
A generator combines a wall-clock timestamp, the process id and a
counter; it is created once per run and injected wherever transactions
are built, so there is no module-level mutable state.
"""

from __future__ import annotations

import itertools
import os
import threading
from collections.abc import Callable
from datetime import UTC, datetime

__all__ = ["CHANGE_ID_PREFIX", "TransactionIdGenerator", "default_change_id"]

CHANGE_ID_PREFIX = "GX-"

type Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


class TransactionIdGenerator:
    """Monotonic, thread-safe transaction id source.

    Ids look like ``tx-20260101T120000-4242-0001``. The counter alone
    guarantees uniqueness within a process; the pid keeps two concurrent
    gx processes apart.
    """

    def __init__(
        self,
        prefix: str = "tx",
        *,
        clock: Clock = _utc_now,
        pid: int | None = None,
    ) -> None:
        self._prefix = prefix
        self._clock = clock
        self._pid = os.getpid() if pid is None else pid
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            n = next(self._counter)
        stamp = self._clock().strftime("%Y%m%dT%H%M%S")
        return f"{self._prefix}-{stamp}-{self._pid}-{n:04d}"


def default_change_id(clock: Clock = _utc_now) -> str:
    """Change id used when the user does not pass one (GX-<timestamp>)."""
    return clock().strftime(f"{CHANGE_ID_PREFIX}%Y-%m-%dT%H-%M-%S")
