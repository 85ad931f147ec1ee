"""Bounded fan-out over repositories.

Each unit of work runs on a worker thread and returns its own result;
results are gathered from the futures (fan-in) rather than appended to a
shared container. One item failing, even by raising, never stops the
others: an unexpected exception is turned into a result by `on_crash`.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed

__all__ = ["cpu_count", "fan_out", "resolve_jobs"]

logger = logging.getLogger(__name__)


def cpu_count() -> int:
    return os.cpu_count() or 1


def resolve_jobs(cli_jobs: int | None, config_jobs: int | None) -> int:
    """Worker pool size: CLI override, then config, then CPU count."""
    for value in (cli_jobs, config_jobs):
        if value is not None and value > 0:
            return value
    return cpu_count()


def fan_out[T, R](
    items: Sequence[T],
    work: Callable[[T], R],
    *,
    jobs: int,
    on_crash: Callable[[T, Exception], R],
    on_result: Callable[[R], None] | None = None,
) -> list[R]:
    """Run `work` over `items` on at most `jobs` threads.

    Args:
        items: Work items (typically repositories)
        work: Function producing one result per item
        jobs: Maximum concurrent workers
        on_crash: Builds a result for an item whose worker raised
        on_result: Called on the calling thread as each result arrives

    Returns:
        One result per item, in the order of `items`
    """
    if not items:
        return []

    workers = max(1, min(jobs, len(items)))
    results: dict[int, R] = {}

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="gx") as pool:
        futures: dict[Future[R], int] = {
            pool.submit(work, item): index for index, item in enumerate(items)
        }
        for future in as_completed(futures):
            index = futures[future]
            try:
                result = future.result()
            except Exception as e:
                logger.exception("worker crashed on %r", items[index])
                result = on_crash(items[index], e)
            results[index] = result
            if on_result is not None:
                on_result(result)

    return [results[i] for i in range(len(items))]
