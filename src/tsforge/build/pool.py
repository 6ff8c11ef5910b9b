"""Bounded worker pool for build stages.

Fetching and compiling are blocking subprocess work, so each stage fans
out over a ``ThreadPoolExecutor`` of ``jobs`` threads and drains it with
``as_completed``. Results therefore arrive in completion order, not input
order: callers key results by grammar name.

A worker that raises does not take the stage down. The exception is
turned into a failure result by the ``on_error`` factory, so the rest of
the batch keeps going.

Key Concepts:
    run_parallel(items, worker, jobs=..., on_error=..., on_result=...):
        list of results, one per item, in completion order.
    StageTally: counts owned by one stage run and returned to the caller.
        Nothing is shared between stages or kept in module globals.

Example::

    results, tally = run_parallel(
        specs,
        fetcher.fetch,
        jobs=8,
        on_error=lambda spec, exc: FetchResult(name=spec.name, success=False, message=str(exc)),
    )

Tags:
    concurrency, thread-pool, workers, parallel
"""

from __future__ import annotations

import contextvars
import os
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, TypeVar

from tsforge.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def default_jobs() -> int:
    """Host CPU parallelism, at least 1."""
    return os.cpu_count() or 1


@dataclass
class StageTally:
    """Success/failure counts for one stage run."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    crashed: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def completed(self) -> int:
        return self.succeeded + self.failed

    def record(self, success: bool, *, crashed: bool = False) -> int:
        """Record one finished unit; returns the completed count."""
        with self._lock:
            if success:
                self.succeeded += 1
            else:
                self.failed += 1
            if crashed:
                self.crashed += 1
            return self.succeeded + self.failed


def _is_success(result: Any) -> bool:
    return bool(getattr(result, "success", True))


def run_parallel(
    items: Sequence[T],
    worker: Callable[[T], R],
    *,
    jobs: int | None = None,
    on_error: Callable[[T, BaseException], R],
    on_result: Callable[[int, int, R], None] | None = None,
) -> tuple[list[R], StageTally]:
    """Run ``worker`` over ``items`` with at most ``jobs`` in flight.

    Parameters
    ----------
    items
        Units of work.
    worker
        Blocking callable returning a result with a ``success`` attribute.
    jobs
        Pool width; defaults to the CPU count.
    on_error
        Builds a failure result when ``worker`` raises.
    on_result
        Progress callback ``(completed, total, result)``, called from the
        draining thread as each unit finishes.
    """
    tally = StageTally(total=len(items))
    results: list[R] = []
    if not items:
        return results, tally

    max_workers = max(1, min(jobs or default_jobs(), len(items)))

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="tsforge") as pool:
        # Each unit runs in its own copy of the caller's context (run_id, platform)
        futures = {
            pool.submit(contextvars.copy_context().run, worker, item): item for item in items
        }
        for future in as_completed(futures):
            item = futures[future]
            crashed = False
            try:
                result = future.result()
            except Exception as exc:
                logger.error("worker.crashed", item=repr(item), error=str(exc), exc_info=True)
                result = on_error(item, exc)
                crashed = True
            completed = tally.record(_is_success(result), crashed=crashed)
            results.append(result)
            if on_result is not None:
                on_result(completed, tally.total, result)

    return results, tally
