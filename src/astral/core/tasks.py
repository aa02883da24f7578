"""
Task execution on thread pools.

``run_many`` fans a batch of units of work out over the main pool and
collects their results in submission order (the tick barrier).
``run_child`` runs one nested unit, typically a decision-provider call,
on a separate child pool so a saturated main pool can never starve it.

A timed-out thread cannot be interrupted: its future is abandoned, the
caller receives a ``timed_out`` result, and whatever the thread
eventually returns is discarded.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from astral.core.errors import TaskTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class TaskResult:
    name: str
    ok: bool
    value: Any = None
    error: str | None = None
    timed_out: bool = False
    exception: BaseException | None = None


@dataclass
class Task:
    """A named unit of work: ``fn(payload)``."""
    name: str
    fn: Callable[[Any], Any]
    payload: Any = None


class TaskExecutor:
    """Two thread pools: one for top-level tasks, one for child tasks.

    Parameters
    ----------
    max_workers : int
        Size of the main pool (concurrent pipelines per tick).
    child_workers : int | None
        Size of the child pool. Defaults to ``max_workers``.
    """

    def __init__(self, max_workers: int = 8, child_workers: int | None = None):
        self.max_workers = max(1, int(max_workers))
        self._pool = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="astral-task",
        )
        self._child_pool = ThreadPoolExecutor(
            max_workers=max(1, int(child_workers or self.max_workers)),
            thread_name_prefix="astral-child",
        )

    # ------------------------------------------------------------------
    # Result collection
    # ------------------------------------------------------------------
    @staticmethod
    def _collect(name: str, future: Future, timeout: float | None) -> TaskResult:
        try:
            value = future.result(timeout=timeout)
        except FutureTimeoutError:
            future.cancel()
            logger.warning("Task %s timed out after %.1fs", name, timeout or 0.0)
            error = f"timed out after {timeout}s"
            return TaskResult(
                name=name, ok=False, timed_out=True,
                error=error, exception=TaskTimeoutError(f"{name} {error}"),
            )
        except Exception as e:
            return TaskResult(
                name=name, ok=False,
                error=f"{type(e).__name__}: {e}", exception=e,
            )
        return TaskResult(name=name, ok=True, value=value)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run_child(
        self,
        name: str,
        fn: Callable[[Any], Any],
        payload: Any = None,
        timeout: float | None = None,
    ) -> TaskResult:
        """Run ``fn(payload)`` on the child pool and wait up to ``timeout``."""
        future = self._child_pool.submit(fn, payload)
        return self._collect(name, future, timeout)

    def run_many(
        self,
        tasks: Sequence[Task],
        timeout: float | None = None,
    ) -> list[TaskResult]:
        """Run every task concurrently; block until all finish or time out.

        Results are returned in the same order as ``tasks``. ``timeout``
        bounds each task, measured from the moment the batch is submitted.
        """
        if not tasks:
            return []
        started = time.monotonic()
        futures = [self._pool.submit(t.fn, t.payload) for t in tasks]
        results: list[TaskResult] = []
        for task, future in zip(tasks, futures):
            remaining = None
            if timeout is not None:
                remaining = max(0.0, timeout - (time.monotonic() - started))
            results.append(self._collect(task.name, future, remaining))
        return results

    def shutdown(self, wait: bool = False) -> None:
        self._pool.shutdown(wait=wait, cancel_futures=True)
        self._child_pool.shutdown(wait=wait, cancel_futures=True)

    def __enter__(self) -> TaskExecutor:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.shutdown(wait=True)
