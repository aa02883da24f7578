"""Tests for the thread-pool task executor."""

from __future__ import annotations

import threading
import time

from astral.core.errors import TaskTimeoutError
from astral.core.tasks import Task, TaskExecutor


class TestRunMany:
    def test_results_in_submission_order(self):
        with TaskExecutor(max_workers=4) as tasks:
            results = tasks.run_many(
                [Task(name=str(i), fn=lambda x: x * 2, payload=i) for i in range(10)],
                timeout=5,
            )
        assert [r.value for r in results] == [i * 2 for i in range(10)]
        assert all(r.ok for r in results)

    def test_exception_isolated(self):
        def boom(_):
            raise ValueError("bad")

        with TaskExecutor(max_workers=2) as tasks:
            results = tasks.run_many([
                Task("ok", lambda x: x, 1),
                Task("bad", boom, None),
                Task("ok2", lambda x: x, 2),
            ])
        assert [r.ok for r in results] == [True, False, True]
        assert "ValueError" in results[1].error
        assert isinstance(results[1].exception, ValueError)

    def test_timeout_marks_only_slow_task(self):
        release = threading.Event()

        def slow(_):
            release.wait(5)
            return "late"

        tasks = TaskExecutor(max_workers=2)
        try:
            results = tasks.run_many([Task("slow", slow), Task("fast", lambda _: "done")], timeout=0.2)
            assert results[0].timed_out
            assert not results[0].ok
            assert results[1].ok and results[1].value == "done"
        finally:
            release.set()
            tasks.shutdown(wait=True)

    def test_empty(self):
        with TaskExecutor() as tasks:
            assert tasks.run_many([]) == []


class TestRunChild:
    def test_value(self):
        with TaskExecutor() as tasks:
            r = tasks.run_child("c", lambda p: p + 1, 41, timeout=1)
        assert r.ok and r.value == 42

    def test_timeout(self):
        with TaskExecutor() as tasks:
            start = time.monotonic()
            r = tasks.run_child("c", lambda _: time.sleep(0.5), timeout=0.05)
            assert r.timed_out
            assert isinstance(r.exception, TaskTimeoutError)
            assert time.monotonic() - start < 0.5

    def test_child_runs_while_main_pool_saturated(self):
        with TaskExecutor(max_workers=1, child_workers=1) as tasks:
            def parent(_):
                return tasks.run_child("inner", lambda _: "inner-ok", timeout=2).value

            results = tasks.run_many([Task("outer", parent)], timeout=5)
        assert results[0].value == "inner-ok"
