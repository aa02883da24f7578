"""
Simulation facade: wires store, executor, provider and scheduler together
and runs them either inline or on a background thread.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

from astral.core.config import SimulationConfig
from astral.core.decision import (
    DecisionProvider,
    UtilityDecisionProvider,
    WaitDecisionProvider,
)
from astral.core.events import EventSink, LoggingEventSink
from astral.core.executors import ActionExecutor
from astral.core.persistence import SnapshotStore
from astral.core.pipeline import ProbePipeline
from astral.core.queries import simulation_status
from astral.core.scheduler import SimulationReport, TickScheduler
from astral.core.tasks import TaskExecutor
from astral.core.world import WorldStore

logger = logging.getLogger(__name__)


def create_provider(config: SimulationConfig) -> DecisionProvider:
    """Build the decision provider named by ``config.decision_provider``."""
    kind = config.decision_provider
    if kind == "wait":
        return WaitDecisionProvider()
    if kind == "utility":
        return UtilityDecisionProvider(
            temperature=config.decision_temperature, seed=config.random_seed,
        )
    if kind == "llm":
        from astral.llm.client import create_client
        from astral.llm.strategist import LLMDecisionProvider

        client = create_client(
            provider=config.llm_provider,
            model=config.llm_model,
            timeout=config.decision_timeout,
        )
        return LLMDecisionProvider(client, max_tokens=config.llm_max_tokens)
    raise ValueError(f"Unknown decision provider: {kind!r}")


class Simulation:
    """One world plus the machinery to advance it.

    Parameters
    ----------
    config : SimulationConfig
    provider : DecisionProvider, optional
        Overrides ``config.decision_provider``.
    events : EventSink, optional
    sleep : callable, optional
        Passed to the scheduler; tests use a no-op.
    """

    def __init__(
        self,
        config: SimulationConfig | None = None,
        provider: DecisionProvider | None = None,
        events: EventSink | None = None,
        sleep: Any = time.sleep,
    ):
        self.config = config or SimulationConfig()
        self.events = events or LoggingEventSink()

        self.snapshots: SnapshotStore | None = None
        if self.config.db_path:
            self.snapshots = SnapshotStore(
                self.config.db_path,
                world_id=self.config.world_id,
                timeout=self.config.persistence_timeout,
            )
        self.store = WorldStore(self.config, snapshots=self.snapshots)
        if self.snapshots is not None and not self.snapshots.available:
            self.store.degraded = True

        self.provider = provider or create_provider(self.config)
        self.tasks = TaskExecutor(max_workers=self.config.max_workers)
        self.executor = ActionExecutor(self.store, self.config)
        self.pipeline = ProbePipeline(
            self.store, self.executor, self.provider,
            config=self.config, tasks=self.tasks, events=self.events,
        )
        self.scheduler = TickScheduler(
            self.store, self.pipeline,
            config=self.config, tasks=self.tasks, events=self.events, sleep=sleep,
        )

        self.last_report: SimulationReport | None = None
        self.last_error: str | None = None
        self._lock = threading.Lock()
        self._running = False
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    @property
    def is_running(self) -> bool:
        return self._running

    def _claim(self) -> bool:
        with self._lock:
            if self._running:
                return False
            self._running = True
            return True

    def start(
        self,
        max_ticks: int | None = None,
        tick_duration_ms: int | None = None,
    ) -> SimulationReport:
        """Run to completion on the calling thread."""
        if not self._claim():
            raise RuntimeError("Simulation is already running")
        self.scheduler.clear_stop()
        try:
            return self._run(max_ticks, tick_duration_ms)
        finally:
            self._running = False

    def _run(self, max_ticks: int | None, tick_duration_ms: int | None) -> SimulationReport:
        self.last_error = None
        report = self.scheduler.run(max_ticks, tick_duration_ms)
        self.last_report = report
        return report

    def start_async(
        self,
        max_ticks: int | None = None,
        tick_duration_ms: int | None = None,
    ) -> bool:
        """Start running in a background thread. False if already running."""
        if not self._claim():
            return False
        self.scheduler.clear_stop()

        def _worker():
            try:
                self._run(max_ticks, tick_duration_ms)
            except Exception as e:
                logger.exception("Background simulation run failed")
                self.last_error = f"{type(e).__name__}: {e}"
            finally:
                self._running = False

        self._thread = threading.Thread(target=_worker, name="astral-sim", daemon=True)
        self._thread.start()
        return True

    def stop(self) -> None:
        """Stop a background run after its current tick."""
        self.scheduler.request_stop()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def status(self) -> dict[str, Any]:
        status = simulation_status(self.store)
        status["is_running"] = self.is_running
        status["decision_provider"] = getattr(self.provider, "name", type(self.provider).__name__)
        status["last_error"] = self.last_error
        return status

    def reset(self) -> bool:
        """Rebuild the seed state. Refused (False) while a run is active."""
        if not self._claim():
            return False
        try:
            self.store.reset()
            self.last_report = None
            self.last_error = None
            return True
        finally:
            self._running = False

    def close(self) -> None:
        self.scheduler.request_stop()
        self.tasks.shutdown(wait=False)
        if self.snapshots is not None:
            self.snapshots.close()
