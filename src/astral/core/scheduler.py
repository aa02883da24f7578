"""
Tick scheduler: the outer simulation loop.

Each tick is a barrier. Solar income is applied first, then one pipeline
per living probe runs concurrently, and the tick ends only when every
pipeline has finished, failed or timed out. Pipeline failures are counted
in the tick report and never abort the tick.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from astral.core.config import SimulationConfig
from astral.core.entities import ExperienceEvent, ProbeStatus
from astral.core.events import EventSink, LoggingEventSink
from astral.core.pipeline import PipelineResult, ProbePipeline
from astral.core.resources import add, energy_only
from astral.core.tasks import Task, TaskExecutor

if TYPE_CHECKING:
    from astral.core.world import WorldStore

logger = logging.getLogger(__name__)


@dataclass
class ProbeOutcome:
    probe_id: str
    probe_name: str
    success: bool
    failure_reason: str | None = None
    result: PipelineResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "probe_id": self.probe_id,
            "probe_name": self.probe_name,
            "success": self.success,
            "failure_reason": self.failure_reason,
            "result": self.result.to_dict() if self.result else None,
        }


@dataclass
class TickReport:
    tick: int
    probe_count: int
    successful: int
    failed: int
    outcomes: list[ProbeOutcome] = field(default_factory=list)
    probe_states: list[dict[str, Any]] = field(default_factory=list)
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "tick": self.tick,
            "probe_count": self.probe_count,
            "successful": self.successful,
            "failed": self.failed,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "probe_states": self.probe_states,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class SimulationReport:
    ticks_run: int = 0
    duration_seconds: float = 0.0
    final_probe_count: int = 0
    final_system_count: int = 0
    max_generation: int = 0
    log: list[TickReport] = field(default_factory=list)
    degraded: bool = False
    stopped_reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticks_run": self.ticks_run,
            "duration_seconds": self.duration_seconds,
            "final_probe_count": self.final_probe_count,
            "final_system_count": self.final_system_count,
            "max_generation": self.max_generation,
            "log": [t.to_dict() for t in self.log],
            "degraded": self.degraded,
            "stopped_reason": self.stopped_reason,
        }


class TickScheduler:
    """Drives ticks until ``max_ticks`` or until no probe is left.

    Parameters
    ----------
    sleep : callable
        Called with seconds between ticks. Tests pass a no-op.
    """

    def __init__(
        self,
        store: WorldStore,
        pipeline: ProbePipeline,
        config: SimulationConfig | None = None,
        tasks: TaskExecutor | None = None,
        events: EventSink | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.pipeline = pipeline
        self.config = config or store.config
        self.tasks = tasks or pipeline.tasks
        self.events = events or LoggingEventSink()
        self.sleep = sleep
        self._stop_requested = False

    def request_stop(self) -> None:
        """Ask ``run`` to end after the current tick."""
        self._stop_requested = True

    def clear_stop(self) -> None:
        """Forget a pending stop request. Call before starting a run."""
        self._stop_requested = False

    # ------------------------------------------------------------------
    # One tick
    # ------------------------------------------------------------------
    def apply_solar_income(self) -> int:
        """+``solar_energy_per_tick`` energy for every active probe."""
        amount = self.config.solar_energy_per_tick
        charged = 0
        with self.store.atomic():
            for probe in self.store.all_probes():
                if probe.status != ProbeStatus.ACTIVE:
                    continue
                new_resources = add(probe.resources, energy_only(amount))
                self.store.update_probe(probe.id, resources=new_resources)
                self.store.append_experience(probe.id, ExperienceEvent.SOLAR_CHARGING, {
                    "energy_gained": amount,
                    "new_energy_level": new_resources.energy,
                })
                charged += 1
        return charged

    def run_tick(self) -> TickReport | None:
        """Run one tick. Returns ``None`` when there is nobody left to act."""
        started = time.monotonic()
        tick = self.store.tick + 1

        self.apply_solar_income()
        probes = [p for p in self.store.all_probes() if not p.is_destroyed]
        if not probes:
            self.events.emit("tick.empty", tick=tick)
            return None

        self.events.emit("tick.started", tick=tick, probes=len(probes))
        results = self.tasks.run_many(
            [Task(name=p.name, fn=self.pipeline.run, payload=p.id) for p in probes],
            timeout=self.config.pipeline_timeout,
        )

        outcomes: list[ProbeOutcome] = []
        for probe, res in zip(probes, results):
            if res.ok:
                pr: PipelineResult = res.value
                outcomes.append(ProbeOutcome(
                    probe_id=probe.id, probe_name=probe.name,
                    success=pr.success, failure_reason=pr.error, result=pr,
                ))
            else:
                reason = "pipeline timed out" if res.timed_out else res.error
                self.events.emit(
                    "pipeline.failed", tick=tick, probe_id=probe.id,
                    probe_name=probe.name, reason=reason,
                )
                outcomes.append(ProbeOutcome(
                    probe_id=probe.id, probe_name=probe.name,
                    success=False, failure_reason=reason,
                ))

        # advance_tick snapshots on exit unless per-mutation saves are off
        self.store.advance_tick()
        if not self.config.persist_every_mutation:
            self.store.persist()

        successful = sum(1 for o in outcomes if o.success)
        report = TickReport(
            tick=tick,
            probe_count=len(probes),
            successful=successful,
            failed=len(outcomes) - successful,
            outcomes=outcomes,
            probe_states=[
                {
                    "id": p.id,
                    "name": p.name,
                    "generation": p.generation,
                    "status": p.status.value,
                    "position": p.position.to_dict(),
                    "resources": p.resources.to_dict(),
                }
                for p in self.store.all_probes()
            ],
            duration_seconds=time.monotonic() - started,
        )
        self.events.emit(
            "tick.completed", tick=tick, probes=report.probe_count,
            successful=report.successful, failed=report.failed,
            duration=round(report.duration_seconds, 3),
        )
        return report

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------
    def run(
        self,
        max_ticks: int | None = None,
        tick_duration_ms: int | None = None,
        on_tick: Callable[[TickReport], None] | None = None,
    ) -> SimulationReport:
        max_ticks = self.config.max_ticks if max_ticks is None else max_ticks
        max_ticks = max(1, min(1000, int(max_ticks)))
        delay_ms = self.config.tick_duration_ms if tick_duration_ms is None else tick_duration_ms

        started = time.monotonic()
        report = SimulationReport(stopped_reason="max_ticks")
        self.events.emit("simulation.started", max_ticks=max_ticks, tick_duration_ms=delay_ms)

        for i in range(max_ticks):
            tick_report = self.run_tick()
            if tick_report is None:
                report.stopped_reason = "no_probes"
                break
            report.log.append(tick_report)
            report.ticks_run += 1
            if on_tick is not None:
                on_tick(tick_report)
            if self._stop_requested:
                report.stopped_reason = "stop_requested"
                break
            if i < max_ticks - 1 and delay_ms > 0:
                self.sleep(delay_ms / 1000.0)

        probes = self.store.all_probes()
        report.duration_seconds = time.monotonic() - started
        report.final_probe_count = len(probes)
        report.final_system_count = len(self.store.all_systems())
        report.max_generation = max((p.generation for p in probes), default=0)
        report.degraded = self.store.degraded
        self.events.emit(
            "simulation.completed", ticks=report.ticks_run,
            probes=report.final_probe_count, max_generation=report.max_generation,
            reason=report.stopped_reason,
        )
        return report
