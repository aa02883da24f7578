"""
Per-probe pipeline: observe, decide, act.

One run covers one probe for one tick:

1. Copy the probe and its surroundings out of the store.
2. Ask the decision provider for a plan (bounded by a timeout, on the
   child pool, never while holding the store lock).
3. Execute at most ``max_actions`` proposals strictly in order.

Provider failures fall back to a single wait action. A failed action is
recorded and the loop moves on; only the probe disappearing or being
destroyed stops the run early.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from astral.core.actions import (
    ProbeDecision,
    RejectedProposal,
    fallback_decision,
)
from astral.core.config import SimulationConfig
from astral.core.decision import DecisionContext, DecisionProvider, recent_failures
from astral.core.entities import ExperienceEvent
from astral.core.errors import AstralError, EntityNotFoundError
from astral.core.events import EventSink, LoggingEventSink
from astral.core.executors import ActionExecutor, ActionResult
from astral.core.queries import environment_snapshot, world_totals
from astral.core.tasks import TaskExecutor

if TYPE_CHECKING:
    from astral.core.world import WorldStore

logger = logging.getLogger(__name__)


@dataclass
class ExecutedAction:
    action: str
    parameters: dict[str, Any]
    reasoning: str
    result: ActionResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "parameters": self.parameters,
            "reasoning": self.reasoning,
            "result": self.result.to_dict(),
        }


@dataclass
class PipelineResult:
    probe_id: str
    probe_name: str
    overall_strategy: str = ""
    priority: str = "survival"
    executed_actions: list[ExecutedAction] = field(default_factory=list)
    success: bool = True
    error: str | None = None
    fallback_used: bool = False

    @property
    def total_actions(self) -> int:
        return len(self.executed_actions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "probe_id": self.probe_id,
            "probe_name": self.probe_name,
            "overall_strategy": self.overall_strategy,
            "priority": self.priority,
            "executed_actions": [a.to_dict() for a in self.executed_actions],
            "total_actions": self.total_actions,
            "success": self.success,
            "error": self.error,
            "fallback_used": self.fallback_used,
        }


class ProbePipeline:
    """Runs the observe-decide-act loop for single probes."""

    def __init__(
        self,
        store: WorldStore,
        executor: ActionExecutor,
        provider: DecisionProvider,
        config: SimulationConfig | None = None,
        tasks: TaskExecutor | None = None,
        events: EventSink | None = None,
    ):
        self.store = store
        self.executor = executor
        self.provider = provider
        self.config = config or store.config
        self.tasks = tasks or TaskExecutor(max_workers=self.config.max_workers)
        self.events = events or LoggingEventSink()

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def build_context(self, probe_id: str, max_actions: int | None = None) -> DecisionContext:
        probe = self.store.get_probe(probe_id)
        if probe is None:
            raise EntityNotFoundError("probe", probe_id)
        system = self.store.get_system(probe.current_system_id)
        env = environment_snapshot(
            probe, system,
            scale=self.config.distance_scale,
            harvest_proximity=self.config.harvest_proximity,
        )
        recent = probe.recent_experiences(self.config.recent_experience_window)
        return DecisionContext(
            probe=probe,
            environment=env,
            recent_experiences=recent,
            recent_failures=recent_failures(recent),
            world=world_totals(self.store.all_probes()),
            max_actions=self.config.clamp_max_actions(max_actions),
            config=self.config,
        )

    def decide(self, context: DecisionContext) -> tuple[ProbeDecision, bool]:
        """Call the provider with a timeout. Returns ``(decision, fallback_used)``."""
        probe = context.probe
        outcome = self.tasks.run_child(
            f"decide:{probe.name}",
            self.provider.decide,
            context,
            timeout=self.config.decision_timeout,
        )
        if outcome.ok and isinstance(outcome.value, ProbeDecision):
            return outcome.value, False

        reason = outcome.error or f"provider returned {type(outcome.value).__name__}"
        self.events.emit(
            "decision.failed", probe_id=probe.id, probe_name=probe.name,
            reason=reason, timed_out=outcome.timed_out,
        )
        return fallback_decision(reason), True

    def _record_rejected(self, probe_id: str, proposal: RejectedProposal) -> ExecutedAction:
        self.store.append_experience(probe_id, ExperienceEvent.ACTION_REJECTED, {
            "action": proposal.action,
            "success": False,
            "reason": "invalid_proposal",
            "detail": proposal.error,
        })
        return ExecutedAction(
            action=proposal.action,
            parameters={k: v for k, v in proposal.raw.items() if k != "action"},
            reasoning=str(proposal.raw.get("reasoning", "")),
            result=ActionResult.failure("invalid_proposal", proposal.error),
        )

    def _can_act(self, probe_id: str) -> bool:
        probe = self.store.get_probe(probe_id)
        return probe is not None and not probe.is_destroyed

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------
    def run(self, probe_id: str, max_actions: int | None = None) -> PipelineResult:
        context = self.build_context(probe_id, max_actions)
        probe = context.probe
        decision, fallback_used = self.decide(context)

        result = PipelineResult(
            probe_id=probe.id,
            probe_name=probe.name,
            overall_strategy=decision.overall_strategy,
            priority=decision.priority.value,
            fallback_used=fallback_used,
        )

        for proposal in decision.rejected:
            result.executed_actions.append(self._record_rejected(probe_id, proposal))

        for action in decision.actions[:context.max_actions]:
            if not self._can_act(probe_id):
                result.success = False
                result.error = "probe destroyed or removed during pipeline"
                break
            try:
                outcome = self.executor.execute(probe_id, action)
            except EntityNotFoundError as e:
                outcome = ActionResult.failure("not_found", str(e))
            except AstralError as e:
                logger.exception("Action %s for probe %s aborted", action.action, probe.name)
                outcome = ActionResult.failure("invariant_violation", str(e))
            result.executed_actions.append(ExecutedAction(
                action=action.action,
                parameters=action.parameters(),
                reasoning=action.reasoning,
                result=outcome,
            ))
            self.events.emit(
                "action.completed" if outcome.ok else "action.failed",
                probe_id=probe.id, probe_name=probe.name, action=action.action,
                reason=outcome.error_reason,
            )

        self.events.emit(
            "pipeline.completed", probe_id=probe.id, probe_name=probe.name,
            actions=result.total_actions, strategy=result.overall_strategy,
            priority=result.priority, fallback=fallback_used,
        )
        return result
