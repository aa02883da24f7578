"""
Decision providers.

A provider turns a probe's situation into an ordered plan of proposed
actions plus a strategy summary and a priority. The engine only depends
on the ``DecisionProvider`` interface; the concrete providers here are
deterministic or seeded so simulations are reproducible:

- ``WaitDecisionProvider``: always waits.
- ``ScriptedDecisionProvider``: replays canned decisions per probe.
- ``UtilityDecisionProvider``: scores candidate actions and samples a plan
  via softmax with configurable temperature.

The language-model provider lives in ``astral.llm.strategist``.
"""

from __future__ import annotations

import math
import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable

import numpy as np

from astral.core.actions import (
    ExploreAction,
    HarvestAction,
    ManufactureAction,
    Priority,
    ProbeDecision,
    ScanAction,
    TravelAction,
    WaitAction,
    parse_decision,
)
from astral.core.config import SimulationConfig
from astral.core.entities import Experience, Probe
from astral.core.queries import EnvironmentSnapshot
from astral.core.resources import can_afford, total


@dataclass
class DecisionContext:
    """Everything a provider may look at. Built fresh for every call."""
    probe: Probe
    environment: EnvironmentSnapshot
    recent_experiences: list[Experience] = field(default_factory=list)
    recent_failures: list[str] = field(default_factory=list)
    world: dict[str, Any] = field(default_factory=dict)
    max_actions: int = 3
    config: SimulationConfig = field(default_factory=SimulationConfig)


def recent_failures(experiences: list[Experience]) -> list[str]:
    """``event: reason`` strings for the failure experiences in a window."""
    out = []
    for exp in experiences:
        if exp.is_failure:
            out.append(f"{exp.event}: {exp.data.get('reason', 'unknown reason')}")
    return out


class DecisionProvider(ABC):
    """Maps a ``DecisionContext`` to a ``ProbeDecision``.

    Implementations may block (network calls) and may raise; the pipeline
    bounds every call with a timeout and substitutes a fallback on error.
    """

    name: str = "base"

    @abstractmethod
    def decide(self, context: DecisionContext) -> ProbeDecision: ...


# ---------------------------------------------------------------------------
# Stubs
# ---------------------------------------------------------------------------

class WaitDecisionProvider(DecisionProvider):
    name = "wait"

    def decide(self, context: DecisionContext) -> ProbeDecision:
        return ProbeDecision(
            actions=[WaitAction(reasoning="Holding position")],
            overall_strategy="Accumulate solar energy",
            priority=Priority.SURVIVAL,
        )


ScriptEntry = Any  # ProbeDecision | dict | Exception | Callable[[DecisionContext], ProbeDecision]


class ScriptedDecisionProvider(DecisionProvider):
    """Replays a fixed script of decisions.

    ``script`` maps a probe id or name to a list of entries consumed one per
    call. An entry may be a ``ProbeDecision``, a raw dict (parsed with
    ``parse_decision``), an exception instance (raised), or a callable
    taking the context. Probes with an exhausted or missing script get
    ``default``, which itself defaults to a wait decision.
    """

    name = "scripted"

    def __init__(
        self,
        script: dict[str, list[ScriptEntry]] | None = None,
        default: ScriptEntry | None = None,
    ):
        self._script = {k: deque(v) for k, v in (script or {}).items()}
        self._default = default
        self._lock = threading.Lock()
        self.calls: list[str] = []

    def _next_entry(self, probe: Probe) -> ScriptEntry | None:
        with self._lock:
            self.calls.append(probe.id)
            for key in (probe.id, probe.name):
                queue = self._script.get(key)
                if queue:
                    return queue.popleft()
        return self._default

    def decide(self, context: DecisionContext) -> ProbeDecision:
        entry = self._next_entry(context.probe)
        if entry is None:
            return WaitDecisionProvider().decide(context)
        if isinstance(entry, BaseException):
            raise entry
        if callable(entry) and not isinstance(entry, ProbeDecision):
            entry = entry(context)
        if isinstance(entry, dict):
            return parse_decision(entry)
        return entry


# ---------------------------------------------------------------------------
# Utility-based provider
# ---------------------------------------------------------------------------

_PRIORITY_BY_KIND = {
    "manufacture_probe": Priority.EXPANSION,
    "harvest_resources": Priority.RESOURCE_GATHERING,
    "travel_to_body": Priority.EXPLORATION,
    "scan_resources": Priority.EXPLORATION,
    "explore_system": Priority.EXPLORATION,
    "wait": Priority.SURVIVAL,
}


@dataclass
class _Candidate:
    action: Any
    utility: float


class UtilityDecisionProvider(DecisionProvider):
    """
    Score every feasible action and sample a plan via softmax.

    Utilities are simple heuristics over the probe's resources, storage
    headroom and the nearby bodies. Sampling is without replacement so a
    plan never repeats the same kind of action. With ``temperature <= 0``
    the plan is the deterministic ranking by utility.

    Parameters
    ----------
    temperature : float
        Softmax temperature.
    seed : int | None
        Seed for the sampling generator.
    name_factory : callable, optional
        ``(parent, n) -> str`` used to name manufactured probes; ``n`` counts
        names handed out by this provider.
    """

    name = "utility"

    def __init__(
        self,
        temperature: float = 0.5,
        seed: int | None = None,
        name_factory: Callable[[Probe, int], str] | None = None,
    ):
        self.temperature = temperature
        self.rng = np.random.default_rng(seed)
        self._lock = threading.Lock()
        self._name_factory = name_factory or _default_child_name
        self._counter = 0

    # ------------------------------------------------------------------
    def _child_name(self, probe: Probe) -> str:
        with self._lock:
            self._counter += 1
            return self._name_factory(probe, self._counter)

    def candidates(self, context: DecisionContext) -> list[_Candidate]:
        probe = context.probe
        cfg = context.config
        env = context.environment
        res = probe.resources
        caps = probe.capabilities
        out: list[_Candidate] = []

        failed = {f.split(":", 1)[0] for f in context.recent_failures}
        headroom = caps.storage_capacity - total(res)
        energy_ratio = res.energy / max(1.0, cfg.replication_cost_vector.energy)

        # Replicate whenever affordable
        if can_afford(res, cfg.replication_cost_vector):
            out.append(_Candidate(
                ManufactureAction(
                    new_probe_name=self._child_name(probe),
                    reasoning="Enough resources to replicate",
                ),
                utility=3.0,
            ))

        # Harvest the nearest stocked body in range
        can_harvest_here = False
        for body in env.bodies:
            if not body.within_harvest_range or total(body.resources) <= 0:
                continue
            stocked = sum(1 for v in body.resources.to_dict().values() if v > 0)
            per_tick = caps.harvest_rate * max(1, stocked)
            duration = min(cfg.harvest_duration_max, int(headroom // per_tick))
            if duration >= cfg.harvest_duration_min:
                utility = 2.0 + min(1.0, headroom / caps.storage_capacity)
                if "harvest_failed" in failed:
                    utility -= 1.0
                out.append(_Candidate(
                    HarvestAction(
                        body_id=body.id, duration=duration,
                        reasoning=f"Harvest from {body.name} while in range",
                    ),
                    utility=utility,
                ))
                can_harvest_here = True
            break

        # Scan bodies not yet in memory
        for body in env.bodies:
            if body.within_sensor_range and body.id not in probe.memory.discovered_resources:
                out.append(_Candidate(
                    ScanAction(body_id=body.id, reasoning=f"Survey {body.name}"),
                    utility=1.5,
                ))
                break

        # Travel to the nearest stocked body that is out of harvest range
        for body in env.bodies:
            if body.within_harvest_range or total(body.resources) <= 0:
                continue
            cost = math.ceil(body.distance * cfg.energy_per_distance)
            if cost <= res.energy:
                # Only worth moving when nothing here can be harvested
                utility = 0.1 if can_harvest_here else 1.5
                if "travel_failed" in failed:
                    utility -= 1.0
                out.append(_Candidate(
                    TravelAction(body_id=body.id, reasoning=f"Move to {body.name}"),
                    utility=utility,
                ))
            break

        out.append(_Candidate(ExploreAction(reasoning="Survey the system"), utility=0.25))
        out.append(_Candidate(
            WaitAction(reasoning="Accumulate solar energy"),
            utility=0.5 + max(0.0, 1.0 - energy_ratio),
        ))
        return out

    def decide(self, context: DecisionContext) -> ProbeDecision:
        pool = self.candidates(context)
        plan: list[Any] = []
        while pool and len(plan) < context.max_actions:
            values = np.array([c.utility for c in pool])
            probabilities = self._softmax(values, self.temperature)
            with self._lock:
                idx = int(self.rng.choice(len(pool), p=probabilities))
            chosen = pool.pop(idx)
            plan.append(chosen.action)
            if chosen.action.action == "wait":
                break

        first = plan[0].action if plan else "wait"
        return ProbeDecision(
            actions=plan or [WaitAction(reasoning="Nothing feasible")],
            overall_strategy=_strategy_text(plan),
            priority=_PRIORITY_BY_KIND[first],
        )

    @staticmethod
    def _softmax(values: np.ndarray, temperature: float) -> np.ndarray:
        """Numerically stable softmax with temperature scaling."""
        if temperature <= 0:
            result = np.zeros_like(values)
            result[np.argmax(values)] = 1.0
            return result
        scaled = (values - values.max()) / temperature
        exp_vals = np.exp(scaled)
        return exp_vals / exp_vals.sum()


def _default_child_name(parent: Probe, n: int) -> str:
    return f"{parent.name}-G{parent.generation + 1}-{n}"


def _strategy_text(plan: list[Any]) -> str:
    if not plan:
        return "Wait for better conditions"
    kinds = [a.action.replace("_", " ") for a in plan]
    return "Plan: " + ", then ".join(kinds)
