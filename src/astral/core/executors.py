"""
Action executors: validate one proposed action and apply it to the store.

Each executor reads the probe and its target, checks every precondition,
and either performs one atomic mutation and returns ``ok=True``, or
appends a failure experience and returns ``ok=False`` with a machine
readable ``error_reason``. Precondition failures never raise; a missing
probe, system or body raises ``EntityNotFoundError``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from astral.core.actions import (
    ExploreAction,
    HarvestAction,
    ManufactureAction,
    ScanAction,
    TravelAction,
    WaitAction,
)
from astral.core.config import SimulationConfig
from astral.core.entities import (
    CelestialBody,
    Experience,
    ExperienceEvent,
    Position,
    Probe,
    ProbeCapabilities,
    ProbeStatus,
    SolarSystem,
    distance,
    travel_time,
)
from astral.core.errors import EntityNotFoundError
from astral.core.resources import ResourceVector, add, can_afford, energy_only, subtract, total

if TYPE_CHECKING:
    from astral.core.world import WorldStore

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    """Outcome of one executor call."""
    ok: bool
    data: dict[str, Any] = field(default_factory=dict)
    error_reason: str | None = None
    detail: str | None = None

    @classmethod
    def success(cls, **data: Any) -> ActionResult:
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, reason: str, detail: str | None = None) -> ActionResult:
        return cls(ok=False, error_reason=reason, detail=detail)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "data": self.data,
            "error_reason": self.error_reason,
            "detail": self.detail,
        }


class ActionExecutor:
    """Applies proposed actions to a ``WorldStore``.

    Every check-then-mutate sequence runs inside ``store.atomic()`` so a
    concurrent pipeline can never slip a write between validation and
    mutation.
    """

    def __init__(self, store: WorldStore, config: SimulationConfig | None = None):
        self.store = store
        self.config = config or store.config

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _probe(self, probe_id: str) -> Probe:
        probe = self.store.get_probe(probe_id)
        if probe is None:
            raise EntityNotFoundError("probe", probe_id)
        return probe

    def _current_system(self, probe: Probe) -> SolarSystem:
        system = self.store.get_system(probe.current_system_id)
        if system is None:
            raise EntityNotFoundError("system", probe.current_system_id)
        return system

    def _body(self, probe: Probe, body_id: str) -> tuple[SolarSystem, CelestialBody]:
        # Only non-star bodies of the probe's current system are targetable
        system = self._current_system(probe)
        body = system.find_body(body_id)
        if body is None:
            raise EntityNotFoundError("body", body_id)
        return system, body

    def _distance(self, a: Position, b: Position) -> float:
        return distance(a, b, self.config.distance_scale)

    def _fail(
        self,
        probe: Probe,
        event: ExperienceEvent,
        reason: str,
        detail: str,
        **data: Any,
    ) -> ActionResult:
        self.store.append_experience(
            probe.id, event, {**data, "success": False, "reason": reason, "detail": detail},
        )
        logger.debug("Probe %s: %s failed (%s)", probe.name, event.value, detail)
        return ActionResult.failure(reason, detail)

    def _destroyed(self, probe: Probe) -> ActionResult:
        return ActionResult.failure(
            "probe_destroyed", f"probe {probe.name} is destroyed and cannot act",
        )

    # ------------------------------------------------------------------
    # Travel
    # ------------------------------------------------------------------
    def travel(
        self,
        probe_id: str,
        target_position: Position,
        target_name: str | None = None,
    ) -> ActionResult:
        """Move to ``target_position``, paying ``ceil(d * energy_per_distance)`` energy."""
        with self.store.atomic():
            probe = self._probe(probe_id)
            if probe.is_destroyed:
                return self._destroyed(probe)

            dist = self._distance(probe.position, target_position)
            cost = math.ceil(dist * self.config.energy_per_distance)
            duration = travel_time(dist, probe.capabilities.max_speed)

            if probe.resources.energy < cost:
                return self._fail(
                    probe, ExperienceEvent.TRAVEL_FAILED, "insufficient_energy",
                    f"required {cost} energy, available {probe.resources.energy}",
                    target_position=target_position.to_dict(),
                    target_name=target_name,
                )

            self.store.update_probe(
                probe_id,
                status=ProbeStatus.TRAVELING,
                resources=subtract(probe.resources, energy_only(cost)),
                position=target_position,
            )
            if target_name is not None:
                memory = self.store.get_probe(probe_id).memory
                memory.remember_system(probe.current_system_id)
                self.store.update_probe(probe_id, memory=memory)
            self.store.append_experience(probe_id, ExperienceEvent.TRAVEL_COMPLETED, {
                "from": probe.position.to_dict(),
                "to": target_position.to_dict(),
                "target_name": target_name,
                "distance": dist,
                "energy_used": cost,
                "travel_time": duration,
            })
            self.store.update_probe(probe_id, status=ProbeStatus.ACTIVE)

        logger.debug("Probe %s traveled %.1f %s", probe.name, dist, self.config.distance_unit_label)
        return ActionResult.success(
            distance=dist,
            energy_used=cost,
            travel_time=duration,
            new_position=target_position.to_dict(),
        )

    # ------------------------------------------------------------------
    # Scan
    # ------------------------------------------------------------------
    def scan(self, probe_id: str, body_id: str) -> ActionResult:
        """Record a body's remaining stock in the probe's memory."""
        with self.store.atomic():
            probe = self._probe(probe_id)
            if probe.is_destroyed:
                return self._destroyed(probe)
            _, body = self._body(probe, body_id)

            dist = self._distance(probe.position, body.position)
            if dist > probe.capabilities.sensor_range:
                return self._fail(
                    probe, ExperienceEvent.SCAN_FAILED, "out_of_range",
                    f"max range is {probe.capabilities.sensor_range}, distance is {dist}",
                    body_id=body.id,
                    body_name=body.name,
                )

            memory = probe.memory
            memory.discovered_resources[body.id] = body.resources
            self.store.update_probe(probe_id, memory=memory)
            self.store.append_experience(probe_id, ExperienceEvent.RESOURCES_SCANNED, {
                "body_id": body.id,
                "body_name": body.name,
                "resources": body.resources.to_dict(),
                "distance": dist,
            })

        return ActionResult.success(
            body_id=body.id,
            body_name=body.name,
            resources=body.resources.to_dict(),
            distance=dist,
        )

    # ------------------------------------------------------------------
    # Harvest
    # ------------------------------------------------------------------
    def harvest(self, probe_id: str, body_id: str, duration: int) -> ActionResult:
        """Transfer up to ``harvest_rate * duration`` of each field from body to probe."""
        with self.store.atomic():
            probe = self._probe(probe_id)
            if probe.is_destroyed:
                return self._destroyed(probe)
            system, body = self._body(probe, body_id)

            lo, hi = self.config.harvest_duration_min, self.config.harvest_duration_max
            if not lo <= duration <= hi:
                return self._fail(
                    probe, ExperienceEvent.HARVEST_FAILED, "invalid_duration",
                    f"duration must be between {lo} and {hi}, got {duration}",
                    body_id=body.id,
                    duration=duration,
                )

            dist = self._distance(probe.position, body.position)
            if dist > self.config.harvest_proximity:
                return self._fail(
                    probe, ExperienceEvent.HARVEST_FAILED, "too_far",
                    f"max distance is {self.config.harvest_proximity}, distance is {dist}",
                    body_id=body.id,
                    duration=duration,
                )

            amount = probe.capabilities.harvest_rate * duration
            stock = body.resources.to_dict()
            extracted = ResourceVector.from_dict(
                {name: min(amount, value) for name, value in stock.items()}
            )
            current = total(probe.resources)
            if current + total(extracted) > probe.capabilities.storage_capacity:
                return self._fail(
                    probe, ExperienceEvent.HARVEST_FAILED, "storage_full",
                    f"current storage is {current}, max storage is "
                    f"{probe.capabilities.storage_capacity}",
                    body_id=body.id,
                    duration=duration,
                )

            remaining = subtract(body.resources, extracted)
            self.store.update_probe(
                probe_id,
                status=ProbeStatus.HARVESTING,
                resources=add(probe.resources, extracted),
            )
            self.store.set_body_resources(system.id, body.id, remaining)
            self.store.append_experience(probe_id, ExperienceEvent.RESOURCES_HARVESTED, {
                "body_id": body.id,
                "body_name": body.name,
                "harvested": extracted.to_dict(),
                "duration": duration,
            })
            self.store.update_probe(probe_id, status=ProbeStatus.ACTIVE)

        logger.debug("Probe %s harvested %s from %s", probe.name, extracted.to_dict(), body.name)
        return ActionResult.success(
            harvested=extracted.to_dict(),
            duration=duration,
            remaining_on_body=remaining.to_dict(),
        )

    # ------------------------------------------------------------------
    # Manufacture
    # ------------------------------------------------------------------
    def manufacture(self, probe_id: str, new_probe_name: str) -> ActionResult:
        """Spend the replication cost and insert a generation+1 child."""
        cost = self.config.replication_cost_vector
        with self.store.atomic():
            parent = self._probe(probe_id)
            if parent.is_destroyed:
                return self._destroyed(parent)

            if not can_afford(parent.resources, cost):
                return self._fail(
                    parent, ExperienceEvent.MANUFACTURING_FAILED, "insufficient_resources",
                    f"required {cost.to_dict()}, available {parent.resources.to_dict()}",
                    new_probe_name=new_probe_name,
                )

            now = self.store.clock()
            child_id = self.store.new_id()
            memory = parent.memory.inherit(parent.id)
            memory.experiences.append(Experience(
                timestamp=now,
                event=ExperienceEvent.PROBE_MANUFACTURED.value,
                data={
                    "parent_id": parent.id,
                    "parent_name": parent.name,
                    "location": parent.current_system_id,
                },
            ))
            child = Probe(
                id=child_id,
                name=new_probe_name,
                generation=parent.generation + 1,
                created_at=now,
                position=parent.position,
                current_system_id=parent.current_system_id,
                status=ProbeStatus.ACTIVE,
                resources=self.config.child_resources_vector,
                capabilities=ProbeCapabilities.from_dict(self.config.base_capabilities),
                memory=memory,
                parent_probe_id=parent.id,
            )

            self.store.update_probe(
                probe_id,
                status=ProbeStatus.MANUFACTURING,
                resources=subtract(parent.resources, cost),
            )
            self.store.add_probe(child)
            parent_memory = self.store.get_probe(probe_id).memory
            parent_memory.remember_probe(child_id)
            self.store.update_probe(probe_id, memory=parent_memory)
            self.store.append_experience(probe_id, ExperienceEvent.PROBE_MANUFACTURED, {
                "child_id": child_id,
                "child_name": new_probe_name,
                "resources_used": cost.to_dict(),
            }, timestamp=now)
            self.store.update_probe(probe_id, status=ProbeStatus.ACTIVE)

        logger.info(
            "Probe %s manufactured %s (generation %d)",
            parent.name, new_probe_name, child.generation,
        )
        return ActionResult.success(
            new_probe_id=child_id,
            new_probe_name=new_probe_name,
            generation=child.generation,
            resources_used=cost.to_dict(),
        )

    # ------------------------------------------------------------------
    # Wait / explore
    # ------------------------------------------------------------------
    def wait(self, probe_id: str, reasoning: str = "") -> ActionResult:
        with self.store.atomic():
            probe = self._probe(probe_id)
            if probe.is_destroyed:
                return self._destroyed(probe)
            self.store.append_experience(probe_id, ExperienceEvent.WAITED, {"reasoning": reasoning})
        return ActionResult.success()

    def explore(self, probe_id: str, reasoning: str = "") -> ActionResult:
        with self.store.atomic():
            probe = self._probe(probe_id)
            if probe.is_destroyed:
                return self._destroyed(probe)
            self.store.append_experience(probe_id, ExperienceEvent.EXPLORED_SYSTEM, {
                "system_id": probe.current_system_id,
                "reasoning": reasoning,
            })
        return ActionResult.success(system_id=probe.current_system_id)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    def execute(self, probe_id: str, action: Any) -> ActionResult:
        """Run one validated proposal."""
        if isinstance(action, ScanAction):
            return self.scan(probe_id, action.body_id)
        if isinstance(action, TravelAction):
            probe = self._probe(probe_id)
            _, body = self._body(probe, action.body_id)
            return self.travel(probe_id, body.position, target_name=body.name)
        if isinstance(action, HarvestAction):
            return self.harvest(probe_id, action.body_id, action.duration)
        if isinstance(action, ManufactureAction):
            return self.manufacture(probe_id, action.new_probe_name)
        if isinstance(action, WaitAction):
            return self.wait(probe_id, action.reasoning)
        if isinstance(action, ExploreAction):
            return self.explore(probe_id, action.reasoning)
        raise TypeError(f"Unsupported action type: {type(action).__name__}")
