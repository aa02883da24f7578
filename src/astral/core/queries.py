"""
Read-only views over the world: a probe's surroundings, per-system
summaries and the overall simulation status.

Nothing here mutates the store; every function works on the copies the
store hands out.
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from astral.core.entities import CelestialBody, Probe, ProbeStatus, SolarSystem, distance
from astral.core.resources import ResourceVector, sum_vectors

if TYPE_CHECKING:
    from astral.core.world import WorldStore


# ---------------------------------------------------------------------------
# Environment snapshot
# ---------------------------------------------------------------------------

@dataclass
class BodyView:
    """A body as seen from a probe."""
    id: str
    name: str
    type: str
    distance: float
    resources: ResourceVector
    within_sensor_range: bool
    within_harvest_range: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "distance": self.distance,
            "resources": self.resources.to_dict(),
            "within_sensor_range": self.within_sensor_range,
            "within_harvest_range": self.within_harvest_range,
        }


@dataclass
class EnvironmentSnapshot:
    system_id: str
    system_name: str
    star_name: str
    bodies: list[BodyView]

    @property
    def closest(self) -> BodyView | None:
        return self.bodies[0] if self.bodies else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "system_id": self.system_id,
            "system_name": self.system_name,
            "star_name": self.star_name,
            "bodies": [b.to_dict() for b in self.bodies],
            "closest_body_id": self.closest.id if self.closest else None,
        }


def environment_snapshot(
    probe: Probe,
    system: SolarSystem | None,
    scale: float = 1.0,
    harvest_proximity: float = 1.0,
) -> EnvironmentSnapshot:
    """Bodies of the probe's current system, nearest first."""
    if system is None:
        return EnvironmentSnapshot(
            system_id=probe.current_system_id,
            system_name="unknown",
            star_name="unknown",
            bodies=[],
        )
    views = []
    for body in system.bodies:
        d = distance(probe.position, body.position, scale)
        views.append(BodyView(
            id=body.id,
            name=body.name,
            type=body.type.value,
            distance=d,
            resources=body.resources,
            within_sensor_range=d <= probe.capabilities.sensor_range,
            within_harvest_range=d <= harvest_proximity,
        ))
    views.sort(key=lambda v: v.distance)
    return EnvironmentSnapshot(
        system_id=system.id,
        system_name=system.name,
        star_name=system.star.name,
        bodies=views,
    )


# ---------------------------------------------------------------------------
# System summary
# ---------------------------------------------------------------------------

def _star_stock(star: CelestialBody) -> ResourceVector:
    # Only the star's energy and hydrogen count towards system totals
    return ResourceVector(energy=star.resources.energy, hydrogen=star.resources.hydrogen)


def system_summary(store: WorldStore, system_id: str) -> dict[str, Any] | None:
    """Totals for one system, or ``None`` if the id is unknown."""
    system = store.get_system(system_id)
    if system is None:
        return None
    totals = sum_vectors([b.resources for b in system.bodies] + [_star_stock(system.star)])
    return {
        "id": system.id,
        "name": system.name,
        "position": system.position.to_dict(),
        "star": {"id": system.star.id, "name": system.star.name},
        "body_count": len(system.bodies),
        "bodies": [
            {
                "id": b.id,
                "name": b.name,
                "type": b.type.value,
                "position": b.position.to_dict(),
                "resources": b.resources.to_dict(),
            }
            for b in system.bodies
        ],
        "total_resources": totals.to_dict(),
        "discovered_by": system.discovered_by,
        "discovered_at": system.discovered_at,
    }


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

def simulation_status(store: WorldStore, now: float | None = None) -> dict[str, Any]:
    """Population counts, resource totals, uptime and the tick counter."""
    now = time.time() if now is None else now
    probes = store.all_probes()
    state_started = store.game_started_at
    by_generation = Counter(p.generation for p in probes)
    by_status = Counter(p.status.value for p in probes)
    living = [p for p in probes if p.status != ProbeStatus.DESTROYED]
    totals = sum_vectors(p.resources for p in living)
    return {
        "tick": store.tick,
        "total_probes": len(probes),
        "active_probes": by_status.get(ProbeStatus.ACTIVE.value, 0),
        "probes_by_generation": {str(g): n for g, n in sorted(by_generation.items())},
        "probes_by_status": dict(by_status),
        "max_generation": max((p.generation for p in probes), default=0),
        "total_resources": totals.to_dict(),
        "total_systems": len(store.all_systems()),
        "uptime_seconds": max(0.0, now - state_started),
        "game_started_at": state_started,
        "degraded": store.degraded,
    }


def world_totals(probes: list[Probe]) -> dict[str, Any]:
    """Aggregate figures handed to decision providers."""
    living = [p for p in probes if not p.is_destroyed]
    return {
        "probe_count": len(living),
        "max_generation": max((p.generation for p in living), default=0),
        "total_resources": sum_vectors(p.resources for p in living).to_dict(),
    }
