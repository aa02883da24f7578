"""
Entity dataclasses for the Astral Sandbox.

Probes carry resources, capabilities and an append-only memory; solar
systems own one star and an ordered list of harvestable bodies. Records
are plain dataclasses: the ``WorldStore`` is the only component allowed to
mutate the copies it owns.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np

from astral.core.resources import ResourceVector


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ProbeStatus(str, Enum):
    """Lifecycle states. DESTROYED is terminal."""
    ACTIVE = "active"
    TRAVELING = "traveling"
    HARVESTING = "harvesting"
    MANUFACTURING = "manufacturing"
    REPLICATING = "replicating"
    DAMAGED = "damaged"
    DESTROYED = "destroyed"


class BodyType(str, Enum):
    STAR = "star"
    PLANET = "planet"
    ASTEROID = "asteroid"
    GAS_GIANT = "gas_giant"
    MOON = "moon"
    ASTEROID_BELT = "asteroid_belt"


class ExperienceEvent(str, Enum):
    """Known experience tags written to a probe's memory."""
    PROBE_AWAKENED = "probe_awakened"
    PROBE_MANUFACTURED = "probe_manufactured"
    RESOURCES_SCANNED = "resources_scanned"
    TRAVEL_COMPLETED = "travel_completed"
    RESOURCES_HARVESTED = "resources_harvested"
    SOLAR_CHARGING = "solar_charging"
    WAITED = "waited"
    EXPLORED_SYSTEM = "explored_system"
    # failure variants
    SCAN_FAILED = "scan_resources_failed"
    TRAVEL_FAILED = "travel_failed"
    HARVEST_FAILED = "harvest_failed"
    MANUFACTURING_FAILED = "manufacturing_failed"
    ACTION_REJECTED = "action_rejected"


FAILURE_EVENTS: frozenset[str] = frozenset({
    ExperienceEvent.SCAN_FAILED.value,
    ExperienceEvent.TRAVEL_FAILED.value,
    ExperienceEvent.HARVEST_FAILED.value,
    ExperienceEvent.MANUFACTURING_FAILED.value,
    ExperienceEvent.ACTION_REJECTED.value,
})


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Position:
    """A point in the shared distance unit."""
    x: float
    y: float
    z: float

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=float)

    def to_dict(self) -> dict[str, float]:
        return {"x": float(self.x), "y": float(self.y), "z": float(self.z)}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Position:
        return cls(x=float(d["x"]), y=float(d["y"]), z=float(d["z"]))


def distance(a: Position, b: Position, scale: float = 1.0) -> float:
    """Euclidean distance rescaled by ``scale``."""
    return float(np.linalg.norm(b.as_array() - a.as_array())) * scale


def travel_time(dist: float, max_speed: float) -> int:
    if max_speed <= 0:
        return 0
    return math.ceil(dist / max_speed)


# ---------------------------------------------------------------------------
# Celestial bodies & systems
# ---------------------------------------------------------------------------

@dataclass
class CelestialBody:
    """A star, planet, belt, etc. ``resources`` is the remaining stock."""
    id: str
    name: str
    type: BodyType
    position: Position
    resources: ResourceVector
    mass: float = 0.0      # display only
    radius: float = 0.0    # display only


@dataclass
class SolarSystem:
    """One star plus an ordered collection of non-star bodies."""
    id: str
    name: str
    position: Position
    star: CelestialBody
    bodies: list[CelestialBody] = field(default_factory=list)
    discovered_by: str | None = None
    discovered_at: float | None = None

    def find_body(self, body_id: str) -> CelestialBody | None:
        for body in self.bodies:
            if body.id == body_id:
                return body
        return None


# ---------------------------------------------------------------------------
# Probes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProbeCapabilities:
    """Fixed per probe once created."""
    max_speed: float = 0.1
    harvest_rate: float = 10.0
    sensor_range: float = 50.0
    communication_range: float = 100.0
    storage_capacity: float = 5000.0

    def to_dict(self) -> dict[str, float]:
        return {
            "max_speed": self.max_speed,
            "harvest_rate": self.harvest_rate,
            "sensor_range": self.sensor_range,
            "communication_range": self.communication_range,
            "storage_capacity": self.storage_capacity,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ProbeCapabilities:
        return cls(**{k: float(v) for k, v in d.items()})


@dataclass
class Experience:
    timestamp: float
    event: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def is_failure(self) -> bool:
        return self.event in FAILURE_EVENTS


@dataclass
class ProbeMemory:
    experiences: list[Experience] = field(default_factory=list)
    known_probes: list[str] = field(default_factory=list)
    visited_systems: list[str] = field(default_factory=list)
    discovered_resources: dict[str, ResourceVector] = field(default_factory=dict)

    def remember_probe(self, probe_id: str) -> None:
        if probe_id not in self.known_probes:
            self.known_probes.append(probe_id)

    def remember_system(self, system_id: str) -> None:
        if system_id not in self.visited_systems:
            self.visited_systems.append(system_id)

    def inherit(self, parent_id: str) -> ProbeMemory:
        """Value copy for a manufactured child; experiences start empty."""
        child = ProbeMemory(
            known_probes=list(self.known_probes),
            visited_systems=list(self.visited_systems),
            discovered_resources=dict(self.discovered_resources),
        )
        child.remember_probe(parent_id)
        return child


@dataclass
class Probe:
    """An autonomous self-replicating probe."""

    # === Identity ===
    id: str
    name: str
    generation: int
    created_at: float

    # === Location ===
    position: Position
    current_system_id: str

    # === State ===
    status: ProbeStatus = ProbeStatus.ACTIVE
    resources: ResourceVector = field(default_factory=ResourceVector)
    capabilities: ProbeCapabilities = field(default_factory=ProbeCapabilities)
    memory: ProbeMemory = field(default_factory=ProbeMemory)

    # === Lineage ===
    parent_probe_id: str | None = None

    @property
    def is_destroyed(self) -> bool:
        return self.status == ProbeStatus.DESTROYED

    def recent_experiences(self, n: int) -> list[Experience]:
        if n <= 0:
            return []
        return self.memory.experiences[-n:]


# ---------------------------------------------------------------------------
# Whole-world state
# ---------------------------------------------------------------------------

@dataclass
class WorldState:
    """Everything the store owns; the unit of snapshot persistence."""
    probes: dict[str, Probe] = field(default_factory=dict)
    systems: dict[str, SolarSystem] = field(default_factory=dict)
    game_started_at: float = 0.0
    current_time: float = 0.0
    tick: int = 0
