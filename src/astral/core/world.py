"""
The entity store: single owner of probes, systems and the tick counter.

Every read returns a deep copy and every write happens under one
re-entrant lock, so pipelines running on worker threads never observe a
half-applied record. Mutations are grouped with ``atomic()``; when the
outermost block exits, the full state is handed to the ``SnapshotStore``.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import fields as dc_fields
from typing import Any, Callable, Iterator

import numpy as np

from astral.core.config import SimulationConfig
from astral.core.entities import (
    BodyType,
    CelestialBody,
    Experience,
    ExperienceEvent,
    Position,
    Probe,
    ProbeCapabilities,
    ProbeMemory,
    ProbeStatus,
    SolarSystem,
    WorldState,
)
from astral.core.errors import (
    DuplicateEntityError,
    EntityNotFoundError,
)
from astral.core.resources import ResourceVector

logger = logging.getLogger(__name__)

_PROBE_FIELDS = frozenset(f.name for f in dc_fields(Probe))


# ---------------------------------------------------------------------------
# Id generation
# ---------------------------------------------------------------------------

def make_id(rng: np.random.Generator | None = None) -> str:
    """Random UUID string; drawn from ``rng`` when one is given."""
    if rng is None:
        return str(uuid.uuid4())
    return str(uuid.UUID(bytes=rng.bytes(16), version=4))


def _coerce_probe_changes(changes: dict[str, Any]) -> dict[str, Any]:
    """Convert plain values to the types ``Probe`` stores.

    Raises ``ValueError`` for an unknown status and ``TypeError`` for a
    value of the wrong shape.
    """
    out = dict(changes)
    converters: dict[str, tuple[type, Callable[[Any], Any], type]] = {
        "status": (ProbeStatus, ProbeStatus, str),
        "position": (Position, Position.from_dict, dict),
        "capabilities": (ProbeCapabilities, ProbeCapabilities.from_dict, dict),
        # ResourceVector validates non-negativity on construction
        "resources": (ResourceVector, ResourceVector.from_dict, dict),
    }
    for name, (target, convert, raw_type) in converters.items():
        if name not in out:
            continue
        value = out[name]
        if isinstance(value, target):
            continue
        if not isinstance(value, raw_type):
            raise TypeError(f"invalid {name} value {value!r}")
        out[name] = convert(value)
    return out


# ---------------------------------------------------------------------------
# Seed state
# ---------------------------------------------------------------------------

def build_seed_state(
    config: SimulationConfig,
    rng: np.random.Generator | None = None,
    now: float | None = None,
) -> WorldState:
    """The starting world: Sol Prime with three bodies and the Genesis probe."""
    now = time.time() if now is None else now

    system_id = make_id(rng)
    star = CelestialBody(
        id=make_id(rng),
        name="Sol Prime A",
        type=BodyType.STAR,
        position=Position(0, 0, 0),
        resources=ResourceVector(energy=999999, hydrogen=999999),
        mass=1.989e30,
        radius=696340,
    )
    planet_one = CelestialBody(
        id=make_id(rng),
        name="Sol Prime I",
        type=BodyType.PLANET,
        position=Position(150, 0, 0),
        resources=ResourceVector(metal=5000, silicon=3000, hydrogen=100, rare_elements=200),
        mass=5.972e24,
        radius=6371,
    )
    planet_two = CelestialBody(
        id=make_id(rng),
        name="Sol Prime II",
        type=BodyType.PLANET,
        position=Position(230, 0, 0),
        resources=ResourceVector(metal=3000, silicon=6000, hydrogen=50, rare_elements=100),
        mass=6.39e23,
        radius=3389,
    )
    belt = CelestialBody(
        id=make_id(rng),
        name="Sol Prime Asteroid Belt",
        type=BodyType.ASTEROID_BELT,
        position=Position(400, 0, 0),
        resources=ResourceVector(metal=20000, silicon=15000, rare_elements=1000),
        mass=3.0e21,
        radius=0,
    )
    system = SolarSystem(
        id=system_id,
        name="Sol Prime",
        position=Position(0, 0, 0),
        star=star,
        bodies=[planet_one, planet_two, belt],
    )

    genesis_id = make_id(rng)
    memory = ProbeMemory(
        visited_systems=[system_id],
        discovered_resources={planet_one.id: planet_one.resources},
        experiences=[
            Experience(
                timestamp=now,
                event=ExperienceEvent.PROBE_AWAKENED.value,
                data={"message": "Genesis probe activated in Sol Prime system"},
            )
        ],
    )
    genesis = Probe(
        id=genesis_id,
        name="Genesis",
        generation=0,
        created_at=now,
        position=planet_one.position,
        current_system_id=system_id,
        resources=config.seed_resources_vector,
        capabilities=ProbeCapabilities.from_dict(config.base_capabilities),
        memory=memory,
    )
    system.discovered_by = genesis_id
    system.discovered_at = now

    return WorldState(
        probes={genesis_id: genesis},
        systems={system_id: system},
        game_started_at=now,
        current_time=now,
        tick=0,
    )


# ---------------------------------------------------------------------------
# WorldStore
# ---------------------------------------------------------------------------

class WorldStore:
    """Thread-safe owner of the world state.

    Parameters
    ----------
    config : SimulationConfig
        Seeds id generation and the initial state.
    snapshots : SnapshotStore | None
        Durable backend. ``None`` runs purely in memory.
    state : WorldState | None
        Explicit starting state. When omitted the store loads the stored
        snapshot, or builds the seed state if there is none.
    """

    def __init__(
        self,
        config: SimulationConfig | None = None,
        snapshots: Any = None,
        state: WorldState | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or SimulationConfig()
        self.clock = clock
        self._snapshots = snapshots
        self._lock = threading.RLock()
        self._depth = 0
        self._dirty = False
        self.degraded = False
        self.rng = np.random.default_rng(self.config.random_seed)
        self._seeded = self.config.random_seed is not None

        if state is None and snapshots is not None:
            state = snapshots.load_snapshot()
            if state is not None:
                logger.info(
                    "Restored world %s at tick %d (%d probes)",
                    snapshots.world_id, state.tick, len(state.probes),
                )
        if state is None:
            state = build_seed_state(self.config, self._id_rng(), now=self.clock())
            self._state = state
            self.persist()
        else:
            self._state = state

    def _id_rng(self) -> np.random.Generator | None:
        return self.rng if self._seeded else None

    def new_id(self) -> str:
        with self._lock:
            return make_id(self._id_rng())

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    @contextmanager
    def atomic(self) -> Iterator[WorldStore]:
        """Group mutations under one lock hold and one snapshot write.

        Re-entrant: nested blocks join the outer one.
        """
        with self._lock:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
                if self._depth == 0 and self._dirty:
                    self._dirty = False
                    self._save()

    def _touch(self) -> None:
        self._dirty = True

    def _save(self) -> None:
        if self._snapshots is None or not self.config.persist_every_mutation:
            return
        self._write_snapshot()

    def _write_snapshot(self) -> bool:
        if self._snapshots is None:
            return True
        ok = self._snapshots.save_snapshot(self._state)
        if not ok:
            if not self.degraded:
                logger.warning("Snapshot write failed; continuing in memory (degraded)")
            self.degraded = True
        return ok

    def persist(self) -> bool:
        """Write the full state now, regardless of pending mutations."""
        with self._lock:
            return self._write_snapshot()

    # ------------------------------------------------------------------
    # Probes
    # ------------------------------------------------------------------
    def _probe(self, probe_id: str) -> Probe:
        probe = self._state.probes.get(probe_id)
        if probe is None:
            raise EntityNotFoundError("probe", probe_id)
        return probe

    def get_probe(self, probe_id: str) -> Probe | None:
        with self._lock:
            probe = self._state.probes.get(probe_id)
            return copy.deepcopy(probe) if probe is not None else None

    def all_probes(self) -> list[Probe]:
        with self._lock:
            return [copy.deepcopy(p) for p in self._state.probes.values()]

    def add_probe(self, probe: Probe) -> None:
        with self.atomic():
            if probe.id in self._state.probes:
                raise DuplicateEntityError(f"probe '{probe.id}' already exists")
            self._state.probes[probe.id] = copy.deepcopy(probe)
            self._touch()

    def update_probe(self, probe_id: str, **changes: Any) -> Probe:
        """Merge ``changes`` into the stored probe and return a copy of it.

        Plain values are converted to their field types (``str`` status,
        ``dict`` position, capabilities or resources). Unknown ids raise
        ``EntityNotFoundError``; bad values are refused before anything is
        written.
        """
        unknown = set(changes) - _PROBE_FIELDS
        if unknown:
            raise AttributeError(f"Probe has no field(s): {', '.join(sorted(unknown))}")
        changes = _coerce_probe_changes(changes)
        with self.atomic():
            probe = self._probe(probe_id)
            for name, value in changes.items():
                setattr(probe, name, copy.deepcopy(value))
            self._touch()
            return copy.deepcopy(probe)

    def append_experience(
        self,
        probe_id: str,
        event: str | ExperienceEvent,
        data: dict[str, Any] | None = None,
        timestamp: float | None = None,
    ) -> Experience:
        if isinstance(event, ExperienceEvent):
            event = event.value
        experience = Experience(
            timestamp=self.clock() if timestamp is None else timestamp,
            event=event,
            data=copy.deepcopy(data or {}),
        )
        with self.atomic():
            self._probe(probe_id).memory.experiences.append(experience)
            self._touch()
        return copy.deepcopy(experience)

    def retire_probe(self, probe_id: str) -> None:
        """Mark a probe destroyed. Terminal."""
        with self.atomic():
            self._probe(probe_id).status = ProbeStatus.DESTROYED
            self._touch()

    # ------------------------------------------------------------------
    # Systems
    # ------------------------------------------------------------------
    def get_system(self, system_id: str) -> SolarSystem | None:
        with self._lock:
            system = self._state.systems.get(system_id)
            return copy.deepcopy(system) if system is not None else None

    def all_systems(self) -> list[SolarSystem]:
        with self._lock:
            return [copy.deepcopy(s) for s in self._state.systems.values()]

    def upsert_system(self, system: SolarSystem) -> None:
        with self.atomic():
            self._state.systems[system.id] = copy.deepcopy(system)
            self._touch()

    def set_body_resources(
        self, system_id: str, body_id: str, resources: ResourceVector,
    ) -> None:
        """Replace the remaining stock of one non-star body."""
        with self.atomic():
            system = self._state.systems.get(system_id)
            if system is None:
                raise EntityNotFoundError("system", system_id)
            body = system.find_body(body_id)
            if body is None:
                raise EntityNotFoundError("body", body_id)
            body.resources = resources
            self._touch()

    # ------------------------------------------------------------------
    # Whole-state operations
    # ------------------------------------------------------------------
    @property
    def tick(self) -> int:
        with self._lock:
            return self._state.tick

    @property
    def game_started_at(self) -> float:
        with self._lock:
            return self._state.game_started_at

    def advance_tick(self) -> int:
        """Increment the tick counter and stamp the current time."""
        with self.atomic():
            self._state.tick += 1
            self._state.current_time = self.clock()
            self._touch()
            return self._state.tick

    def state_copy(self) -> WorldState:
        with self._lock:
            return copy.deepcopy(self._state)

    def reset(self) -> WorldState:
        """Replace everything with a freshly built seed state."""
        with self.atomic():
            self.rng = np.random.default_rng(self.config.random_seed)
            self._state = build_seed_state(self.config, self._id_rng(), now=self.clock())
            self.degraded = False
            self._touch()
            logger.info("World reset to seed state")
            return copy.deepcopy(self._state)
