"""Tests for the entity store and the seed state."""

from __future__ import annotations

import threading

import pytest

from astral.core.config import SimulationConfig
from astral.core.entities import ExperienceEvent, Position, ProbeCapabilities, ProbeStatus
from astral.core.errors import (
    DuplicateEntityError,
    EntityNotFoundError,
    InsufficientResourcesError,
)
from astral.core.persistence import compress_state, decompress_state
from astral.core.resources import ResourceVector
from astral.core.world import WorldStore, build_seed_state


def _make_config(**overrides) -> SimulationConfig:
    defaults = {"random_seed": 42, "db_path": None}
    defaults.update(overrides)
    return SimulationConfig(**defaults)


def _make_store(**overrides) -> WorldStore:
    return WorldStore(_make_config(**overrides))


def _genesis(store: WorldStore):
    return store.all_probes()[0]


class FakeSnapshots:
    """In-memory stand-in recording every save."""

    world_id = "test"

    def __init__(self, fail: bool = False, stored=None):
        self.fail = fail
        self.saved = []
        self.stored = stored

    def load_snapshot(self):
        return self.stored

    def save_snapshot(self, state):
        if self.fail:
            return False
        self.saved.append(state.tick)
        return True


class TestSeedState:
    def test_layout(self):
        state = build_seed_state(_make_config(), now=1000.0)
        assert len(state.systems) == 1
        assert len(state.probes) == 1
        system = next(iter(state.systems.values()))
        assert system.name == "Sol Prime"
        assert system.star.name == "Sol Prime A"
        assert [b.name for b in system.bodies] == [
            "Sol Prime I", "Sol Prime II", "Sol Prime Asteroid Belt",
        ]

    def test_genesis_probe(self):
        state = build_seed_state(_make_config(), now=1000.0)
        probe = next(iter(state.probes.values()))
        system = next(iter(state.systems.values()))
        assert probe.name == "Genesis"
        assert probe.generation == 0
        assert probe.resources == ResourceVector(1000, 100, 100, 100, 10)
        assert probe.position == system.bodies[0].position
        assert probe.memory.visited_systems == [system.id]
        assert system.bodies[0].id in probe.memory.discovered_resources
        assert [e.event for e in probe.memory.experiences] == ["probe_awakened"]

    def test_seeded_ids_are_deterministic(self):
        import numpy as np
        a = build_seed_state(_make_config(), np.random.default_rng(1), now=0.0)
        b = build_seed_state(_make_config(), np.random.default_rng(1), now=0.0)
        assert list(a.probes) == list(b.probes)
        assert list(a.systems) == list(b.systems)


class TestProbeAccess:
    def test_get_returns_copy(self):
        store = _make_store()
        probe = _genesis(store)
        probe.name = "Mutated"
        probe.memory.known_probes.append("x")
        fresh = store.get_probe(probe.id)
        assert fresh.name == "Genesis"
        assert fresh.memory.known_probes == []

    def test_get_unknown_is_none(self):
        assert _make_store().get_probe("nope") is None

    def test_reread_is_idempotent(self):
        store = _make_store()
        pid = _genesis(store).id
        assert store.get_probe(pid) == store.get_probe(pid)

    def test_update_merges_fields(self):
        store = _make_store()
        pid = _genesis(store).id
        updated = store.update_probe(pid, status=ProbeStatus.DAMAGED)
        assert updated.status == ProbeStatus.DAMAGED
        assert store.get_probe(pid).resources.energy == 1000

    def test_update_unknown_raises(self):
        store = _make_store()
        with pytest.raises(EntityNotFoundError):
            store.update_probe("ghost", status=ProbeStatus.ACTIVE)

    def test_update_negative_resources_rejected(self):
        store = _make_store()
        pid = _genesis(store).id
        with pytest.raises(InsufficientResourcesError):
            store.update_probe(pid, resources={"energy": -5})
        assert store.get_probe(pid).resources.energy == 1000

    def test_update_unknown_field(self):
        store = _make_store()
        with pytest.raises(AttributeError):
            store.update_probe(_genesis(store).id, wings=2)

    def test_update_converts_plain_values(self):
        store = _make_store()
        pid = _genesis(store).id
        store.update_probe(
            pid,
            status="damaged",
            position={"x": 1.0, "y": 2.0, "z": 3.0},
            capabilities={**store.get_probe(pid).capabilities.to_dict(), "sensor_range": 10},
        )
        probe = store.get_probe(pid)
        assert probe.status is ProbeStatus.DAMAGED
        assert isinstance(probe.position, Position)
        assert probe.position.z == 3.0
        assert isinstance(probe.capabilities, ProbeCapabilities)
        assert probe.capabilities.sensor_range == 10

    def test_update_converted_values_serialize(self):
        store = _make_store()
        pid = _genesis(store).id
        store.update_probe(pid, status="traveling", position={"x": 5, "y": 0, "z": 0})
        restored = decompress_state(compress_state(store.state_copy()))
        assert restored.probes[pid].status is ProbeStatus.TRAVELING
        assert restored.probes[pid].position.x == 5

    def test_update_bad_values_rejected(self):
        store = _make_store()
        pid = _genesis(store).id
        with pytest.raises(ValueError):
            store.update_probe(pid, status="melted")
        with pytest.raises(TypeError):
            store.update_probe(pid, position=(1, 2, 3))
        with pytest.raises(TypeError):
            store.update_probe(pid, resources=42)
        assert store.get_probe(pid).status is ProbeStatus.ACTIVE

    def test_add_duplicate_raises(self):
        store = _make_store()
        with pytest.raises(DuplicateEntityError):
            store.add_probe(_genesis(store))

    def test_append_experience(self):
        store = _make_store()
        pid = _genesis(store).id
        store.append_experience(pid, ExperienceEvent.WAITED, {"reasoning": "r"})
        events = [e.event for e in store.get_probe(pid).memory.experiences]
        assert events[-1] == "waited"

    def test_retire_is_terminal_status(self):
        store = _make_store()
        pid = _genesis(store).id
        store.retire_probe(pid)
        probe = store.get_probe(pid)
        assert probe.is_destroyed
        assert len(store.all_probes()) == 1


class TestSystems:
    def test_upsert_and_get(self):
        store = _make_store()
        system = store.all_systems()[0]
        system.name = "Renamed"
        assert store.get_system(system.id).name == "Sol Prime"
        store.upsert_system(system)
        assert store.get_system(system.id).name == "Renamed"

    def test_set_body_resources_unknown(self):
        store = _make_store()
        system = store.all_systems()[0]
        with pytest.raises(EntityNotFoundError):
            store.set_body_resources(system.id, "nope", ResourceVector.zero())


class TestAtomicAndPersistence:
    def test_one_snapshot_per_outer_block(self):
        snaps = FakeSnapshots()
        store = WorldStore(_make_config(), snapshots=snaps)
        baseline = len(snaps.saved)
        pid = _genesis(store).id
        with store.atomic():
            store.update_probe(pid, status=ProbeStatus.TRAVELING)
            store.append_experience(pid, "travel_completed")
            store.update_probe(pid, status=ProbeStatus.ACTIVE)
        assert len(snaps.saved) == baseline + 1

    def test_reads_do_not_snapshot(self):
        snaps = FakeSnapshots()
        store = WorldStore(_make_config(), snapshots=snaps)
        baseline = len(snaps.saved)
        store.all_probes()
        store.state_copy()
        assert len(snaps.saved) == baseline

    def test_failed_save_sets_degraded(self):
        snaps = FakeSnapshots(fail=True)
        store = WorldStore(_make_config(), snapshots=snaps)
        pid = _genesis(store).id
        store.update_probe(pid, status=ProbeStatus.DAMAGED)
        assert store.degraded
        # in-memory mutation still stands
        assert store.get_probe(pid).status == ProbeStatus.DAMAGED

    def test_loads_existing_snapshot(self):
        state = build_seed_state(_make_config(), now=5.0)
        state.tick = 17
        store = WorldStore(_make_config(), snapshots=FakeSnapshots(stored=state))
        assert store.tick == 17

    def test_advance_tick(self):
        store = _make_store()
        assert store.tick == 0
        assert store.advance_tick() == 1
        assert store.state_copy().tick == 1

    def test_reset_restores_seed(self):
        store = _make_store()
        pid = _genesis(store).id
        store.update_probe(pid, resources=ResourceVector.zero())
        store.advance_tick()
        store.reset()
        assert store.tick == 0
        assert _genesis(store).resources.energy == 1000

    def test_concurrent_updates_are_serialized(self):
        store = _make_store()
        pid = _genesis(store).id

        def bump():
            for _ in range(50):
                with store.atomic():
                    p = store.get_probe(pid)
                    store.update_probe(
                        pid, resources=p.resources + ResourceVector(energy=1),
                    )

        threads = [threading.Thread(target=bump) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert store.get_probe(pid).resources.energy == 1000 + 200
