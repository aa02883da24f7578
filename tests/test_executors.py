"""Tests for the action executors against a seeded world."""

from __future__ import annotations

import math

import pytest

from astral.core.actions import ExploreAction, HarvestAction, TravelAction, WaitAction
from astral.core.config import SimulationConfig
from astral.core.entities import Position, ProbeStatus
from astral.core.errors import EntityNotFoundError
from astral.core.executors import ActionExecutor
from astral.core.resources import ResourceVector, add, total
from astral.core.world import WorldStore


def _make_world(**overrides):
    defaults = {"random_seed": 42, "db_path": None}
    defaults.update(overrides)
    config = SimulationConfig(**defaults)
    store = WorldStore(config)
    return store, ActionExecutor(store, config)


def _genesis(store):
    return store.all_probes()[0]


def _body(store, name):
    system = store.all_systems()[0]
    return next(b for b in system.bodies if b.name == name)


def _events(store, probe_id):
    return [e.event for e in store.get_probe(probe_id).memory.experiences]


class TestTravel:
    def test_travel_spends_energy_and_moves(self):
        store, ex = _make_world()
        probe = _genesis(store)
        target = _body(store, "Sol Prime II")
        result = ex.travel(probe.id, target.position, target.name)
        assert result.ok
        assert result.data["distance"] == pytest.approx(80.0)
        assert result.data["energy_used"] == 160
        assert result.data["travel_time"] == math.ceil(80.0 / 0.1)
        after = store.get_probe(probe.id)
        assert after.resources.energy == 840
        assert after.position == target.position
        assert after.status == ProbeStatus.ACTIVE
        assert _events(store, probe.id)[-1] == "travel_completed"

    def test_insufficient_energy(self):
        store, ex = _make_world()
        probe = _genesis(store)
        store.update_probe(probe.id, resources=ResourceVector(energy=100))
        target = _body(store, "Sol Prime II")
        result = ex.travel(probe.id, target.position)
        assert not result.ok
        assert result.error_reason == "insufficient_energy"
        after = store.get_probe(probe.id)
        assert after.position == probe.position
        assert after.resources.energy == 100
        exp = after.memory.experiences[-1]
        assert exp.event == "travel_failed"
        assert exp.data["reason"] == "insufficient_energy"

    def test_distance_scale_applies_to_cost(self):
        store, ex = _make_world(distance_scale=2.0)
        probe = _genesis(store)
        target = _body(store, "Sol Prime II")
        result = ex.travel(probe.id, target.position)
        assert result.data["energy_used"] == 320

    def test_travel_to_open_space(self):
        store, ex = _make_world()
        probe = _genesis(store)
        result = ex.travel(probe.id, Position(150, 3, 4))
        assert result.ok
        assert result.data["energy_used"] == 10


class TestScan:
    def test_scan_in_range(self):
        store, ex = _make_world()
        probe = _genesis(store)
        body = _body(store, "Sol Prime I")
        result = ex.scan(probe.id, body.id)
        assert result.ok
        assert store.get_probe(probe.id).memory.discovered_resources[body.id] == body.resources
        assert _events(store, probe.id)[-1] == "resources_scanned"

    def test_scan_out_of_range(self):
        store, ex = _make_world()
        probe = _genesis(store)
        body = _body(store, "Sol Prime II")
        result = ex.scan(probe.id, body.id)
        assert not result.ok
        assert result.error_reason == "out_of_range"
        assert body.id not in store.get_probe(probe.id).memory.discovered_resources
        assert _events(store, probe.id)[-1] == "scan_resources_failed"

    def test_scan_unknown_body(self):
        store, ex = _make_world()
        with pytest.raises(EntityNotFoundError):
            ex.scan(_genesis(store).id, "missing")


class TestHarvest:
    def test_harvest_conserves_resources(self):
        store, ex = _make_world()
        probe = _genesis(store)
        body = _body(store, "Sol Prime I")
        result = ex.harvest(probe.id, body.id, 5)
        assert result.ok

        after_probe = store.get_probe(probe.id)
        after_body = _body(store, "Sol Prime I")
        gained = after_probe.resources.as_array() - probe.resources.as_array()
        lost = body.resources.as_array() - after_body.resources.as_array()
        assert (gained == lost).all()
        assert (lost <= body.resources.as_array()).all()
        assert result.data["harvested"]["metal"] == 50
        assert result.data["harvested"]["energy"] == 0
        assert after_probe.status == ProbeStatus.ACTIVE
        assert _events(store, probe.id)[-1] == "resources_harvested"

    def test_harvest_capped_by_stock(self):
        store, ex = _make_world()
        probe = _genesis(store)
        body = _body(store, "Sol Prime I")
        ex.harvest(probe.id, body.id, 100)
        after_body = _body(store, "Sol Prime I")
        assert after_body.resources.hydrogen == 0
        assert after_body.resources.rare_elements == 0
        assert after_body.resources.metal == 4000

    def test_too_far_leaves_state_unchanged(self):
        store, ex = _make_world()
        probe = _genesis(store)
        body = _body(store, "Sol Prime II")
        before = store.state_copy()
        result = ex.harvest(probe.id, body.id, 5)
        assert not result.ok
        assert result.error_reason == "too_far"
        after = store.state_copy()
        assert after.systems == before.systems
        p_before, p_after = before.probes[probe.id], after.probes[probe.id]
        assert p_after.resources == p_before.resources
        assert p_after.position == p_before.position
        assert p_after.memory.experiences[-1].event == "harvest_failed"
        assert len(p_after.memory.experiences) == len(p_before.memory.experiences) + 1

    def test_storage_full(self):
        store, ex = _make_world()
        probe = _genesis(store)
        store.update_probe(probe.id, resources=ResourceVector(energy=4900))
        body = _body(store, "Sol Prime I")
        result = ex.harvest(probe.id, body.id, 10)
        assert not result.ok
        assert result.error_reason == "storage_full"
        assert _body(store, "Sol Prime I").resources == body.resources

    @pytest.mark.parametrize("duration", [0, 101])
    def test_invalid_duration(self, duration):
        store, ex = _make_world()
        probe = _genesis(store)
        body = _body(store, "Sol Prime I")
        result = ex.harvest(probe.id, body.id, duration)
        assert result.error_reason == "invalid_duration"


class TestManufacture:
    def test_exact_cost(self):
        store, ex = _make_world()
        config = store.config
        parent = _genesis(store)
        store.update_probe(parent.id, resources=config.replication_cost_vector)

        result = ex.manufacture(parent.id, "Echo")
        assert result.ok
        child = store.get_probe(result.data["new_probe_id"])
        after_parent = store.get_probe(parent.id)

        assert child.generation == parent.generation + 1
        assert child.name == "Echo"
        assert child.parent_probe_id == parent.id
        assert child.resources == config.child_resources_vector
        assert child.position == parent.position
        assert total(after_parent.resources) == 0
        assert after_parent.status == ProbeStatus.ACTIVE
        assert child.id in after_parent.memory.known_probes
        assert parent.id in child.memory.known_probes
        assert child.memory.visited_systems == parent.memory.visited_systems
        assert [e.event for e in child.memory.experiences] == ["probe_manufactured"]
        assert after_parent.memory.experiences[-1].event == "probe_manufactured"

    def test_child_memory_is_a_copy(self):
        store, ex = _make_world()
        parent = _genesis(store)
        store.update_probe(
            parent.id, resources=add(parent.resources, store.config.replication_cost_vector),
        )
        child_id = ex.manufacture(parent.id, "Echo").data["new_probe_id"]
        child = store.get_probe(child_id)
        child.memory.visited_systems.append("elsewhere")
        store.update_probe(child_id, memory=child.memory)
        assert "elsewhere" not in store.get_probe(parent.id).memory.visited_systems

    def test_insufficient_resources(self):
        store, ex = _make_world()
        parent = _genesis(store)
        result = ex.manufacture(parent.id, "Echo")
        assert not result.ok
        assert result.error_reason == "insufficient_resources"
        assert len(store.all_probes()) == 1
        assert store.get_probe(parent.id).resources == parent.resources
        assert _events(store, parent.id)[-1] == "manufacturing_failed"


class TestMisc:
    def test_wait_and_explore(self):
        store, ex = _make_world()
        pid = _genesis(store).id
        assert ex.wait(pid, "resting").ok
        assert ex.explore(pid, "looking").ok
        assert _events(store, pid)[-2:] == ["waited", "explored_system"]

    def test_destroyed_probe_cannot_act(self):
        store, ex = _make_world()
        pid = _genesis(store).id
        store.retire_probe(pid)
        result = ex.wait(pid)
        assert not result.ok
        assert result.error_reason == "probe_destroyed"

    def test_unknown_probe(self):
        _, ex = _make_world()
        with pytest.raises(EntityNotFoundError):
            ex.wait("ghost")

    def test_execute_resolves_travel_target(self):
        store, ex = _make_world()
        pid = _genesis(store).id
        target = _body(store, "Sol Prime II")
        result = ex.execute(pid, TravelAction(body_id=target.id))
        assert result.ok
        assert store.get_probe(pid).position == target.position

    def test_execute_dispatch(self):
        store, ex = _make_world()
        pid = _genesis(store).id
        body = _body(store, "Sol Prime I")
        assert ex.execute(pid, HarvestAction(body_id=body.id, duration=1)).ok
        assert ex.execute(pid, WaitAction()).ok
        assert ex.execute(pid, ExploreAction()).ok
