"""Tests for read-only world views and the event sinks."""

from __future__ import annotations

import logging

from astral.core.config import SimulationConfig
from astral.core.entities import ProbeStatus
from astral.core.events import LoggingEventSink, NullEventSink, RecordingEventSink
from astral.core.queries import (
    environment_snapshot,
    simulation_status,
    system_summary,
    world_totals,
)
from astral.core.world import WorldStore


def _make_store(**overrides) -> WorldStore:
    return WorldStore(SimulationConfig(random_seed=7, db_path=None, **overrides), clock=lambda: 1000.0)


class TestEnvironment:
    def test_genesis_sits_on_first_planet(self):
        store = _make_store()
        probe = store.all_probes()[0]
        env = environment_snapshot(probe, store.get_system(probe.current_system_id))
        assert env.system_name == "Sol Prime"
        assert env.star_name == "Sol Prime A"
        assert env.closest.name == "Sol Prime I"
        assert env.closest.distance == 0
        assert env.closest.within_harvest_range

    def test_distance_scale_applies(self):
        store = _make_store(distance_scale=0.5)
        probe = store.all_probes()[0]
        env = environment_snapshot(probe, store.get_system(probe.current_system_id), scale=0.5)
        second = [b for b in env.bodies if b.name == "Sol Prime II"][0]
        assert second.distance == 40.0

    def test_unknown_system_is_empty(self):
        store = _make_store()
        env = environment_snapshot(store.all_probes()[0], None)
        assert env.bodies == []
        assert env.closest is None


class TestStatus:
    def test_counts(self):
        store = _make_store()
        status = simulation_status(store, now=1060.0)
        assert status["total_probes"] == 1
        assert status["probes_by_status"] == {"active": 1}
        assert status["uptime_seconds"] == 60.0
        assert status["max_generation"] == 0

    def test_destroyed_probes_excluded_from_totals(self):
        store = _make_store()
        probe = store.all_probes()[0]
        store.update_probe(probe.id, status=ProbeStatus.DESTROYED)
        status = simulation_status(store, now=1000.0)
        assert status["active_probes"] == 0
        assert status["total_resources"]["energy"] == 0
        assert world_totals(store.all_probes())["probe_count"] == 0

    def test_system_summary_unknown(self):
        assert system_summary(_make_store(), "missing") is None


class TestEvents:
    def test_recording_sink(self):
        sink = RecordingEventSink()
        sink.emit("tick.started", tick=1)
        sink.emit("tick.completed", tick=1)
        assert sink.kinds() == ["tick.started", "tick.completed"]
        assert sink.of_kind("tick.completed")[0].fields["tick"] == 1

    def test_logging_sink_warns_on_failures(self, caplog):
        sink = LoggingEventSink()
        with caplog.at_level(logging.DEBUG, logger="astral.core.events"):
            sink.emit("action.failed", probe_id="p1", reason="too_far")
            sink.emit("tick.completed", tick=2)
        levels = {r.getMessage().split()[0]: r.levelno for r in caplog.records}
        assert levels["action.failed"] == logging.WARNING
        assert levels["tick.completed"] < logging.WARNING

    def test_null_sink_discards(self, caplog):
        with caplog.at_level(logging.DEBUG):
            NullEventSink().emit("pipeline.failed", probe_id="p1")
        assert caplog.records == []
