"""Tests for the REST API endpoints."""

from __future__ import annotations

import os
import threading

import pytest
from fastapi.testclient import TestClient

from astral.api.app import create_app
from astral.core.config import SimulationConfig
from astral.core.decision import ScriptedDecisionProvider, WaitDecisionProvider
from astral.core.simulation import Simulation


def _make_sim(provider=None) -> Simulation:
    return Simulation(
        SimulationConfig(db_path=None, random_seed=42, tick_duration_ms=0),
        provider=provider or WaitDecisionProvider(),
        sleep=lambda s: None,
    )


@pytest.fixture
def sim():
    simulation = _make_sim()
    yield simulation
    simulation.close()


@pytest.fixture
def client(sim):
    return TestClient(create_app(simulation_obj=sim))


@pytest.fixture
def genesis_id(client):
    return client.get("/api/probes").json()[0]["id"]


# ---------------------------------------------------------------------------
# Health & status
# ---------------------------------------------------------------------------

class TestHealth:
    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestStatus:
    def test_initial_status(self, client):
        resp = client.get("/api/simulation/status")
        assert resp.status_code == 200
        data = resp.json()
        assert data["tick"] == 0
        assert data["total_probes"] == 1
        assert data["active_probes"] == 1
        assert data["probes_by_generation"] == {"0": 1}
        assert data["total_resources"]["energy"] == 1000
        assert data["is_running"] is False
        assert data["decision_provider"] == "wait"


# ---------------------------------------------------------------------------
# Probes
# ---------------------------------------------------------------------------

class TestProbes:
    def test_list(self, client):
        resp = client.get("/api/probes")
        assert resp.status_code == 200
        probes = resp.json()
        assert len(probes) == 1
        assert probes[0]["name"] == "Genesis"
        assert probes[0]["generation"] == 0
        assert probes[0]["parent_probe_id"] is None

    def test_filters(self, client):
        assert len(client.get("/api/probes?status=active").json()) == 1
        assert client.get("/api/probes?status=destroyed").json() == []
        assert client.get("/api/probes?generation=1").json() == []

    def test_detail(self, client, genesis_id):
        resp = client.get(f"/api/probes/{genesis_id}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["id"] == genesis_id
        assert data["capabilities"]["storage_capacity"] == 5000
        assert data["experiences"][0]["event"] == "probe_awakened"
        assert len(data["discovered_resources"]) == 1

    def test_detail_not_found(self, client):
        resp = client.get("/api/probes/nope")
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Systems
# ---------------------------------------------------------------------------

class TestSystems:
    def test_list(self, client):
        systems = client.get("/api/systems").json()
        assert len(systems) == 1
        assert systems[0]["name"] == "Sol Prime"
        assert systems[0]["body_count"] == 3

    def test_detail_totals_include_star(self, client):
        system_id = client.get("/api/systems").json()[0]["id"]
        data = client.get(f"/api/systems/{system_id}").json()
        assert data["star"]["name"] == "Sol Prime A"
        totals = data["total_resources"]
        assert totals["metal"] == 28000
        assert totals["energy"] == 999999
        assert totals["hydrogen"] == 999999 + 150

    def test_detail_not_found(self, client):
        assert client.get("/api/systems/nope").status_code == 404


# ---------------------------------------------------------------------------
# Simulation control
# ---------------------------------------------------------------------------

class TestSimulationControl:
    def test_report_missing_before_run(self, client):
        assert client.get("/api/simulation/report").status_code == 404

    def test_start_then_report(self, client, sim):
        resp = client.post("/api/simulation/start", json={"max_ticks": 3, "tick_duration_ms": 0})
        assert resp.status_code == 200
        assert resp.json() == {"started": True, "max_ticks": 3, "tick_duration_ms": 0}
        sim.join(timeout=10)

        report = client.get("/api/simulation/report").json()
        assert report["ticks_run"] == 3
        assert report["stopped_reason"] == "max_ticks"
        assert "outcomes" not in report["log"][0]

        full = client.get("/api/simulation/report?include_log=true").json()
        assert full["log"][0]["outcomes"][0]["success"] is True

        assert client.get("/api/simulation/status").json()["tick"] == 3

    def test_start_rejects_bad_tick_count(self, client):
        assert client.post("/api/simulation/start", json={"max_ticks": 0}).status_code == 422
        assert client.post("/api/simulation/start", json={"max_ticks": 5000}).status_code == 422

    def test_reset(self, client, sim):
        sim.start(max_ticks=2)
        resp = client.post("/api/simulation/reset")
        assert resp.status_code == 200
        assert resp.json() == {"reset": True, "tick": 0, "total_probes": 1}


class TestConflicts:
    def test_start_and_reset_conflict_while_running(self):
        gate = threading.Event()

        def _hold(context):
            gate.wait(5)
            return WaitDecisionProvider().decide(context)

        sim = _make_sim(ScriptedDecisionProvider(default=_hold))
        client = TestClient(create_app(simulation_obj=sim))
        try:
            assert client.post("/api/simulation/start", json={"max_ticks": 1}).status_code == 200
            assert client.post("/api/simulation/start", json={"max_ticks": 1}).status_code == 409
            assert client.post("/api/simulation/reset").status_code == 409
            assert client.get("/api/simulation/status").json()["is_running"] is True
        finally:
            gate.set()
            sim.join(timeout=10)
            sim.close()


class TestDefaultApp:
    def test_configured_from_environment(self):
        app = create_app()
        sim = app.state.simulation
        with TestClient(app) as client:
            assert sim.config.db_path == os.environ["ASTRAL_DB_PATH"]
            assert sim.snapshots is not None and sim.snapshots.available
            status = client.get("/api/simulation/status").json()
            assert status["degraded"] is False
            assert status["total_probes"] >= 1
        # shutdown closes the database
        assert not sim.snapshots.available
