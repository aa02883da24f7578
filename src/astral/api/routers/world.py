"""Probe and solar-system lookup endpoints (read-only)."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from astral.api.schemas import ProbeDetail, ProbeSummary, SystemDetail, SystemListItem
from astral.core.entities import Probe
from astral.core.queries import system_summary

router = APIRouter()


def _probe_summary(probe: Probe) -> dict:
    return {
        "id": probe.id,
        "name": probe.name,
        "status": probe.status.value,
        "generation": probe.generation,
        "current_system_id": probe.current_system_id,
        "position": probe.position.to_dict(),
        "resources": probe.resources.to_dict(),
        "parent_probe_id": probe.parent_probe_id,
    }


@router.get("/probes", response_model=list[ProbeSummary])
def list_probes(request: Request, status: str | None = None, generation: int | None = None):
    store = request.app.state.simulation.store
    probes = store.all_probes()
    if status is not None:
        probes = [p for p in probes if p.status.value == status]
    if generation is not None:
        probes = [p for p in probes if p.generation == generation]
    return [_probe_summary(p) for p in probes]


@router.get("/probes/{probe_id}", response_model=ProbeDetail)
def get_probe(probe_id: str, request: Request, experiences: int = 20):
    store = request.app.state.simulation.store
    probe = store.get_probe(probe_id)
    if probe is None:
        raise HTTPException(status_code=404, detail=f"Probe '{probe_id}' not found")
    memory = probe.memory
    return {
        **_probe_summary(probe),
        "created_at": probe.created_at,
        "capabilities": probe.capabilities.to_dict(),
        "known_probes": memory.known_probes,
        "visited_systems": memory.visited_systems,
        "discovered_resources": {k: v.to_dict() for k, v in memory.discovered_resources.items()},
        "experiences": [
            {"timestamp": e.timestamp, "event": e.event, "data": e.data}
            for e in probe.recent_experiences(max(0, experiences))
        ],
    }


@router.get("/systems", response_model=list[SystemListItem])
def list_systems(request: Request):
    store = request.app.state.simulation.store
    return [
        {
            "id": s.id,
            "name": s.name,
            "position": s.position.to_dict(),
            "body_count": len(s.bodies),
            "discovered_by": s.discovered_by,
        }
        for s in store.all_systems()
    ]


@router.get("/systems/{system_id}", response_model=SystemDetail)
def get_system(system_id: str, request: Request):
    summary = system_summary(request.app.state.simulation.store, system_id)
    if summary is None:
        raise HTTPException(status_code=404, detail=f"System '{system_id}' not found")
    return summary
