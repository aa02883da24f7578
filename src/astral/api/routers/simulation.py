"""Simulation control endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from astral.api.schemas import ResetResponse, StartRequest, StartResponse, StatusResponse

router = APIRouter()


@router.get("/status", response_model=StatusResponse)
def get_status(request: Request):
    sim = request.app.state.simulation
    return sim.status()


@router.post("/start", response_model=StartResponse)
def start_simulation(req: StartRequest, request: Request):
    sim = request.app.state.simulation
    max_ticks = req.max_ticks if req.max_ticks is not None else sim.config.max_ticks
    tick_ms = req.tick_duration_ms if req.tick_duration_ms is not None else sim.config.tick_duration_ms
    if not sim.start_async(max_ticks, tick_ms):
        raise HTTPException(status_code=409, detail="Simulation is already running")
    return {"started": True, "max_ticks": max_ticks, "tick_duration_ms": tick_ms}


@router.post("/reset", response_model=ResetResponse)
def reset_simulation(request: Request):
    sim = request.app.state.simulation
    if not sim.reset():
        raise HTTPException(status_code=409, detail="Cannot reset while the simulation is running")
    status = sim.status()
    return {"reset": True, "tick": status["tick"], "total_probes": status["total_probes"]}


@router.get("/report")
def get_report(request: Request, include_log: bool = False):
    sim = request.app.state.simulation
    if sim.last_report is None:
        raise HTTPException(status_code=404, detail="No completed run yet")
    report = sim.last_report.to_dict()
    if not include_log:
        report["log"] = [
            {k: t[k] for k in ("tick", "probe_count", "successful", "failed", "duration_seconds")}
            for t in report["log"]
        ]
    return report
