"""
Pydantic models for API request/response validation.
"""

from __future__ import annotations

from pydantic import BaseModel, Field
from typing import Any


# === Simulation ===

class StartRequest(BaseModel):
    max_ticks: int | None = Field(default=None, ge=1, le=1000)
    tick_duration_ms: int | None = Field(default=None, ge=0)


class StartResponse(BaseModel):
    started: bool
    max_ticks: int
    tick_duration_ms: int


class ResetResponse(BaseModel):
    reset: bool
    tick: int
    total_probes: int


class StatusResponse(BaseModel):
    tick: int
    total_probes: int
    active_probes: int
    probes_by_generation: dict[str, int]
    probes_by_status: dict[str, int]
    max_generation: int
    total_resources: dict[str, float]
    total_systems: int
    uptime_seconds: float
    game_started_at: float
    degraded: bool
    is_running: bool
    decision_provider: str
    last_error: str | None = None


# === Probes ===

class ProbeSummary(BaseModel):
    id: str
    name: str
    status: str
    generation: int
    current_system_id: str
    position: dict[str, float]
    resources: dict[str, float]
    parent_probe_id: str | None


class ExperienceResponse(BaseModel):
    timestamp: float
    event: str
    data: dict[str, Any]


class ProbeDetail(ProbeSummary):
    created_at: float
    capabilities: dict[str, float]
    known_probes: list[str]
    visited_systems: list[str]
    discovered_resources: dict[str, dict[str, float]]
    experiences: list[ExperienceResponse]


# === Systems ===

class SystemListItem(BaseModel):
    id: str
    name: str
    position: dict[str, float]
    body_count: int
    discovered_by: str | None


class SystemDetail(BaseModel):
    id: str
    name: str
    position: dict[str, float]
    star: dict[str, str]
    body_count: int
    bodies: list[dict[str, Any]]
    total_resources: dict[str, float]
    discovered_by: str | None
    discovered_at: float | None
