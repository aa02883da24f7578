"""
Master configuration for the Astral Sandbox.

Every economic constant, timeout and seed value lives here so that the
engine, the executors and the tests agree on one source of truth.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any

from astral.core.resources import ResourceVector


@dataclass
class SimulationConfig:
    """
    All tunable parameters of a probe simulation.

    Resource vectors are stored as plain dicts so the config serializes
    cleanly; use the ``*_vector`` properties to get ``ResourceVector``
    instances. ``to_dict()`` / ``from_dict()`` round-trip the whole object.
    """

    # === Identity ===
    simulation_name: str = "astral-echo"
    random_seed: int | None = None

    # === Clock ===
    max_ticks: int = 100                # 1..1000
    tick_duration_ms: int = 5000        # sleep between ticks
    max_actions_per_tick: int = 3       # 1..10 proposals executed per probe

    # === Economy ===
    solar_energy_per_tick: float = 20.0
    energy_per_distance: float = 2.0
    harvest_proximity: float = 1.0
    harvest_duration_min: int = 1
    harvest_duration_max: int = 100
    replication_cost: dict[str, float] = field(default_factory=lambda: {
        "energy": 1000, "metal": 500, "silicon": 300,
        "hydrogen": 200, "rare_elements": 50,
    })
    child_starting_resources: dict[str, float] = field(default_factory=lambda: {
        "energy": 500, "metal": 50, "silicon": 50,
        "hydrogen": 50, "rare_elements": 5,
    })
    seed_probe_resources: dict[str, float] = field(default_factory=lambda: {
        "energy": 1000, "metal": 100, "silicon": 100,
        "hydrogen": 100, "rare_elements": 10,
    })
    base_capabilities: dict[str, float] = field(default_factory=lambda: {
        "max_speed": 0.1,
        "harvest_rate": 10,
        "sensor_range": 50,
        "communication_range": 100,
        "storage_capacity": 5000,
    })

    # === Geometry ===
    # Multiplies every raw Euclidean distance: travel cost, sensor range,
    # harvest proximity and display all use the scaled value.
    distance_scale: float = 1.0
    distance_unit_label: str = "units"

    # === Decision context ===
    recent_experience_window: int = 5
    decision_provider: str = "utility"   # wait | utility | llm
    decision_temperature: float = 0.5
    llm_provider: str = "anthropic"      # anthropic | ollama
    llm_model: str | None = None
    llm_max_tokens: int = 1024

    # === Timeouts (seconds) ===
    decision_timeout: float = 60.0
    pipeline_timeout: float = 300.0
    persistence_timeout: float = 5.0
    max_workers: int = 8

    # === Persistence ===
    db_path: str | None = "data/astral.db"
    world_id: str = "default"
    persist_every_mutation: bool = True

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------
    @property
    def replication_cost_vector(self) -> ResourceVector:
        return ResourceVector.from_dict(self.replication_cost)

    @property
    def child_resources_vector(self) -> ResourceVector:
        return ResourceVector.from_dict(self.child_starting_resources)

    @property
    def seed_resources_vector(self) -> ResourceVector:
        return ResourceVector.from_dict(self.seed_probe_resources)

    def clamp_max_actions(self, requested: int | None = None) -> int:
        value = self.max_actions_per_tick if requested is None else requested
        return max(1, min(10, int(value)))

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        d: dict[str, Any] = {}
        for k, v in self.__dict__.items():
            if k.startswith("_"):
                continue
            d[k] = v
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SimulationConfig:
        return cls(**{k: v for k, v in d.items() if not k.startswith("_")})

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    @classmethod
    def from_json(cls, s: str) -> SimulationConfig:
        return cls.from_dict(json.loads(s))

    @classmethod
    def from_env(cls, **overrides: Any) -> SimulationConfig:
        """Build a config from ``ASTRAL_*`` environment variables.

        Only scalar fields are read; explicit ``overrides`` win.
        """
        config = cls()
        values: dict[str, Any] = {}
        for k, default in config.to_dict().items():
            raw = os.environ.get(f"ASTRAL_{k.upper()}")
            if raw is None or isinstance(default, dict):
                continue
            values[k] = _coerce(raw, default)
        values.update(overrides)
        return cls.from_dict({**config.to_dict(), **values})

    def diff(self, other: SimulationConfig) -> dict[str, tuple[Any, Any]]:
        """Return parameters that differ between two configs."""
        diffs: dict[str, tuple[Any, Any]] = {}
        for k in self.to_dict():
            v1 = getattr(self, k)
            v2 = getattr(other, k)
            if v1 != v2:
                diffs[k] = (v1, v2)
        return diffs


def _coerce(raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if default is None:
        # Optional fields: seed is an int, paths/models are strings
        if raw.strip().lower() in ("", "none", "null"):
            return None
        try:
            return int(raw)
        except ValueError:
            return raw
    return raw
