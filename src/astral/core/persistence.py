"""
SQLite-backed snapshot persistence for the Astral Sandbox.

The whole ``WorldState`` is serialized to a self-describing JSON document,
zlib-compressed, and stored as one row per world id. Loading a missing or
corrupt snapshot returns ``None`` so the caller can rebuild the seed state.

Persistence failures are logged as warnings and never crash the
simulation: the store keeps running in memory and flags degraded
durability.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import zlib
from datetime import datetime, timezone
from typing import Any

import numpy as np

from astral.core.entities import (
    BodyType,
    CelestialBody,
    Experience,
    Position,
    Probe,
    ProbeCapabilities,
    ProbeMemory,
    ProbeStatus,
    SolarSystem,
    WorldState,
)
from astral.core.resources import ResourceVector

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT_VERSION = 1


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------

def _json_fallback(obj: Any) -> Any:
    """Handle numpy scalars, enums and vectors in experience payloads."""
    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, (np.floating,)):
        return float(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, (ProbeStatus, BodyType)):
        return obj.value
    if isinstance(obj, (ResourceVector, Position)):
        return obj.to_dict()
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


# ---------------------------------------------------------------------------
# Body / system serialization
# ---------------------------------------------------------------------------

def serialize_body(body: CelestialBody) -> dict[str, Any]:
    return {
        "id": body.id,
        "name": body.name,
        "type": body.type.value,
        "position": body.position.to_dict(),
        "resources": body.resources.to_dict(),
        "mass": float(body.mass),
        "radius": float(body.radius),
    }


def deserialize_body(d: dict[str, Any]) -> CelestialBody:
    return CelestialBody(
        id=d["id"],
        name=d["name"],
        type=BodyType(d["type"]),
        position=Position.from_dict(d["position"]),
        resources=ResourceVector.from_dict(d["resources"]),
        mass=d.get("mass", 0.0),
        radius=d.get("radius", 0.0),
    )


def serialize_system(system: SolarSystem) -> dict[str, Any]:
    return {
        "id": system.id,
        "name": system.name,
        "position": system.position.to_dict(),
        "star": serialize_body(system.star),
        "bodies": [serialize_body(b) for b in system.bodies],
        "discovered_by": system.discovered_by,
        "discovered_at": system.discovered_at,
    }


def deserialize_system(d: dict[str, Any]) -> SolarSystem:
    return SolarSystem(
        id=d["id"],
        name=d["name"],
        position=Position.from_dict(d["position"]),
        star=deserialize_body(d["star"]),
        bodies=[deserialize_body(b) for b in d.get("bodies", [])],
        discovered_by=d.get("discovered_by"),
        discovered_at=d.get("discovered_at"),
    )


# ---------------------------------------------------------------------------
# Probe serialization
# ---------------------------------------------------------------------------

def serialize_probe(probe: Probe) -> dict[str, Any]:
    """Convert a Probe to a JSON-safe dict (full fidelity)."""
    memory = probe.memory
    return {
        # Identity
        "id": probe.id,
        "name": probe.name,
        "generation": int(probe.generation),
        "created_at": float(probe.created_at),
        "parent_probe_id": probe.parent_probe_id,
        # Location
        "position": probe.position.to_dict(),
        "current_system_id": probe.current_system_id,
        # State
        "status": probe.status.value,
        "resources": probe.resources.to_dict(),
        "capabilities": probe.capabilities.to_dict(),
        # Memory
        "memory": {
            "experiences": [
                {"timestamp": float(e.timestamp), "event": e.event, "data": e.data}
                for e in memory.experiences
            ],
            "known_probes": list(memory.known_probes),
            "visited_systems": list(memory.visited_systems),
            "discovered_resources": {
                body_id: vec.to_dict()
                for body_id, vec in memory.discovered_resources.items()
            },
        },
    }


def deserialize_probe(d: dict[str, Any]) -> Probe:
    """Reconstruct a Probe from a serialized dict."""
    mem = d.get("memory", {})
    memory = ProbeMemory(
        experiences=[
            Experience(timestamp=e["timestamp"], event=e["event"], data=e.get("data", {}))
            for e in mem.get("experiences", [])
        ],
        known_probes=list(mem.get("known_probes", [])),
        visited_systems=list(mem.get("visited_systems", [])),
        discovered_resources={
            body_id: ResourceVector.from_dict(vec)
            for body_id, vec in mem.get("discovered_resources", {}).items()
        },
    )
    return Probe(
        id=d["id"],
        name=d["name"],
        generation=d["generation"],
        created_at=d["created_at"],
        parent_probe_id=d.get("parent_probe_id"),
        position=Position.from_dict(d["position"]),
        current_system_id=d["current_system_id"],
        status=ProbeStatus(d.get("status", "active")),
        resources=ResourceVector.from_dict(d["resources"]),
        capabilities=ProbeCapabilities.from_dict(d["capabilities"]),
        memory=memory,
    )


# ---------------------------------------------------------------------------
# Whole-state document
# ---------------------------------------------------------------------------

def serialize_state(state: WorldState) -> dict[str, Any]:
    return {
        "format_version": SNAPSHOT_FORMAT_VERSION,
        "game_started_at": float(state.game_started_at),
        "current_time": float(state.current_time),
        "tick": int(state.tick),
        "probes": {pid: serialize_probe(p) for pid, p in state.probes.items()},
        "systems": {sid: serialize_system(s) for sid, s in state.systems.items()},
    }


def deserialize_state(d: dict[str, Any]) -> WorldState:
    return WorldState(
        probes={pid: deserialize_probe(p) for pid, p in d["probes"].items()},
        systems={sid: deserialize_system(s) for sid, s in d["systems"].items()},
        game_started_at=d["game_started_at"],
        current_time=d.get("current_time", d["game_started_at"]),
        tick=d.get("tick", 0),
    )


def compress_state(state: WorldState) -> bytes:
    """Serialize state to zlib-compressed JSON bytes."""
    json_bytes = json.dumps(serialize_state(state), default=_json_fallback).encode("utf-8")
    return zlib.compress(json_bytes, level=6)


def decompress_state(blob: bytes) -> WorldState:
    """Decompress a zlib blob and rebuild the WorldState."""
    json_bytes = zlib.decompress(blob)
    return deserialize_state(json.loads(json_bytes.decode("utf-8")))


# ---------------------------------------------------------------------------
# SQLite SnapshotStore
# ---------------------------------------------------------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS snapshots (
    world_id TEXT PRIMARY KEY,
    tick INTEGER NOT NULL DEFAULT 0,
    probe_count INTEGER NOT NULL DEFAULT 0,
    system_count INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL,
    state_blob BLOB NOT NULL
);
"""


class SnapshotStore:
    """SQLite-backed storage for world snapshots.

    Thread-safety: the connection is opened with ``check_same_thread=False``
    and every statement runs under an internal lock, since pipelines on
    worker threads trigger saves.
    """

    def __init__(
        self,
        db_path: str = "data/astral.db",
        world_id: str = "default",
        timeout: float = 5.0,
    ):
        self.db_path = db_path
        self.world_id = world_id
        self.timeout = timeout
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Open connection and create table if needed."""
        try:
            self._conn = sqlite3.connect(
                self.db_path, check_same_thread=False, timeout=self.timeout,
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute(_SCHEMA)
            self._conn.commit()
        except Exception:
            logger.warning(
                "Failed to open SQLite database at %s, "
                "falling back to in-memory only",
                self.db_path,
                exc_info=True,
            )
            self._conn = None

    @property
    def available(self) -> bool:
        """True if the database connection is open."""
        return self._conn is not None

    def save_snapshot(self, state: WorldState) -> bool:
        """Insert or replace the snapshot for this world. Returns success."""
        if not self.available:
            return False
        now = datetime.now(timezone.utc).isoformat()
        try:
            blob = compress_state(state)
            with self._lock:
                self._conn.execute(  # type: ignore[union-attr]
                    """
                    INSERT INTO snapshots
                        (world_id, tick, probe_count, system_count, updated_at, state_blob)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(world_id) DO UPDATE SET
                        tick = excluded.tick,
                        probe_count = excluded.probe_count,
                        system_count = excluded.system_count,
                        updated_at = excluded.updated_at,
                        state_blob = excluded.state_blob
                    """,
                    (
                        self.world_id, int(state.tick),
                        len(state.probes), len(state.systems),
                        now, blob,
                    ),
                )
                self._conn.commit()  # type: ignore[union-attr]
            return True
        except Exception:
            logger.warning(
                "Failed to save snapshot for world %s", self.world_id,
                exc_info=True,
            )
            return False

    def load_snapshot(self) -> WorldState | None:
        """Load the stored snapshot.

        Returns ``None`` if there is none, the blob is corrupt, or the
        database is unavailable.
        """
        if not self.available:
            return None
        try:
            with self._lock:
                cur = self._conn.execute(  # type: ignore[union-attr]
                    "SELECT state_blob FROM snapshots WHERE world_id = ?",
                    (self.world_id,),
                )
                row = cur.fetchone()
        except Exception:
            logger.warning(
                "Failed to read snapshot for world %s", self.world_id,
                exc_info=True,
            )
            return None
        if row is None:
            return None
        try:
            return decompress_state(row[0])
        except Exception:
            logger.warning(
                "Snapshot for world %s is corrupt, ignoring it", self.world_id,
                exc_info=True,
            )
            return None

    def delete_snapshot(self) -> None:
        """Remove this world's snapshot (used by reset)."""
        if not self.available:
            return
        try:
            with self._lock:
                self._conn.execute(  # type: ignore[union-attr]
                    "DELETE FROM snapshots WHERE world_id = ?", (self.world_id,),
                )
                self._conn.commit()  # type: ignore[union-attr]
        except Exception:
            logger.warning(
                "Failed to delete snapshot for world %s", self.world_id,
                exc_info=True,
            )

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
