"""
Structured progress events.

The scheduler and pipelines report what happened through an ``EventSink``
rather than writing log lines directly. The default sink forwards to
stdlib logging; tests use ``RecordingEventSink`` to assert on the stream.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class SimEvent:
    """One structured event. ``kind`` is a dotted name like ``tick.completed``."""
    kind: str
    fields: dict[str, Any] = field(default_factory=dict)


class EventSink:
    """Base sink; subclasses override ``emit``."""

    def emit(self, kind: str, **fields: Any) -> None:
        raise NotImplementedError


class NullEventSink(EventSink):
    def emit(self, kind: str, **fields: Any) -> None:
        pass


class LoggingEventSink(EventSink):
    """Writes each event as one log record.

    ``*.failed`` and ``*.error`` kinds log at WARNING, the rest at INFO.
    """

    def __init__(self, log: logging.Logger | None = None):
        self._log = log or logger

    def emit(self, kind: str, **fields: Any) -> None:
        level = logging.WARNING if kind.endswith((".failed", ".error")) else logging.INFO
        if self._log.isEnabledFor(level):
            details = " ".join(f"{k}={v}" for k, v in fields.items())
            self._log.log(level, "%s %s", kind, details)


class RecordingEventSink(EventSink):
    """Keeps every event in memory (thread-safe)."""

    def __init__(self) -> None:
        self.events: list[SimEvent] = []
        self._lock = threading.Lock()

    def emit(self, kind: str, **fields: Any) -> None:
        with self._lock:
            self.events.append(SimEvent(kind=kind, fields=dict(fields)))

    def kinds(self) -> list[str]:
        with self._lock:
            return [e.kind for e in self.events]

    def of_kind(self, kind: str) -> list[SimEvent]:
        with self._lock:
            return [e for e in self.events if e.kind == kind]
