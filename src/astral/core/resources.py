"""
Typed resource quantities.

A ``ResourceVector`` holds five non-negative amounts. Arithmetic is pure:
every operation returns a new vector and ``subtract`` refuses to produce a
negative field instead of clamping, so callers must check ``can_afford``
before touching shared state.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Iterable

import numpy as np

from astral.core.errors import InsufficientResourcesError

RESOURCE_TYPES: tuple[str, ...] = (
    "energy",
    "metal",
    "silicon",
    "hydrogen",
    "rare_elements",
)


@dataclass(frozen=True)
class ResourceVector:
    """Fixed-shape tuple of resource amounts."""

    energy: float = 0.0
    metal: float = 0.0
    silicon: float = 0.0
    hydrogen: float = 0.0
    rare_elements: float = 0.0

    def __post_init__(self) -> None:
        for f in fields(self):
            if getattr(self, f.name) < 0:
                raise InsufficientResourcesError(
                    f"{f.name} cannot be negative (got {getattr(self, f.name)})"
                )

    # ------------------------------------------------------------------
    # Construction / conversion
    # ------------------------------------------------------------------
    @classmethod
    def zero(cls) -> ResourceVector:
        return cls()

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ResourceVector:
        return cls(**{name: float(d.get(name, 0.0)) for name in RESOURCE_TYPES})

    @classmethod
    def from_array(cls, arr: np.ndarray) -> ResourceVector:
        return cls(*(float(v) for v in arr))

    def to_dict(self) -> dict[str, float]:
        return {name: float(getattr(self, name)) for name in RESOURCE_TYPES}

    def as_array(self) -> np.ndarray:
        return np.array([getattr(self, name) for name in RESOURCE_TYPES], dtype=float)

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------
    def __add__(self, other: ResourceVector) -> ResourceVector:
        return add(self, other)

    def __sub__(self, other: ResourceVector) -> ResourceVector:
        return subtract(self, other)

    def total(self) -> float:
        return total(self)


def add(a: ResourceVector, b: ResourceVector) -> ResourceVector:
    """Field-wise sum."""
    return ResourceVector(*(getattr(a, n) + getattr(b, n) for n in RESOURCE_TYPES))


def can_afford(available: ResourceVector, cost: ResourceVector) -> bool:
    """True iff every field of ``available`` covers the matching ``cost`` field."""
    return all(getattr(available, n) >= getattr(cost, n) for n in RESOURCE_TYPES)


def subtract(a: ResourceVector, b: ResourceVector) -> ResourceVector:
    """Field-wise difference.

    Raises ``InsufficientResourcesError`` if any field of ``b`` exceeds the
    matching field of ``a``; the result is never partially applied.
    """
    if not can_afford(a, b):
        short = [n for n in RESOURCE_TYPES if getattr(a, n) < getattr(b, n)]
        raise InsufficientResourcesError(
            f"cannot subtract {b.to_dict()} from {a.to_dict()}: short on {', '.join(short)}"
        )
    return ResourceVector(*(getattr(a, n) - getattr(b, n) for n in RESOURCE_TYPES))


def total(v: ResourceVector) -> float:
    """Sum of all fields (used for storage-capacity checks)."""
    return float(sum(getattr(v, n) for n in RESOURCE_TYPES))


def sum_vectors(vectors: Iterable[ResourceVector]) -> ResourceVector:
    """Aggregate many vectors at once."""
    arrays = [v.as_array() for v in vectors]
    if not arrays:
        return ResourceVector.zero()
    return ResourceVector.from_array(np.sum(arrays, axis=0))


def energy_only(amount: float) -> ResourceVector:
    return ResourceVector(energy=amount)
