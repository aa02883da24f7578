"""
Exception hierarchy for the Astral Sandbox core.

Precondition failures (not enough energy, target out of range, storage
full) are *not* exceptions: executors return them as ``ActionResult``
values. Exceptions are reserved for missing entities, broken invariants
and failed external capabilities.
"""

from __future__ import annotations


class AstralError(Exception):
    """Base class for all simulation errors."""


class EntityNotFoundError(AstralError, KeyError):
    """A referenced probe, system or celestial body does not exist."""

    def __init__(self, kind: str, entity_id: str) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} '{entity_id}' not found")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return f"{self.kind} '{self.entity_id}' not found"


class DuplicateEntityError(AstralError):
    """An insert used an id that is already present in the store."""


class InsufficientResourcesError(AstralError):
    """A mutation would have driven a resource field negative.

    This is an invariant violation: executors check affordability first,
    so reaching this means validation was skipped somewhere.
    """


class DecisionError(AstralError):
    """The decision provider could not produce a usable decision."""


class TaskTimeoutError(AstralError):
    """A unit of work exceeded its time limit."""


class LLMUnavailableError(AstralError):
    """The configured language-model backend cannot be reached or imported."""
