"""
Proposed actions and probe decisions.

A decision provider returns an ordered list of proposals. Each proposal is
one variant of a closed, discriminated union keyed on ``action``, so the
executor never has to guess which parameters a kind carries. Raw provider
output (including the camelCase ``{"action", "parameters", "reasoning"}``
shape language models emit) is validated here, one proposal at a time,
before anything is dispatched.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class Priority(str, Enum):
    SURVIVAL = "survival"
    EXPANSION = "expansion"
    EXPLORATION = "exploration"
    RESOURCE_GATHERING = "resource_gathering"


# === Action variants ===

class _ActionBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    reasoning: str = ""

    def parameters(self) -> dict[str, Any]:
        """Kind-specific parameters, without the discriminant or reasoning."""
        return self.model_dump(exclude={"action", "reasoning"})


class ScanAction(_ActionBase):
    action: Literal["scan_resources"] = "scan_resources"
    body_id: str = Field(alias="bodyId")


class TravelAction(_ActionBase):
    action: Literal["travel_to_body"] = "travel_to_body"
    body_id: str = Field(alias="bodyId")


class HarvestAction(_ActionBase):
    action: Literal["harvest_resources"] = "harvest_resources"
    body_id: str = Field(alias="bodyId")
    duration: int = Field(ge=1, le=100)


class ManufactureAction(_ActionBase):
    action: Literal["manufacture_probe"] = "manufacture_probe"
    new_probe_name: str = Field(alias="newProbeName", min_length=1)


class WaitAction(_ActionBase):
    action: Literal["wait"] = "wait"


class ExploreAction(_ActionBase):
    action: Literal["explore_system"] = "explore_system"


ProposedAction = Annotated[
    Union[ScanAction, TravelAction, HarvestAction, ManufactureAction, WaitAction, ExploreAction],
    Field(discriminator="action"),
]

_action_adapter: TypeAdapter[Any] = TypeAdapter(ProposedAction)

ACTION_KINDS: tuple[str, ...] = (
    "scan_resources",
    "travel_to_body",
    "harvest_resources",
    "manufacture_probe",
    "wait",
    "explore_system",
)


# === Decisions ===

class RejectedProposal(BaseModel):
    """A proposal that failed validation; kept for the audit trail."""
    raw: dict[str, Any]
    error: str

    @property
    def action(self) -> str:
        return str(self.raw.get("action", "unknown"))


class ProbeDecision(BaseModel):
    actions: list[ProposedAction] = Field(default_factory=list)
    overall_strategy: str = ""
    priority: Priority = Priority.SURVIVAL
    rejected: list[RejectedProposal] = Field(default_factory=list)


def _flatten(raw: Any) -> dict[str, Any]:
    """Lift a nested ``parameters`` bag to the top level."""
    if not isinstance(raw, dict):
        return {"action": None, "value": raw}
    flat = {k: v for k, v in raw.items() if k != "parameters"}
    params = raw.get("parameters")
    if isinstance(params, dict):
        for k, v in params.items():
            flat.setdefault(k, v)
    return flat


def parse_action(raw: dict[str, Any]) -> Any:
    """Validate one raw proposal into its action variant.

    Raises ``pydantic.ValidationError`` for an unknown kind or bad params.
    """
    return _action_adapter.validate_python(_flatten(raw))


def parse_decision(raw: dict[str, Any]) -> ProbeDecision:
    """Build a ``ProbeDecision`` from loosely-shaped provider output.

    Each proposal is validated on its own: invalid ones land in
    ``rejected`` instead of failing the whole decision, so the rest of the
    plan still runs in order.
    """
    actions: list[Any] = []
    rejected: list[RejectedProposal] = []
    for item in raw.get("actions") or []:
        try:
            actions.append(parse_action(item))
        except ValidationError as e:
            rejected.append(RejectedProposal(
                raw=item if isinstance(item, dict) else {"value": item},
                error=_summarize(e),
            ))

    strategy = raw.get("overall_strategy", raw.get("overallStrategy", ""))
    try:
        priority = Priority(raw.get("priority", Priority.SURVIVAL.value))
    except ValueError:
        priority = Priority.SURVIVAL
    return ProbeDecision(
        actions=actions,
        overall_strategy=str(strategy or ""),
        priority=priority,
        rejected=rejected,
    )


def _summarize(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


FALLBACK_STRATEGY = "Fallback strategy due to decision failure"


def fallback_decision(reason: str = "") -> ProbeDecision:
    """Single wait action used whenever the provider cannot answer."""
    text = "Decision making failed, waiting for next tick"
    if reason:
        text = f"{text} ({reason})"
    return ProbeDecision(
        actions=[WaitAction(reasoning=text)],
        overall_strategy=FALLBACK_STRATEGY,
        priority=Priority.SURVIVAL,
    )
