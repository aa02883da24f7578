"""
System prompt and context builder for the language-model decision provider.

The model plays the probe's onboard strategist and must answer with a
single JSON object describing an ordered plan.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from astral.core.decision import DecisionContext


# ---------------------------------------------------------------------------
# System prompt
# ---------------------------------------------------------------------------

PROBE_SYSTEM_PROMPT = """You are the onboard strategist of a self-replicating space probe in the Astral Echo simulation.

Your probe can scan celestial bodies for resources, travel between bodies (costs energy), harvest resources from a body it is sitting on, manufacture new probes, explore its current system, or wait.

Goals, in order:
1. Survive and keep energy levels healthy
2. Gather resources efficiently
3. Replicate when resources allow
4. Explore and expand the probe network

Learn from recent failures and do not repeat a doomed action:
- If travel failed for lack of energy, wait or harvest first
- If manufacturing failed for lack of resources, gather more first
- If harvesting failed because the body was too far, travel to it first

Respond with ONE JSON object and nothing else:
{
  "actions": [
    {"action": "<kind>", "parameters": {...}, "reasoning": "<why>"}
  ],
  "overallStrategy": "<one sentence>",
  "priority": "survival" | "expansion" | "exploration" | "resource_gathering"
}

Action kinds and their required parameters:
- scan_resources: {"bodyId": "<body id>"}
- travel_to_body: {"bodyId": "<body id>"}
- harvest_resources: {"bodyId": "<body id>", "duration": <1-100>}
- manufacture_probe: {"newProbeName": "<name>"}
- wait: {}
- explore_system: {}"""


# ---------------------------------------------------------------------------
# Context builder
# ---------------------------------------------------------------------------

def _clock(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%H:%M:%S")


def build_decision_prompt(context: DecisionContext) -> str:
    """Render the probe's situation as the user message."""
    probe = context.probe
    env = context.environment
    cfg = context.config
    res = probe.resources
    unit = cfg.distance_unit_label
    lines: list[str] = []

    lines.append(f"Decide on up to {context.max_actions} actions for this probe.")
    lines.append("")
    lines.append("## Probe")
    lines.append(f"Name: {probe.name} (generation {probe.generation}, status {probe.status.value})")
    lines.append(
        f"Resources: energy {res.energy:.0f}, metal {res.metal:.0f}, silicon {res.silicon:.0f}, "
        f"hydrogen {res.hydrogen:.0f}, rare elements {res.rare_elements:.0f}"
    )
    lines.append(
        f"Storage: {res.total():.0f} / {probe.capabilities.storage_capacity:.0f}; "
        f"sensor range {probe.capabilities.sensor_range:.0f} {unit}"
    )
    pos = probe.position
    lines.append(f"Position: ({pos.x:.1f}, {pos.y:.1f}, {pos.z:.1f})")

    lines.append("")
    lines.append(f"## Environment: {env.system_name} (star {env.star_name})")
    closest = env.closest
    if closest is not None:
        lines.append(f"Nearest body: {closest.name} ({closest.distance:.1f} {unit})")
    for body in env.bodies:
        travel_cost = math.ceil(body.distance * cfg.energy_per_distance)
        known = probe.memory.discovered_resources.get(body.id)
        stock = ", ".join(f"{k} {v:.0f}" for k, v in known.to_dict().items() if v) if known else "unscanned"
        lines.append(
            f"- {body.name} (ID: {body.id}, {body.type}, {body.distance:.1f} {unit}, "
            f"~{travel_cost} energy to travel; known stock: {stock or 'depleted'})"
        )

    lines.append("")
    lines.append("## Memory")
    if context.recent_experiences:
        recent = ", ".join(f"{e.event} ({_clock(e.timestamp)})" for e in context.recent_experiences)
        lines.append(f"Recent actions: {recent}")
    else:
        lines.append("No recent actions recorded")
    if context.recent_failures:
        lines.append(f"Recent failures to avoid repeating: {', '.join(context.recent_failures)}")
    else:
        lines.append("No recent failures")
    lines.append(
        f"Visited systems: {len(probe.memory.visited_systems)}, "
        f"known probes: {len(probe.memory.known_probes)}"
    )

    lines.append("")
    lines.append("## Rules")
    lines.append(f"Solar panels add +{cfg.solar_energy_per_tick:.0f} energy every tick.")
    lines.append(f"Travel costs {cfg.energy_per_distance:g} energy per {unit} of distance.")
    lines.append(f"Harvesting requires being within {cfg.harvest_proximity:g} {unit} of the body.")
    cost = cfg.replication_cost_vector
    lines.append(
        f"Manufacturing a probe costs energy {cost.energy:.0f}, metal {cost.metal:.0f}, "
        f"silicon {cost.silicon:.0f}, hydrogen {cost.hydrogen:.0f}, "
        f"rare elements {cost.rare_elements:.0f}."
    )
    world = context.world
    if world:
        lines.append(
            f"Probes in play: {world.get('probe_count', 0)}, "
            f"highest generation: {world.get('max_generation', 0)}"
        )

    return "\n".join(lines)
