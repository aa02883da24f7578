"""
Language-model decision provider.

Sends the probe's situation to an ``LLMClient`` and parses the JSON plan
it answers with. Any transport or parsing problem raises
``DecisionError``; the pipeline turns that into its wait fallback.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from astral.core.actions import ProbeDecision, parse_decision
from astral.core.decision import DecisionContext, DecisionProvider
from astral.core.errors import DecisionError
from astral.llm.client import LLMClient
from astral.llm.prompts import PROBE_SYSTEM_PROMPT, build_decision_prompt

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def extract_json(text: str) -> dict[str, Any]:
    """Pull the first JSON object out of a model reply.

    Accepts bare JSON, fenced code blocks, or JSON surrounded by prose.
    """
    fenced = _FENCE.search(text)
    candidate = fenced.group(1) if fenced else text
    start = candidate.find("{")
    end = candidate.rfind("}")
    if start == -1 or end <= start:
        raise DecisionError("no JSON object in model reply")
    try:
        data = json.loads(candidate[start:end + 1])
    except json.JSONDecodeError as e:
        raise DecisionError(f"model reply is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise DecisionError("model reply is not a JSON object")
    return data


class LLMDecisionProvider(DecisionProvider):
    """Asks a language model for each probe's plan."""

    name = "llm"

    def __init__(
        self,
        client: LLMClient,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ):
        self.client = client
        self.max_tokens = max_tokens
        self.temperature = temperature

    def decide(self, context: DecisionContext) -> ProbeDecision:
        prompt = build_decision_prompt(context)
        try:
            response = self.client.complete(
                system=PROBE_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as e:
            raise DecisionError(f"{self.client.provider} request failed: {e}") from e

        raw = extract_json(response.text)
        if "actions" not in raw:
            raise DecisionError("model reply has no 'actions' list")
        decision = parse_decision(raw)
        logger.debug(
            "%s decided %d action(s), %d rejected (%d/%d tokens)",
            context.probe.name, len(decision.actions), len(decision.rejected),
            response.input_tokens, response.output_tokens,
        )
        return decision
