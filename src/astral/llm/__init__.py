"""Language-model integration for probe decisions."""

from astral.core.errors import LLMUnavailableError
from astral.llm.client import (
    ClaudeClient,
    OllamaClient,
    LLMClient,
    LLMResponse,
    create_client,
)
from astral.llm.strategist import LLMDecisionProvider, extract_json

__all__ = [
    "ClaudeClient",
    "OllamaClient",
    "LLMClient",
    "LLMResponse",
    "LLMUnavailableError",
    "create_client",
    "LLMDecisionProvider",
    "extract_json",
]
