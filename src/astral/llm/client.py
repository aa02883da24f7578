"""
Chat-completion clients used by the language-model decision provider.

Two backends share one ``complete`` call: the hosted Anthropic API (SDK
imported lazily, so it stays an optional extra) and a local Ollama server
spoken to over plain HTTP. Every request carries a timeout.
"""

from __future__ import annotations

import json
import os
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from astral.core.errors import LLMUnavailableError

Messages = list[dict[str, str]]


@dataclass
class LLMResponse:
    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0


class LLMClient(ABC):
    """One chat turn in, one text reply out."""

    provider: str = "base"
    model: str = ""

    @abstractmethod
    def complete(
        self,
        system: str,
        messages: Messages,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> LLMResponse: ...


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------

DEFAULT_CLAUDE_MODEL = "claude-sonnet-4-20250514"


def _load_anthropic():
    try:
        import anthropic
    except ImportError as e:
        raise LLMUnavailableError(
            "The 'anthropic' package is not installed; install astral-sandbox[llm]"
        ) from e
    return anthropic


class ClaudeClient(LLMClient):
    """Anthropic Messages API. Needs ``ANTHROPIC_API_KEY`` or ``api_key``."""

    provider = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_CLAUDE_MODEL,
        timeout: float = 60.0,
    ) -> None:
        key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not key:
            raise LLMUnavailableError("ANTHROPIC_API_KEY is not set and no api_key was given")
        sdk = _load_anthropic()
        self._client = sdk.Anthropic(api_key=key, timeout=timeout)
        self.model = model

    def complete(
        self,
        system: str,
        messages: Messages,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> LLMResponse:
        reply = self._client.messages.create(
            model=self.model,
            system=system,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        # Replies may be split over several content blocks
        text = "".join(getattr(block, "text", "") for block in reply.content or [])
        usage = getattr(reply, "usage", None)
        return LLMResponse(
            text=text,
            model=getattr(reply, "model", self.model),
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
        )


# ---------------------------------------------------------------------------
# Ollama
# ---------------------------------------------------------------------------

DEFAULT_OLLAMA_MODEL = "llama3.2"
OLLAMA_PORT = 11434


def resolve_ollama_url(explicit: str | None = None) -> str:
    """``explicit``, else ``$OLLAMA_HOST``, else the Docker host or localhost."""
    url = explicit or os.environ.get("OLLAMA_HOST")
    if url:
        return url if url.startswith("http") else f"http://{url}"
    in_container = bool(os.environ.get("DOCKER_CONTAINER")) or os.path.exists("/.dockerenv")
    host = "host.docker.internal" if in_container else "localhost"
    return f"http://{host}:{OLLAMA_PORT}"


class OllamaClient(LLMClient):
    """Local models through Ollama's ``/api/chat``, asking for JSON output."""

    provider = "ollama"

    def __init__(
        self,
        model: str = DEFAULT_OLLAMA_MODEL,
        base_url: str | None = None,
        timeout: float = 120.0,
    ) -> None:
        self.model = model
        self.base_url = resolve_ollama_url(base_url).rstrip("/")
        self.timeout = timeout

    def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        request = urllib.request.Request(
            f"{self.base_url}{path}",
            data=json.dumps(body).encode(),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as resp:
                return json.loads(resp.read().decode())
        except (urllib.error.URLError, OSError, ValueError) as e:
            raise LLMUnavailableError(f"Ollama request to {path} failed: {e}") from e

    def complete(
        self,
        system: str,
        messages: Messages,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> LLMResponse:
        chat = [{"role": "system", "content": system}]
        chat.extend({"role": m["role"], "content": m["content"]} for m in messages)
        data = self._post("/api/chat", {
            "model": self.model,
            "messages": chat,
            "stream": False,
            "format": "json",
            "options": {"num_predict": max_tokens, "temperature": temperature},
        })
        return LLMResponse(
            text=(data.get("message") or {}).get("content", ""),
            model=self.model,
            input_tokens=data.get("prompt_eval_count") or 0,
            output_tokens=data.get("eval_count") or 0,
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_client(
    provider: str = "anthropic",
    model: str | None = None,
    api_key: str | None = None,
    ollama_base_url: str | None = None,
    timeout: float = 60.0,
) -> LLMClient:
    """Build the client for ``provider`` (``"anthropic"`` or ``"ollama"``)."""
    if provider == "anthropic":
        return ClaudeClient(api_key=api_key, model=model or DEFAULT_CLAUDE_MODEL, timeout=timeout)
    if provider == "ollama":
        return OllamaClient(model=model or DEFAULT_OLLAMA_MODEL, base_url=ollama_base_url, timeout=timeout)
    raise ValueError(f"Unknown provider: {provider!r}; expected 'anthropic' or 'ollama'")
