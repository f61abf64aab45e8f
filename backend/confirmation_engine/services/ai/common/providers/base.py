"""Completion-service contract shared by every LLM provider."""

from __future__ import annotations

import abc
from dataclasses import dataclass


@dataclass(frozen=True)
class ProviderResult:
    """Immutable result returned by every provider."""

    raw_text: str
    model: str
    provider: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency_ms: float = 0.0


class BaseProvider(abc.ABC):
    """One request, one response: no retries, no streaming.

    Transport failures surface as ``httpx.HTTPError``; the caller decides
    whether to fall back.
    """

    name: str = "base"

    @abc.abstractmethod
    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        model: str = "",
        temperature: float = 0.0,
        max_tokens: int = 1200,
        timeout_seconds: float = 30.0,
    ) -> ProviderResult:
        """Send *prompt* (with optional *system_prompt*) and return a ``ProviderResult``."""
