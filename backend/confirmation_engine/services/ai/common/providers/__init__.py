"""Provider factory: returns the configured provider or raises ``ConfigurationError``."""

from __future__ import annotations

import logging

from confirmation_engine.core.config import get_settings
from confirmation_engine.core.errors import ConfigurationError

from .base import BaseProvider, ProviderResult
from .mock import MockProvider

logger = logging.getLogger(__name__)

__all__ = ["get_provider", "BaseProvider", "ProviderResult", "MockProvider"]


def get_provider(provider_name: str) -> BaseProvider:
    """Return a provider instance for *provider_name*.

    A provider that is unknown, not in the allowlist, or has no API key is a
    deployment defect: raise instead of silently answering with mock data.
    """
    settings = get_settings()
    name = provider_name.lower().strip()

    if name not in settings.ai_allowed_providers:
        raise ConfigurationError(f"AI provider {name!r} is not in AI_ALLOWED_PROVIDERS")

    if name == "mock":
        logger.info("Using mock AI provider")
        return MockProvider()

    if name == "claude":
        if not settings.anthropic_api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is not set")
        from .claude import ClaudeProvider

        return ClaudeProvider(api_key=settings.anthropic_api_key)

    if name == "groq":
        if not settings.groq_api_key:
            raise ConfigurationError("GROQ_API_KEY is not set")
        from .groq import GroqProvider

        return GroqProvider(api_key=settings.groq_api_key)

    if name == "openai":
        if not settings.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY is not set")
        from .openai import OpenAIProvider

        return OpenAIProvider(api_key=settings.openai_api_key)

    raise ConfigurationError(f"Unknown AI provider {name!r}")
