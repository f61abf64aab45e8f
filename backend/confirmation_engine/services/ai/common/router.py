"""AI Router: resolves provider, model and call limits for a scope."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from confirmation_engine.core.config import get_settings

from .providers import BaseProvider, get_provider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedConfig:
    """Final provider + model for one call."""

    provider: BaseProvider
    model: str
    temperature: float
    max_tokens: int
    timeout_seconds: float


def resolve(scope: str, *, provider: BaseProvider | None = None) -> ResolvedConfig:
    """Resolve provider + model for *scope*.

    An injected *provider* is used as-is (tests, alternative backends).
    Otherwise the scope's ENV provider is built by the factory, which raises
    ``ConfigurationError`` when it cannot be used.

    Model validation: if the configured model is not in the allowlist for
    that provider, fall back to the first allowed model.
    """
    settings = get_settings()

    if scope == "confirmation_extract":
        provider_name = settings.ai_confirmation_provider.lower().strip()
        model = settings.ai_confirmation_model.strip()
        timeout = settings.ai_confirmation_timeout_seconds
    else:
        raise ValueError(f"Unknown AI scope {scope!r}")

    if provider is not None:
        provider_name = provider.name

    allowed_models = settings.ai_allowed_models.get(provider_name, [])
    if allowed_models and model and model not in allowed_models:
        logger.warning(
            "Model %r not in allowlist for %r, using first allowed: %r",
            model,
            provider_name,
            allowed_models[0],
        )
        model = allowed_models[0]

    if allowed_models and not model:
        model = allowed_models[0]

    return ResolvedConfig(
        provider=provider if provider is not None else get_provider(provider_name),
        model=model,
        temperature=settings.ai_temperature,
        max_tokens=settings.ai_max_tokens,
        timeout_seconds=timeout,
    )
