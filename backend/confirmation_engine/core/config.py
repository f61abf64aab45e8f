from functools import lru_cache
import json
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ALLOWED_MODELS: dict[str, list[str]] = {
    "openai": ["gpt-4o-mini", "gpt-4o-mini-2024-07-18", "gpt-4o"],
    "claude": ["claude-3-5-haiku-20241022", "claude-3-5-sonnet-20241022"],
    "groq": ["llama-3.1-70b-versatile", "llama-3.1-8b-instant"],
    "mock": [],
}


def _parse_list_value(value: str) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        raw = value.strip()
        if raw == "":
            return []
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, list):
                return [str(item).strip().lower() for item in parsed if str(item).strip()]
        except ValueError:
            pass
        return [item.strip().lower() for item in raw.split(",") if item.strip()]
    if isinstance(value, list):
        return [str(item).strip().lower() for item in value if str(item).strip()]
    return []


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        validate_by_name=True,
        populate_by_name=True,
    )

    docs_enabled: bool = Field(default=True)
    openapi_enabled: bool = Field(default=True)
    expose_error_details: bool = Field(default=False)

    openai_api_key: str = ""
    anthropic_api_key: str = ""
    groq_api_key: str = ""

    ai_allowed_providers_raw: str = Field(
        default="openai,claude,groq,mock",
        validation_alias=AliasChoices("AI_ALLOWED_PROVIDERS", "ai_allowed_providers_raw"),
    )
    ai_allowed_models_raw: str = Field(
        default="",
        validation_alias=AliasChoices("AI_ALLOWED_MODELS", "ai_allowed_models_raw"),
    )
    ai_temperature: float = 0.0
    ai_max_tokens: int = 1200

    ai_confirmation_provider: str = "openai"
    ai_confirmation_model: str = ""
    ai_confirmation_timeout_seconds: float = 30.0
    ai_confirmation_llm_enabled: bool = True
    ai_confirmation_max_input_chars: int = 12000

    confirmation_min_quantity_confidence: float = 0.6
    confirmation_llm_trigger_confidence: float = 0.6
    confirmation_ambiguity_spread: float = 0.15
    confirmation_llm_confidence: float = 0.85

    @field_validator(
        "confirmation_min_quantity_confidence",
        "confirmation_llm_trigger_confidence",
        "confirmation_llm_confidence",
    )
    @classmethod
    def _unit_interval(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            msg = f"Confidence threshold must be 0.0-1.0, got {value}"
            raise ValueError(msg)
        return value

    @property
    def ai_allowed_providers(self) -> list[str]:
        return _parse_list_value(self.ai_allowed_providers_raw)

    @property
    def ai_allowed_models(self) -> dict[str, list[str]]:
        raw = self.ai_allowed_models_raw.strip()
        if not raw:
            return DEFAULT_ALLOWED_MODELS
        try:
            parsed = json.loads(raw)
        except ValueError:
            return DEFAULT_ALLOWED_MODELS
        if not isinstance(parsed, dict):
            return DEFAULT_ALLOWED_MODELS
        return {str(k).lower(): [str(m) for m in (v or [])] for k, v in parsed.items()}


@lru_cache
def get_settings() -> Settings:
    return Settings()
