"""Groq provider: the OpenAI-compatible chat-completions endpoint."""

from __future__ import annotations

from .openai import OpenAIProvider

GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class GroqProvider(OpenAIProvider):
    name = "groq"
    default_model = "llama-3.1-70b-versatile"

    def __init__(self, api_key: str) -> None:
        super().__init__(api_key, base_url=GROQ_BASE_URL)
