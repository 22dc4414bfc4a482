"""Groq hosted LLM provider (OpenAI-compatible API, low latency)."""

from harvester.llm.base import OpenAICompatibleProvider

_GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class GroqProvider(OpenAICompatibleProvider):
    """LLM provider using Groq's OpenAI-compatible endpoint."""

    @property
    def provider_id(self) -> str:
        return "groq"

    @property
    def default_model(self) -> str:
        return "llama-3.3-70b-versatile"

    @property
    def env_var(self) -> str:
        return "GROQ_API_KEY"

    @property
    def base_url(self) -> str:
        return _GROQ_BASE_URL
