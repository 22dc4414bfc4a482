"""OpenAI LLM provider."""

from harvester.llm.base import OpenAICompatibleProvider


class OpenAIProvider(OpenAICompatibleProvider):
    """LLM provider using the OpenAI API."""

    @property
    def provider_id(self) -> str:
        return "openai"

    @property
    def default_model(self) -> str:
        return "gpt-4o-mini"

    @property
    def env_var(self) -> str:
        return "OPENAI_API_KEY"
