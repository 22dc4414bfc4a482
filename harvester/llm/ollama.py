"""Ollama local LLM provider (OpenAI-compatible API)."""

import logging
import os

import httpx

from harvester.llm.base import OpenAICompatibleProvider

logger = logging.getLogger(__name__)

_OLLAMA_BASE_URL = "http://localhost:11434/v1"


class OllamaProvider(OpenAICompatibleProvider):
    """LLM provider using a local Ollama instance via OpenAI-compatible API."""

    @property
    def provider_id(self) -> str:
        return "ollama"

    @property
    def default_model(self) -> str:
        return "llama3.1"

    @property
    def env_var(self) -> None:
        return None

    @property
    def base_url(self) -> str:
        return os.environ.get("OLLAMA_BASE_URL", _OLLAMA_BASE_URL).rstrip("/")

    def is_reachable(self) -> bool:
        """Ask the local server; a down Ollama must not eat a failover attempt."""
        try:
            response = httpx.get(f"{self.base_url}/models", timeout=2.0)
        except httpx.HTTPError as e:
            logger.debug("Ollama not reachable at %s: %s", self.base_url, e)
            return False
        return response.status_code < 500
