"""Abstract base class for LLM providers and shared OpenAI-compatible logic."""

import logging
import os
import re
from abc import ABC, abstractmethod
from typing import Any

from harvester.core.errors import FetchTimeoutError, NetworkError, RateLimitError, StrategyUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 60.0


def strip_code_fences(raw_text: str) -> str:
    """Remove a markdown ```json ... ``` wrapper if the model added one."""
    cleaned = re.sub(r"^```(?:json)?\s*\n?", "", raw_text.strip())
    return re.sub(r"\n?```\s*$", "", cleaned)


class LLMProvider(ABC):
    """Base class that every LLM provider must implement."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'groq')."""

    @property
    @abstractmethod
    def default_model(self) -> str:
        """The default model ID used when no override is specified."""

    @property
    @abstractmethod
    def env_var(self) -> str | None:
        """Environment variable name for the API key, or None if not needed."""

    def is_configured(self) -> bool:
        """Credentials present (always true for keyless local backends)."""
        return self.env_var is None or bool(os.environ.get(self.env_var))

    def is_reachable(self) -> bool:
        """Whether a failover call is worth attempting. Hosted backends: credentials present."""
        return self.is_configured()

    @abstractmethod
    def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
        json_mode: bool = False,
        temperature: float = 0.1,
        max_tokens: int = 4000,
        timeout: float = DEFAULT_TIMEOUT_S,
    ) -> str:
        """Send a prompt to the LLM and return the raw response text.

        Raises:
            RateLimitError: The backend signalled a rate limit or quota.
            StrategyUnavailableError: Credentials are missing.
            FetchTimeoutError: No answer within ``timeout`` seconds.
            NetworkError: The backend could not be reached or returned an error.
        """


class OpenAICompatibleProvider(LLMProvider):
    """Shared chat-completions call for every backend that speaks the OpenAI API."""

    @property
    def base_url(self) -> str | None:
        return None

    def api_key(self) -> str:
        if self.env_var is None:
            return self.provider_id
        key = os.environ.get(self.env_var)
        if not key:
            msg = f"{self.env_var} environment variable is required"
            raise StrategyUnavailableError(msg)
        return key

    def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
        json_mode: bool = False,
        temperature: float = 0.1,
        max_tokens: int = 4000,
        timeout: float = DEFAULT_TIMEOUT_S,
    ) -> str:
        api_key = self.api_key()

        try:
            import openai
        except ImportError:
            msg = (
                f"openai is required for the {self.provider_id} backend. "
                "Install with: pip install openai"
            )
            raise ImportError(msg) from None

        client = openai.OpenAI(api_key=api_key, base_url=self.base_url, timeout=timeout, max_retries=0)
        use_model = model or self.default_model

        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs: dict[str, Any] = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        logger.info("Sending %d chars to %s (%s)...", len(prompt), self.provider_id, use_model)
        try:
            response = client.chat.completions.create(
                model=use_model,
                messages=messages,  # type: ignore[arg-type]
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
        except openai.RateLimitError as e:
            msg = f"{self.provider_id} rate limited: {e}"
            raise RateLimitError(msg, provider=self.provider_id) from e
        except openai.APITimeoutError as e:
            msg = f"{self.provider_id} did not answer within {timeout:.0f}s"
            raise FetchTimeoutError(self.base_url or self.provider_id, msg) from e
        except openai.APIConnectionError as e:
            msg = f"{self.provider_id} unreachable: {e}"
            raise NetworkError(self.base_url or self.provider_id, msg) from e
        except openai.APIStatusError as e:
            msg = f"{self.provider_id} returned HTTP {e.status_code}: {e}"
            raise NetworkError(self.base_url or self.provider_id, msg, e.status_code) from e

        return response.choices[0].message.content or ""
