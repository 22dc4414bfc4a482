"""Preferred/alternate LLM pair with failover on rate limits only."""

import logging

from harvester.core.config import LLMConfig
from harvester.core.errors import RateLimitError
from harvester.llm.base import DEFAULT_TIMEOUT_S, LLMProvider

logger = logging.getLogger(__name__)


class FailoverLLMClient:
    """Try the preferred backend; on a rate limit, retry once on the alternate if reachable.

    Any other failure (missing key, malformed output, network) propagates
    unchanged so the engine can move on to the next strategy.
    """

    def __init__(
        self,
        preferred: LLMProvider,
        alternate: LLMProvider | None = None,
        *,
        model: str | None = None,
        alternate_model: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self.preferred = preferred
        self.alternate = alternate
        self._model = model
        self._alternate_model = alternate_model
        self._timeout = timeout

    @classmethod
    def from_config(cls, config: LLMConfig) -> "FailoverLLMClient":
        from harvester.llm import get_provider

        alternate = get_provider(config.alternate) if config.alternate else None
        return cls(
            get_provider(config.preferred),
            alternate,
            model=config.model,
            alternate_model=config.alternate_model,
            timeout=config.timeout_s,
        )

    def is_available(self) -> bool:
        return self.preferred.is_configured()

    def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        json_mode: bool = False,
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ) -> str:
        try:
            return self.preferred.complete(
                prompt,
                self._model,
                system=system,
                json_mode=json_mode,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=self._timeout,
            )
        except RateLimitError:
            if self.alternate is None or not self.alternate.is_reachable():
                raise
            logger.warning(
                "%s rate limited, failing over to %s",
                self.preferred.provider_id, self.alternate.provider_id,
            )
            return self.alternate.complete(
                prompt,
                self._alternate_model,
                system=system,
                json_mode=json_mode,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=self._timeout,
            )
