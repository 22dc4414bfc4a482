"""Error taxonomy for the extraction engine.

Strategies raise these; the scraper engine catches them, classifies them by
``kind`` and moves on to the next strategy in the cascade. Only
BatchInProgressError is meant to reach the orchestrator's caller.
"""

from harvester.core.schemas import ErrorKind


class ScrapeError(Exception):
    """Base class for every strategy-level failure."""

    kind: ErrorKind = "unknown"
    retryable: bool = False


class NetworkError(ScrapeError):
    """DNS, connection or non-2xx failure for a single URL."""

    kind: ErrorKind = "network"
    retryable = True

    def __init__(self, url: str, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class FetchTimeoutError(NetworkError):
    kind: ErrorKind = "timeout"


class BlockedError(NetworkError):
    """Target answered 403 or served a challenge page."""

    kind: ErrorKind = "blocked"
    retryable = False


class OversizedResponseError(ScrapeError):
    """Declared or actual body length exceeded the configured ceiling. Never retried."""

    kind: ErrorKind = "oversized"

    def __init__(self, url: str, size: int, limit: int) -> None:
        super().__init__(f"Response from {url} exceeds {limit} bytes (got {size})")
        self.url = url
        self.size = size
        self.limit = limit


class ParseError(ScrapeError):
    kind: ErrorKind = "parse"


class RateLimitError(ScrapeError):
    """HTTP 429 or a provider-specific quota signal."""

    kind: ErrorKind = "rate_limit"
    retryable = True

    def __init__(
        self,
        message: str,
        *,
        retry_after: float | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(message)
        self.retry_after = retry_after
        self.provider = provider


class NoJobsFoundError(ScrapeError):
    """The strategy ran cleanly but yielded nothing. A valid outcome, not a hard error."""

    kind: ErrorKind = "no_jobs"


class UnsupportedATSError(ScrapeError):
    kind: ErrorKind = "unsupported"


class StrategyUnavailableError(ScrapeError):
    """Strategy disabled or missing credentials (e.g. no LLM API key)."""

    kind: ErrorKind = "unavailable"


SOFT_ERROR_KINDS: frozenset[ErrorKind] = frozenset({"no_jobs", "unavailable"})


class BatchInProgressError(RuntimeError):
    """Raised when a second batch is started on a busy orchestrator."""
