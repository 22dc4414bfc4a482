"""Bounded-size async HTTP fetcher with retries, backoff and shared rate limiting."""

import asyncio
import json
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from types import TracebackType
from typing import Any
from urllib.parse import urlsplit

import httpx

from harvester.core.config import EngineConfig
from harvester.core.errors import (
    BlockedError,
    FetchTimeoutError,
    NetworkError,
    OversizedResponseError,
    ParseError,
    RateLimitError,
)
from harvester.core.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

# Rotated per request; kept in sync with current desktop browser releases.
USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.5 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:130.0) Gecko/20100101 Firefox/130.0",
)

ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
ACCEPT_JSON = "application/json"


@dataclass(frozen=True)
class FetchResult:
    url: str
    status_code: int
    text: str
    content_type: str | None


def host_of(url: str) -> str:
    return (urlsplit(url).hostname or "").lower()


def browser_headers(rng: random.Random, accept: str = ACCEPT_HTML) -> dict[str, str]:
    return {
        "User-Agent": rng.choice(USER_AGENTS),
        "Accept": accept,
        "Accept-Language": "en-US,en;q=0.9",
    }


class HttpFetcher:
    """Shared outbound HTTP client for every strategy.

    Bodies are streamed and abandoned as soon as they cross
    ``max_response_bytes``; a declared Content-Length above the ceiling is
    rejected before any body is read. Only timeouts, transport errors, 5xx
    and 429 are retried.
    """

    def __init__(
        self,
        *,
        timeout_s: float = 30.0,
        max_response_bytes: int = 5 * 1024 * 1024,
        max_retries: int = 3,
        backoff_base_s: float = 1.0,
        backoff_max_s: float = 30.0,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._max_bytes = max_response_bytes
        self._max_retries = max(0, max_retries)
        self._backoff_base_s = backoff_base_s
        self._backoff_max_s = backoff_max_s
        self._rate_limiter = rate_limiter
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s),
            follow_redirects=True,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        *,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "HttpFetcher":
        return cls(
            timeout_s=config.request_timeout_s,
            max_response_bytes=config.max_response_bytes,
            max_retries=config.max_retries,
            backoff_base_s=config.retry_delay_s,
            backoff_max_s=config.retry_max_delay_s,
            rate_limiter=rate_limiter,
            transport=transport,
        )

    @property
    def max_response_bytes(self) -> int:
        return self._max_bytes

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpFetcher":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_text(self, url: str) -> FetchResult:
        return await self._send("GET", url, accept=ACCEPT_HTML)

    async def get_json(self, url: str) -> Any:
        result = await self._send("GET", url, accept=ACCEPT_JSON)
        return _decode_json(result)

    async def post_json(self, url: str, payload: dict[str, Any]) -> Any:
        result = await self._send("POST", url, accept=ACCEPT_JSON, json_body=payload)
        return _decode_json(result)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _backoff(self, attempt: int) -> float:
        base = self._backoff_base_s * (2 ** max(0, attempt - 1))
        jitter = self._rng.random() * 0.25
        return min(self._backoff_max_s, base + jitter)

    @staticmethod
    def _is_retryable_status(status_code: int) -> bool:
        return status_code == 429 or 500 <= status_code <= 599

    @staticmethod
    def _parse_retry_after_s(value: str | None) -> float | None:
        if not value:
            return None
        try:
            return max(0.0, float(value.strip()))
        except ValueError:
            return None

    async def _send(
        self,
        method: str,
        url: str,
        *,
        accept: str,
        json_body: dict[str, Any] | None = None,
    ) -> FetchResult:
        host = host_of(url)
        if not host:
            msg = f"Invalid URL (no host): {url}"
            raise NetworkError(url, msg)

        attempts = self._max_retries + 1
        for attempt in range(1, attempts + 1):
            final = attempt == attempts
            if self._rate_limiter is not None:
                await self._rate_limiter.acquire(host)
            headers = browser_headers(self._rng, accept)
            try:
                async with self._client.stream(method, url, headers=headers, json=json_body) as resp:
                    if self._is_retryable_status(resp.status_code) and not final:
                        retry_after = self._parse_retry_after_s(resp.headers.get("Retry-After"))
                        delay = retry_after if retry_after is not None else self._backoff(attempt)
                        logger.info(
                            "HTTP %d from %s, retrying in %.1fs (attempt %d/%d)",
                            resp.status_code, url, delay, attempt, attempts,
                        )
                    else:
                        return await self._read(resp, url)
            except httpx.TimeoutException as e:
                if final:
                    msg = f"Timed out fetching {url} after {attempts} attempts"
                    raise FetchTimeoutError(url, msg) from e
                delay = self._backoff(attempt)
                logger.info("Timeout fetching %s, retrying in %.1fs", url, delay)
            except httpx.TransportError as e:
                if final:
                    msg = f"HTTP transport error for {url}: {e}"
                    raise NetworkError(url, msg) from e
                delay = self._backoff(attempt)
                logger.info("Transport error for %s (%s), retrying in %.1fs", url, e, delay)
            await self._sleep(delay)

        msg = f"HTTP failed for {url}"
        raise NetworkError(url, msg)

    async def _read(self, resp: httpx.Response, url: str) -> FetchResult:
        status = resp.status_code
        if status == 429:
            retry_after = self._parse_retry_after_s(resp.headers.get("Retry-After"))
            msg = f"HTTP 429 from {url}"
            raise RateLimitError(msg, retry_after=retry_after)
        if status == 403:
            msg = f"HTTP 403 for {url}"
            raise BlockedError(url, msg, status)
        if status >= 400:
            msg = f"HTTP {status} for {url}"
            raise NetworkError(url, msg, status)

        declared = resp.headers.get("Content-Length", "")
        if declared.isdigit() and int(declared) > self._max_bytes:
            raise OversizedResponseError(url, int(declared), self._max_bytes)

        body = bytearray()
        async for chunk in resp.aiter_bytes():
            body.extend(chunk)
            if len(body) > self._max_bytes:
                raise OversizedResponseError(url, len(body), self._max_bytes)

        encoding = resp.charset_encoding or "utf-8"
        try:
            text = bytes(body).decode(encoding, errors="replace")
        except LookupError:
            text = bytes(body).decode("utf-8", errors="replace")

        return FetchResult(
            url=str(resp.url),
            status_code=status,
            text=text,
            content_type=resp.headers.get("Content-Type"),
        )


def _decode_json(result: FetchResult) -> Any:
    try:
        return json.loads(result.text)
    except json.JSONDecodeError as e:
        msg = f"Invalid JSON from {result.url}: {e}"
        raise ParseError(msg) from e
