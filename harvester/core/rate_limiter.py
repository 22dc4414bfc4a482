"""Token-bucket rate limiting shared by every outbound request in a process."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from harvester.core.config import RateLimitConfig

logger = logging.getLogger(__name__)


class TokenBucket:
    """Async token bucket: ``burst_size`` tokens, refilled at rpm/60 per second.

    Starts full. ``acquire`` is serialized by a lock so concurrent tasks can
    never overdraw the bucket.
    """

    def __init__(
        self,
        requests_per_minute: int,
        burst_size: int,
        *,
        now: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if requests_per_minute <= 0 or burst_size <= 0:
            msg = "requests_per_minute and burst_size must be positive"
            raise ValueError(msg)
        self._capacity = float(burst_size)
        self._rate = requests_per_minute / 60.0
        self._tokens = self._capacity
        self._now = now
        self._sleep = sleep
        self._updated = now()
        self._lock = asyncio.Lock()

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        current = self._now()
        elapsed = max(0.0, current - self._updated)
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._updated = current

    def try_acquire(self) -> bool:
        """Take a token if one is available right now."""
        self._refill()
        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return True
        return False

    async def acquire(self) -> float:
        """Wait for a token. Returns the total time spent waiting."""
        waited = 0.0
        async with self._lock:
            while not self.try_acquire():
                delay = (1.0 - self._tokens) / self._rate
                waited += delay
                await self._sleep(delay)
        return waited


class RateLimiter:
    """One global bucket plus (optionally) one bucket per target host."""

    def __init__(
        self,
        config: RateLimitConfig,
        *,
        now: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._now = now
        self._sleep = sleep
        self._global = self._new_bucket()
        self._hosts: dict[str, TokenBucket] = {}

    def _new_bucket(self) -> TokenBucket:
        return TokenBucket(
            self._config.requests_per_minute,
            self._config.burst_size,
            now=self._now,
            sleep=self._sleep,
        )

    async def acquire(self, host: str | None = None) -> None:
        waited = await self._global.acquire()
        if self._config.per_host and host:
            bucket = self._hosts.get(host)
            if bucket is None:
                bucket = self._hosts[host] = self._new_bucket()
            waited += await bucket.acquire()
        if waited > 0:
            logger.debug("Rate limiter delayed request to %s by %.2fs", host or "*", waited)
