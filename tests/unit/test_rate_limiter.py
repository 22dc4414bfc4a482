"""Tests for the token bucket and the global/per-host rate limiter."""

import pytest

from harvester.core.config import RateLimitConfig
from harvester.core.rate_limiter import RateLimiter, TokenBucket


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self) -> None:
        self.t = 0.0
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.t

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.t += seconds


class TestTokenBucket:
    def test_starts_full(self) -> None:
        clock = FakeClock()
        bucket = TokenBucket(60, 3, now=clock.now, sleep=clock.sleep)
        assert bucket.available == 3.0

    def test_burst_then_empty(self) -> None:
        clock = FakeClock()
        bucket = TokenBucket(60, 2, now=clock.now, sleep=clock.sleep)
        assert bucket.try_acquire() is True
        assert bucket.try_acquire() is True
        assert bucket.try_acquire() is False

    def test_refill_rate(self) -> None:
        clock = FakeClock()
        bucket = TokenBucket(120, 2, now=clock.now, sleep=clock.sleep)
        bucket.try_acquire()
        bucket.try_acquire()
        clock.t += 0.5
        assert bucket.available == pytest.approx(1.0)

    def test_refill_capped_at_burst(self) -> None:
        clock = FakeClock()
        bucket = TokenBucket(60, 2, now=clock.now, sleep=clock.sleep)
        clock.t += 3600
        assert bucket.available == 2.0

    async def test_acquire_waits_when_empty(self) -> None:
        clock = FakeClock()
        bucket = TokenBucket(60, 1, now=clock.now, sleep=clock.sleep)
        assert await bucket.acquire() == 0.0
        waited = await bucket.acquire()
        assert waited == pytest.approx(1.0)
        assert clock.sleeps == [pytest.approx(1.0)]

    def test_invalid_rates(self) -> None:
        with pytest.raises(ValueError, match="must be positive"):
            TokenBucket(0, 1)


class TestRateLimiter:
    async def test_per_host_buckets_are_independent(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(
            RateLimitConfig(requests_per_minute=60, burst_size=1, per_host=True),
            now=clock.now,
            sleep=clock.sleep,
        )
        await limiter.acquire("a.example.com")
        assert clock.sleeps == []
        # Global bucket is empty now, so the second host waits on it but not on its own bucket.
        await limiter.acquire("b.example.com")
        assert clock.sleeps == [pytest.approx(1.0)]

    async def test_same_host_waits(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(
            RateLimitConfig(requests_per_minute=60, burst_size=5, per_host=True),
            now=clock.now,
            sleep=clock.sleep,
        )
        for _ in range(5):
            await limiter.acquire("a.example.com")
        assert clock.sleeps == []
        await limiter.acquire("a.example.com")
        assert sum(clock.sleeps) == pytest.approx(1.0)

    async def test_global_only(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(
            RateLimitConfig(requests_per_minute=60, burst_size=2, per_host=False),
            now=clock.now,
            sleep=clock.sleep,
        )
        await limiter.acquire("a.example.com")
        await limiter.acquire("b.example.com")
        await limiter.acquire(None)
        assert clock.sleeps == [pytest.approx(1.0)]
