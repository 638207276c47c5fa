"""Tests for the per-client fail-fast rate limiter."""

import pytest

from app.exceptions import RateLimitedError
from app.utils.rate_limit import KeyedRateLimiter


class TestKeyedRateLimiter:
    async def test_p0_requests_within_budget_pass(self):
        limiter = KeyedRateLimiter(max_rate=3, time_period=60)

        for _ in range(3):
            await limiter.check("10.0.0.1")

    async def test_p0_request_over_budget_rejected_immediately(self):
        # GIVEN: A client that used its whole budget
        limiter = KeyedRateLimiter(max_rate=2, time_period=60)
        await limiter.check("10.0.0.1")
        await limiter.check("10.0.0.1")

        # WHEN/THEN: The next request fails fast with a retry hint
        with pytest.raises(RateLimitedError) as exc_info:
            await limiter.check("10.0.0.1")

        assert exc_info.value.retry_after == 30

    async def test_p1_keys_are_independent(self):
        limiter = KeyedRateLimiter(max_rate=1, time_period=60)
        await limiter.check("10.0.0.1")

        await limiter.check("10.0.0.2")

    async def test_p1_least_recently_used_key_evicted(self):
        limiter = KeyedRateLimiter(max_rate=1, time_period=60, max_keys=2)
        await limiter.check("a")
        await limiter.check("b")
        await limiter.check("c")

        # "a" was evicted, so it starts with a fresh budget
        await limiter.check("a")

    async def test_p2_reset_forgets_keys(self):
        limiter = KeyedRateLimiter(max_rate=1, time_period=60)
        await limiter.check("10.0.0.1")

        limiter.reset()

        await limiter.check("10.0.0.1")
