"""Per-client rate limiting built on aiolimiter.

Each client key (usually the caller's IP address) gets its own leaky-bucket
AsyncLimiter. Callers that would have to wait are rejected immediately with
RateLimitedError instead of being queued, so the HTTP layer can answer 429.

Usage:
    limiter = KeyedRateLimiter(max_rate=10, time_period=60)
    await limiter.check(request.client.host)  # raises RateLimitedError
"""

from collections import OrderedDict

from aiolimiter import AsyncLimiter

from app.exceptions import RateLimitedError
from app.utils.logging import get_logger

log = get_logger(__name__)


class KeyedRateLimiter:
    """Fail-fast rate limiter with one AsyncLimiter per key.

    Attributes:
        max_rate: Requests allowed per time_period for each key.
        time_period: Window length in seconds.
        max_keys: Upper bound on tracked keys; least recently used keys are evicted.
    """

    def __init__(self, max_rate: int, time_period: float = 60, max_keys: int = 10_000):
        self.max_rate = max_rate
        self.time_period = time_period
        self.max_keys = max_keys
        self._limiters: OrderedDict[str, AsyncLimiter] = OrderedDict()

    def _limiter_for(self, key: str) -> AsyncLimiter:
        limiter = self._limiters.get(key)
        if limiter is None:
            limiter = AsyncLimiter(max_rate=self.max_rate, time_period=self.time_period)
            self._limiters[key] = limiter
            if len(self._limiters) > self.max_keys:
                self._limiters.popitem(last=False)
        else:
            self._limiters.move_to_end(key)
        return limiter

    async def check(self, key: str) -> None:
        """Consume one request for key.

        Raises:
            RateLimitedError: If key has no remaining capacity.
        """
        limiter = self._limiter_for(key)
        if not limiter.has_capacity():
            log.warning("rate_limit_exceeded", key=key, max_rate=self.max_rate)
            raise RateLimitedError(
                "Too many requests. Please wait a moment and try again.",
                retry_after=self.time_period / self.max_rate,
            )
        await limiter.acquire()

    def reset(self) -> None:
        """Forget all tracked keys (for testing)."""
        self._limiters.clear()
