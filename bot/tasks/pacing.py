# bot/tasks/pacing.py
"""Rate-limit strategies the scan awaits between members."""
import asyncio
import time


class FixedDelay:
    """Sleep a fixed number of seconds between members."""

    def __init__(self, seconds: float = 0.5, sleep=asyncio.sleep):
        self.seconds = max(0.0, float(seconds))
        self._sleep = sleep

    async def wait(self):
        if self.seconds:
            await self._sleep(self.seconds)

    def __repr__(self):
        return f"FixedDelay({self.seconds}s)"


class TokenBucket:
    """
    Allow `burst` members back-to-back, then refill at `rate` tokens per second.

    `clock` and `sleep` are injectable so tests can drive time by hand.
    """

    def __init__(self, rate: float = 2.0, burst: int = 1, clock=time.monotonic, sleep=asyncio.sleep):
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = float(rate)
        self.burst = max(1, int(burst))
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(self.burst)
        self._updated = clock()

    def _refill(self):
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._updated = now

    async def wait(self):
        self._refill()
        if self._tokens < 1:
            await self._sleep((1 - self._tokens) / self.rate)
            self._refill()
        self._tokens = max(0.0, self._tokens - 1)

    def __repr__(self):
        return f"TokenBucket({self.rate}/s, burst={self.burst})"


def build_pacer(settings):
    if settings.pacing == "bucket":
        return TokenBucket(rate=settings.bucket_rate, burst=settings.bucket_burst)
    return FixedDelay(settings.pacing_delay)
