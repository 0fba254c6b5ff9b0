"""Minimum-interval rate limiter for outbound API calls."""

import asyncio
import time

import structlog

logger = structlog.get_logger(__name__)


class MinIntervalLimiter:
    """Enforces a minimum wall-clock gap between consecutive calls.

    A single instance is shared by every caller of an adapter, so concurrent
    requests queue on the lock and go out one gap apart instead of bursting.
    """

    def __init__(self, min_interval_seconds: float):
        """Initialize limiter.

        Args:
            min_interval_seconds: Minimum seconds between two acquisitions
        """
        self.min_interval = min_interval_seconds
        self._last_request = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> float:
        """Wait until the gap since the previous call has elapsed.

        Returns:
            Seconds actually slept (0.0 when no wait was needed)
        """
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_request
            waited = 0.0
            if self._last_request and elapsed < self.min_interval:
                waited = self.min_interval - elapsed
                logger.debug("rate_limit_wait", wait_seconds=round(waited, 3))
                await asyncio.sleep(waited)
            self._last_request = time.monotonic()
            return waited
