import math
import time

from limits import RateLimitItemPerSecond
from limits.aio.strategies import FixedWindowRateLimiter as FixedWindowStrategy
from limits.storage import storage_from_string

from db.logs import logger
from services.errors import RateLimited

MEMORY_STORAGE_URI = "async+memory://"


class FixedWindowRateLimiter:
    """``max_requests`` per ``window_s`` seconds per key, on a ``limits`` storage.

    The default storage is process-local; pass e.g. ``async+redis://host:6379``
    to share counters between instances.
    """

    def __init__(
        self,
        *,
        window_s: int,
        max_requests: int,
        storage_uri: str = MEMORY_STORAGE_URI,
        name: str = "default",
    ) -> None:
        self.window_s = window_s
        self.max_requests = max_requests
        self.name = name
        self.item = RateLimitItemPerSecond(max_requests, window_s, namespace=name)
        self.storage = storage_from_string(storage_uri)
        self.strategy = FixedWindowStrategy(self.storage)

    async def hit(self, key: str) -> None:
        """Count one request for ``key``; raise RateLimited once the window is full."""
        if await self.strategy.hit(self.item, key):
            return

        stats = await self.strategy.get_window_stats(self.item, key)
        retry_after = min(max(1, math.ceil(stats.reset_time - time.time())), self.window_s)
        logger.warning("Rate limit %s exceeded for %s (retry in %ss)", self.name, key, retry_after)
        raise RateLimited(
            "Too many requests. Please try again later.",
            retry_after=retry_after,
            limit=self.max_requests,
            reset_at=stats.reset_time,
        )

    async def remaining(self, key: str) -> int:
        stats = await self.strategy.get_window_stats(self.item, key)
        return stats.remaining
