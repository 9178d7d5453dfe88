import asyncio

import pytest

from services.errors import RateLimited
from services.health_cache import HealthCache
from services.rate_limiter import FixedWindowRateLimiter


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


async def test_allows_up_to_max_then_blocks():
    limiter = FixedWindowRateLimiter(window_s=900, max_requests=10, name="t-max")

    for _ in range(10):
        await limiter.hit("1.2.3.4")
    assert await limiter.remaining("1.2.3.4") == 0

    with pytest.raises(RateLimited) as exc:
        await limiter.hit("1.2.3.4")

    assert 890 <= exc.value.retry_after <= 900
    assert exc.value.limit == 10
    assert exc.value.reset_at > 0


async def test_window_resets():
    limiter = FixedWindowRateLimiter(window_s=1, max_requests=1, name="t-reset")
    await limiter.hit("k")
    with pytest.raises(RateLimited) as exc:
        await limiter.hit("k")
    assert exc.value.retry_after == 1

    await asyncio.sleep(1.1)

    await limiter.hit("k")


async def test_keys_are_independent():
    limiter = FixedWindowRateLimiter(window_s=60, max_requests=1, name="t-keys")
    await limiter.hit("a")

    await limiter.hit("b")

    with pytest.raises(RateLimited):
        await limiter.hit("a")


def test_health_cache_expires_after_ttl():
    clock = Clock()
    cache = HealthCache(ttl_s=5, clock=clock)
    assert cache.fresh() is None

    cache.record(True)
    clock.now += 4.9
    assert cache.fresh().healthy is True

    clock.now += 0.2
    assert cache.fresh() is None
