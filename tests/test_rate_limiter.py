"""
Tests for the outbound sliding-window rate limiter.

A fake clock and a fake sleep (which advances the clock) keep these
tests instant and deterministic.
"""

import asyncio

import pytest

from core.rate_limit import SlidingWindowRateLimiter


class FakeTime:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


def make_limiter(fake: FakeTime, max_requests: int = 3, window_s: float = 5.0, margin: float = 0.1):
    return SlidingWindowRateLimiter(
        max_requests=max_requests,
        window_s=window_s,
        safety_margin_s=margin,
        clock=fake.clock,
        sleep=fake.sleep,
    )


class TestSlidingWindow:
    @pytest.mark.asyncio
    async def test_under_limit_does_not_wait(self):
        fake = FakeTime()
        limiter = make_limiter(fake)

        for _ in range(3):
            await limiter.await_slot("t1")

        assert fake.sleeps == []
        assert limiter.pending("t1") == 3

    @pytest.mark.asyncio
    async def test_waits_until_oldest_leaves_window_plus_margin(self):
        fake = FakeTime()
        limiter = make_limiter(fake)

        for _ in range(3):
            await limiter.await_slot("t1")
            fake.now += 1.0
        # now == 3.0, oldest at 0.0 -> wait 5.0 - 3.0 + 0.1
        await limiter.await_slot("t1")

        assert fake.sleeps == [pytest.approx(2.1)]
        assert fake.now == pytest.approx(5.1)

    @pytest.mark.asyncio
    async def test_never_more_than_max_in_any_window(self):
        fake = FakeTime()
        limiter = make_limiter(fake, max_requests=20, window_s=5.0)
        granted = []

        async def request():
            await limiter.await_slot("t1")
            granted.append(fake.now)

        await asyncio.gather(*(request() for _ in range(65)))

        assert len(granted) == 65
        for i, start in enumerate(granted):
            in_window = [t for t in granted[i:] if t - start < 5.0]
            assert len(in_window) <= 20

    @pytest.mark.asyncio
    async def test_tenants_are_limited_independently(self):
        fake = FakeTime()
        limiter = make_limiter(fake, max_requests=2)

        await limiter.await_slot("t1")
        await limiter.await_slot("t1")
        await limiter.await_slot("t2")
        await limiter.await_slot("t2")

        assert fake.sleeps == []
        assert limiter.pending("t1") == 2
        assert limiter.pending("t2") == 2

    @pytest.mark.asyncio
    async def test_slots_granted_in_arrival_order(self):
        fake = FakeTime()
        limiter = make_limiter(fake, max_requests=1)
        order = []

        async def request(n):
            await limiter.await_slot("t1")
            order.append(n)

        await asyncio.gather(*(request(n) for n in range(5)))

        assert order == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_expired_entries_are_pruned(self):
        fake = FakeTime()
        limiter = make_limiter(fake)

        await limiter.await_slot("t1")
        fake.now += 5.0

        assert limiter.pending("t1") == 0
        assert limiter.pending("unknown") == 0

    def test_rejects_non_positive_limit(self):
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(max_requests=0, window_s=5.0, safety_margin_s=0.1)
