"""
Outbound Rate Limiting

Implements a trailing sliding-window limiter for calls made to the vendor
platform. One window per tenant; callers suspend until a slot is free.
Requests are never dropped or rejected.
"""
import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Optional

from core.config import settings

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """Per-tenant sliding window: at most `max_requests` per `window_s` seconds."""

    def __init__(
        self,
        max_requests: Optional[int] = None,
        window_s: Optional[float] = None,
        safety_margin_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_requests = max_requests if max_requests is not None else settings.VALD_RATE_LIMIT_MAX_REQUESTS
        self.window_s = window_s if window_s is not None else settings.VALD_RATE_LIMIT_WINDOW_S
        self.safety_margin_s = (
            safety_margin_s if safety_margin_s is not None else settings.VALD_RATE_LIMIT_SAFETY_MARGIN_S
        )
        if self.max_requests < 1:
            raise ValueError("max_requests must be at least 1")

        self._clock = clock
        self._sleep = sleep
        self._windows: Dict[str, Deque[float]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tenant_id] = lock
        return lock

    def _prune(self, window: Deque[float], now: float) -> None:
        while window and now - window[0] >= self.window_s:
            window.popleft()

    async def await_slot(self, tenant_id: str) -> None:
        """
        Suspend until another request for `tenant_id` fits in the window.

        The tenant lock is held while waiting, so slots are granted in
        arrival order (asyncio.Lock wakes waiters FIFO).
        """
        async with self._lock_for(tenant_id):
            window = self._windows.setdefault(tenant_id, deque())
            while True:
                now = self._clock()
                self._prune(window, now)
                if len(window) < self.max_requests:
                    break

                wait_s = self.window_s - (now - window[0]) + self.safety_margin_s
                logger.info(
                    f"Rate limit reached for tenant {tenant_id}, waiting {wait_s:.2f}s",
                    extra={"extra_fields": {"tenant_id": tenant_id, "wait_s": wait_s}},
                )
                await self._sleep(wait_s)

            window.append(now)

    def pending(self, tenant_id: str) -> int:
        """Number of requests recorded for `tenant_id` inside the current window."""
        window = self._windows.get(tenant_id)
        if not window:
            return 0
        self._prune(window, self._clock())
        return len(window)
