"""
Outbound message rate limiter.

One global queue for every instance and tenant: jobs run one at a time and
consecutive job starts are at least ``interval`` seconds apart.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class SendQueue:
    def __init__(self, interval: float) -> None:
        self.interval = max(0.0, float(interval))
        self._lock = asyncio.Lock()
        self._next_slot = 0.0
        self._pending = 0

    @property
    def pending(self) -> int:
        """Jobs waiting for, or holding, the send slot."""
        return self._pending

    async def add(self, job: Callable[[], Awaitable[T]]) -> T:
        """Run ``job`` when its slot comes up; returns its result or raises its error."""
        self._pending += 1
        try:
            async with self._lock:
                loop = asyncio.get_running_loop()
                delay = self._next_slot - loop.time()
                if delay > 0:
                    logger.debug("send_queue_wait", delay=round(delay, 3), pending=self._pending)
                    await asyncio.sleep(delay)
                self._next_slot = loop.time() + self.interval
                return await job()
        finally:
            self._pending -= 1
