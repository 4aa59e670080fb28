"""Per-resource request spacing and per-vendor action budgets."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict, deque
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from device_gateway.core.errors import RateLimitExceeded

logger = logging.getLogger(__name__)


class ActionBudget:
    """Sliding-window request budget per vendor.

    Unlike the per-resource gate, an exhausted budget rejects at once
    instead of queuing.
    """

    def __init__(
        self,
        max_actions: int = 60,
        window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_actions = max_actions
        self.window = window
        self._clock = clock
        self._events: dict[str, deque[float]] = defaultdict(deque)

    def _prune(self, key: str, now: float) -> deque[float]:
        events = self._events[key]
        cutoff = now - self.window
        while events and events[0] <= cutoff:
            events.popleft()
        return events

    def remaining(self, key: str) -> int:
        return self.max_actions - len(self._prune(key, self._clock()))

    def consume(self, key: str) -> None:
        """Record one action against the budget.

        Raises:
            RateLimitExceeded: If the window is already full
        """
        now = self._clock()
        events = self._prune(key, now)
        if len(events) >= self.max_actions:
            retry_after = max(0.0, events[0] + self.window - now)
            logger.warning(f"Action budget exhausted for {key}")
            raise RateLimitExceeded(
                f"Action budget of {self.max_actions}/{self.window:.0f}s exhausted",
                vendor=key,
                retry_after=retry_after,
            )
        events.append(now)


class RateLimiter:
    """Minimum-interval gate per resource (device id or vendor account).

    Requests for one resource are admitted one at a time, each at least
    `min_interval` seconds after the previous one was admitted. Different
    resources do not block each other.

    Attributes:
        min_interval: Required spacing in seconds
        budget: Optional per-vendor ActionBudget
    """

    def __init__(
        self,
        min_interval: float = 0.5,
        budget: ActionBudget | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.min_interval = min_interval
        self.budget = budget
        self._clock = clock
        self._sleep = sleep
        self._last_served: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def _wait_turn(self, resource_id: str) -> float:
        waited = 0.0
        last = self._last_served.get(resource_id)
        if last is not None:
            elapsed = self._clock() - last
            if elapsed < self.min_interval:
                waited = self.min_interval - elapsed
                logger.debug(f"Rate limiting {resource_id}: waiting {waited:.3f}s")
                await self._sleep(waited)
        self._last_served[resource_id] = self._clock()
        return waited

    async def acquire(self, resource_id: str, vendor: str | None = None) -> float:
        """Wait for the resource's next slot.

        Args:
            resource_id: Device id or vendor account id
            vendor: Vendor whose action budget is charged, if any

        Returns:
            Seconds spent waiting

        Raises:
            RateLimitExceeded: If the vendor's action budget is exhausted
        """
        if self.budget is not None and vendor is not None:
            self.budget.consume(vendor)
        async with self._locks[resource_id]:
            return await self._wait_turn(resource_id)

    @asynccontextmanager
    async def gate(
        self, resource_id: str, vendor: str | None = None
    ) -> AsyncIterator[float]:
        """Hold the resource for the duration of the block.

        Concurrent callers for the same resource run their blocks one
        after another, spaced by `min_interval`.

        Yields:
            Seconds spent waiting for the slot
        """
        if self.budget is not None and vendor is not None:
            self.budget.consume(vendor)
        async with self._locks[resource_id]:
            yield await self._wait_turn(resource_id)
