"""Device-updated notification channel.

Subscribers receive snapshots after verified state changes, health
updates and local add/remove operations. Each subscriber gets its own
bounded queue; a slow subscriber loses its oldest events rather than
blocking publishers.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from device_gateway.core.models.access import utcnow
from device_gateway.core.models.device import UnifiedDevice

logger = logging.getLogger(__name__)


class DeviceEventType(str, Enum):
    UPDATED = "updated"
    HEALTH_CHANGED = "health_changed"
    ADDED = "added"
    REMOVED = "removed"


class DeviceEvent(BaseModel):
    """A device change notification carrying an immutable snapshot."""

    type: DeviceEventType
    device_id: str
    device: UnifiedDevice | None = None
    timestamp: datetime = Field(default_factory=utcnow)


class DeviceEventBus:
    """Fan-out of device events to subscriber queues."""

    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = queue_size
        self._subscribers: list[asyncio.Queue[DeviceEvent]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[DeviceEvent]:
        queue: asyncio.Queue[DeviceEvent] = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[DeviceEvent]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, event: DeviceEvent) -> None:
        """Deliver an event to every subscriber without blocking."""
        for queue in list(self._subscribers):
            if queue.full():
                dropped = queue.get_nowait()
                logger.warning(
                    f"Subscriber queue full, dropped {dropped.type.value} "
                    f"event for {dropped.device_id}"
                )
            queue.put_nowait(event)
