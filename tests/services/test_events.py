"""Tests for the device event bus."""

from __future__ import annotations

from device_gateway.services.events import DeviceEvent, DeviceEventBus, DeviceEventType


def event(device_id: str) -> DeviceEvent:
    return DeviceEvent(type=DeviceEventType.UPDATED, device_id=device_id)


class TestDeviceEventBus:
    """Test fan-out and overflow."""

    def test_fan_out(self):
        bus = DeviceEventBus()
        first, second = bus.subscribe(), bus.subscribe()

        bus.publish(event("d1"))

        assert first.get_nowait().device_id == "d1"
        assert second.get_nowait().device_id == "d1"

    def test_full_queue_drops_oldest(self):
        """Test a slow subscriber loses its oldest event."""
        bus = DeviceEventBus(queue_size=2)
        queue = bus.subscribe()

        for device_id in ("d1", "d2", "d3"):
            bus.publish(event(device_id))

        assert [queue.get_nowait().device_id for _ in range(2)] == ["d2", "d3"]

    def test_unsubscribe(self):
        bus = DeviceEventBus()
        queue = bus.subscribe()
        bus.unsubscribe(queue)
        bus.publish(event("d1"))
        assert queue.empty()
        assert bus.subscriber_count == 0
