"""Mock vendor adapter for testing and development.

Usage:
    >>> from device_gateway.adapters.mock import MockAdapter
    >>> adapter = MockAdapter(sticky_devices={"mock-light-hallway"})
    >>> await adapter.initialize()
"""

from device_gateway.adapters.mock.adapter import MockAdapter
from device_gateway.adapters.mock.fixtures import DEFAULT_RECORDS, default_devices
from device_gateway.core.registry import AdapterRegistry


def register() -> None:
    """Register the mock adapter with the registry."""
    AdapterRegistry.register("mock", MockAdapter)


__all__ = ["MockAdapter", "DEFAULT_RECORDS", "default_devices", "register"]
