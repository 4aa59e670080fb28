"""Philips Hue vendor adapter."""

from device_gateway.adapters.hue.adapter import HueAdapter
from device_gateway.core.registry import AdapterRegistry


def register() -> None:
    """Register the Hue adapter with the registry."""
    AdapterRegistry.register("hue", HueAdapter)


__all__ = ["HueAdapter", "register"]
