"""Vendor adapter registry."""

from device_gateway.core.registry.adapter_registry import AdapterRegistry

__all__ = ["AdapterRegistry"]
