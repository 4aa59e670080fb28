"""Google Nest vendor adapter."""

from device_gateway.adapters.nest.adapter import NestAdapter
from device_gateway.core.registry import AdapterRegistry


def register() -> None:
    """Register the Nest adapter with the registry."""
    AdapterRegistry.register("nest", NestAdapter)


__all__ = ["NestAdapter", "register"]
