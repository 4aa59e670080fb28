"""Protocol definitions for vendor adapters."""

from device_gateway.core.interfaces.adapter import VendorAdapter

__all__ = ["VendorAdapter"]
