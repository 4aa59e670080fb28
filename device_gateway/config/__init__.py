"""Configuration models."""

from device_gateway.config.settings import GatewayConfig, VendorConfig

__all__ = ["GatewayConfig", "VendorConfig"]
