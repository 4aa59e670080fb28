"""Vendor adapters."""

from device_gateway.adapters import august, hue, mock, nest, smartthings, yale


def register_builtin_adapters() -> None:
    """Register every adapter shipped with the gateway."""
    for module in (smartthings, yale, august, hue, nest, mock):
        module.register()


__all__ = ["register_builtin_adapters"]
