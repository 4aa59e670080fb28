"""Shared dependencies for API routers."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from device_gateway.services.audit import AuditLogger
from device_gateway.services.device_manager import DeviceManager


def get_device_manager(request: Request) -> DeviceManager:
    """Dependency to get the application's device manager.

    Raises:
        HTTPException: 503 if the gateway has not finished starting
    """
    manager = getattr(request.app.state, "device_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Device manager not ready",
        )
    return manager


def get_audit_logger(request: Request) -> AuditLogger:
    audit = getattr(request.app.state, "audit", None)
    if audit is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Audit logger not ready",
        )
    return audit
