"""Health and metrics endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from device_gateway.api.dependencies import get_audit_logger, get_device_manager
from device_gateway.services.audit import AuditLogger
from device_gateway.services.device_manager import DeviceManager

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Basic liveness health check.

    Returns:
        Status message (always returns 200 OK if service is running)
    """
    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check(
    manager: DeviceManager = Depends(get_device_manager),
) -> dict[str, object]:
    """Readiness check listing active vendor adapters and tracked devices."""
    return {
        "status": "ok",
        "adapters": manager.adapter_names,
        "devices": len(manager.devices),
    }


@router.get("/metrics")
async def metrics(audit: AuditLogger = Depends(get_audit_logger)) -> Response:
    """Prometheus exposition of operation counters and latencies."""
    return Response(
        content=generate_latest(audit.metrics.registry),
        media_type=CONTENT_TYPE_LATEST,
    )
