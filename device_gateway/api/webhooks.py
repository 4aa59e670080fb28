"""Vendor push-event ingress.

SmartThings delivers device attribute changes, health changes and
lifecycle notifications to a registered webhook. Events for devices the
gateway does not track are acknowledged and ignored so the vendor does
not retry them.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from device_gateway.api.dependencies import get_device_manager
from device_gateway.core.errors import DeviceGatewayError, DeviceNotFound
from device_gateway.services.device_manager import DeviceManager

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])

LIFECYCLE_ADDED = {"ADDED", "CREATE"}
LIFECYCLE_REMOVED = {"REMOVED", "DELETE"}


class PingData(BaseModel):
    challenge: str


class SmartThingsEvent(BaseModel):
    """Webhook payload.

    Either a PING handshake (``lifecycle == "PING"``) or a device event
    with `eventType`, `deviceId` and event `data`.
    """

    lifecycle: str | None = None
    ping_data: PingData | None = Field(default=None, alias="pingData")
    event_type: (
        Literal["DEVICE_EVENT", "DEVICE_HEALTH_EVENT", "DEVICE_LIFECYCLE_EVENT"] | None
    ) = Field(default=None, alias="eventType")
    device_id: str | None = Field(default=None, alias="deviceId")
    data: dict[str, Any] = Field(default_factory=dict)


class WebhookResponse(BaseModel):
    status: str = Field(..., description="ok, or ignored for untracked devices")


@router.post("/smartthings")
async def smartthings_webhook(
    event: SmartThingsEvent,
    manager: DeviceManager = Depends(get_device_manager),
) -> dict[str, Any]:
    """Apply a SmartThings push event.

    Returns:
        ``{"pingData": {"challenge": ...}}`` for PING, otherwise
        ``{"status": "ok"}`` or ``{"status": "ignored"}``

    Raises:
        HTTPException: 400 for malformed events, 502 if the vendor
            could not be reached while handling a lifecycle event
    """
    if event.lifecycle == "PING":
        if event.ping_data is None:
            raise HTTPException(status.HTTP_400_BAD_REQUEST, "PING without pingData")
        logger.info("Answered SmartThings PING")
        return {"pingData": {"challenge": event.ping_data.challenge}}

    if event.event_type is None or not event.device_id:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "eventType and deviceId required")

    try:
        if event.event_type == "DEVICE_EVENT":
            await _device_event(manager, event.device_id, event.data)
        elif event.event_type == "DEVICE_HEALTH_EVENT":
            await _health_event(manager, event.device_id, event.data)
        else:
            await _lifecycle_event(manager, event.device_id, event.data)
    except DeviceNotFound:
        logger.info(f"Ignoring {event.event_type} for untracked device {event.device_id}")
        return WebhookResponse(status="ignored").model_dump()
    except DeviceGatewayError as e:
        logger.error(f"Webhook handling failed for {event.device_id}: {e}")
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, e.user_message) from e

    return WebhookResponse(status="ok").model_dump()


async def _device_event(
    manager: DeviceManager, device_id: str, data: dict[str, Any]
) -> None:
    capability = data.get("capability")
    attribute = data.get("attribute")
    if not capability or not attribute:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST, "DEVICE_EVENT requires capability and attribute"
        )
    await manager.apply_vendor_event(device_id, capability, attribute, data.get("value"))


async def _health_event(
    manager: DeviceManager, device_id: str, data: dict[str, Any]
) -> None:
    health = data.get("healthState") or data.get("state")
    if health is None:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST, "DEVICE_HEALTH_EVENT requires healthState"
        )
    await manager.update_device_health(device_id, str(health))


async def _lifecycle_event(
    manager: DeviceManager, device_id: str, data: dict[str, Any]
) -> None:
    lifecycle = str(data.get("lifecycle", "")).upper()
    if lifecycle in LIFECYCLE_ADDED:
        await manager.get_device_state(device_id)
    elif lifecycle in LIFECYCLE_REMOVED:
        if not await manager.remove_device(device_id):
            raise DeviceNotFound(device_id)
    else:
        logger.debug(f"Unhandled lifecycle '{lifecycle}' for {device_id}")
