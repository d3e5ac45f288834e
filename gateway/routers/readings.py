"""
gateway/routers/readings.py

POST /readings endpoint and reading bookkeeping.
Malformed readings are acknowledged with status "ignored" rather than
rejected, so a misbehaving reader never sees an error for a bad sample.
"""

from typing import Any, Optional

import structlog
from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, ValidationError

from gateway.container import Services
from gateway.dependencies import get_services
from gateway.schemas import GlucoseReading

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/readings", tags=["readings"])


class CurrentUserRequest(BaseModel):
    user_id: Optional[str] = None


@router.post("")
async def receive_reading(
    payload: dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
) -> dict[str, Optional[str]]:
    """
    Receive a glucose reading from the device.

    Flow:
    1. Validate; invalid readings are ignored
    2. Announce on the bus and evaluate thresholds (online readings only)
    3. Report the alert type raised, if any
    """
    try:
        reading = GlucoseReading.model_validate(payload)
    except ValidationError as exc:
        logger.debug("reading_ignored", reason="invalid", errors=exc.error_count())
        return {"status": "ignored", "alert": None}

    logger.info(
        "reading_received",
        user_id=reading.user_id,
        value=reading.value,
        offline=reading.is_offline,
    )
    alert = services.reading_events.emit_new_reading(reading)
    return {
        "status": "received",
        "alert": alert.alert_type.value if alert is not None else None,
    }


@router.post("/synced")
async def reading_synced(
    reading: GlucoseReading,
    services: Services = Depends(get_services),
) -> dict[str, str]:
    services.reading_events.emit_reading_synced(reading)
    return {"status": "received"}


@router.post("/user")
async def set_current_user(
    body: CurrentUserRequest,
    services: Services = Depends(get_services),
) -> dict[str, Optional[str]]:
    services.reading_events.set_current_user_id(body.user_id)
    return {"user_id": body.user_id}
