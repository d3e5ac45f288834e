"""
gateway/routers/sensor.py

Sensor lifecycle and sensor-health alert endpoints.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException

from gateway.container import Services
from gateway.dependencies import get_services
from gateway.schemas import (
    ActivateSensorRequest,
    ConnectionUpdateRequest,
    SensorAlert,
    SensorScanPayload,
    SensorStatus,
    SensorStatusView,
)
from gateway.services.sensor_status import remaining_wear

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/sensor", tags=["sensor"])


@router.get("/status")
async def get_status(services: Services = Depends(get_services)) -> SensorStatusView:
    engine = services.sensor_status
    status = engine.get_status()
    return SensorStatusView(
        status=status,
        has_active_sensor=engine.has_active_sensor(),
        remaining_wear=remaining_wear(status, services.clock.now()),
    )


@router.post("/activate")
async def activate_sensor(
    body: ActivateSensorRequest,
    services: Services = Depends(get_services),
) -> SensorStatus:
    return await services.sensor_status.activate(body.serial_number, body.user_id)


@router.post("/scan")
async def receive_scan(
    payload: SensorScanPayload,
    services: Services = Depends(get_services),
) -> SensorStatus:
    """
    Successful scan from the external sensor reader.

    A scan of the sensor already being worn counts as a reconnect; any other
    serial number starts a new wear period.
    """
    engine = services.sensor_status
    current = engine.get_status()
    if current.serial_number == payload.serial_number and engine.has_active_sensor():
        await engine.update_connection_status(True)
        return engine.get_status()

    user_id = payload.user_id or current.user_id
    if not user_id:
        raise HTTPException(status_code=400, detail="user_id required to activate a sensor")
    logger.info("sensor_scan_activating", serial_number=payload.serial_number)
    return await engine.activate(payload.serial_number, user_id)


@router.post("/connection")
async def update_connection(
    body: ConnectionUpdateRequest,
    services: Services = Depends(get_services),
) -> dict[str, bool]:
    changed = await services.sensor_status.update_connection_status(body.connected)
    return {"changed": changed}


@router.post("/tick")
async def tick(services: Services = Depends(get_services)) -> SensorStatus:
    return await services.sensor_status.tick()


@router.get("/alerts")
async def list_alerts(
    include_read: bool = False,
    services: Services = Depends(get_services),
) -> list[SensorAlert]:
    if include_read:
        return services.ledger.all()
    return services.ledger.unread()


@router.post("/alerts/{alert_id}/read")
async def mark_alert_read(
    alert_id: str,
    services: Services = Depends(get_services),
) -> dict[str, bool]:
    return {"found": services.ledger.mark_read(alert_id)}


@router.delete("/alerts")
async def clear_alerts(services: Services = Depends(get_services)) -> dict[str, str]:
    services.ledger.clear()
    return {"status": "cleared"}
