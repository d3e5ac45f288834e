"""
gateway/routers/alerts.py

Active glucose alert inspection and acknowledgment.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from gateway.container import Services
from gateway.dependencies import get_services
from gateway.schemas import GlucoseAlert

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("/active")
async def get_active_alert(services: Services = Depends(get_services)) -> Optional[GlucoseAlert]:
    return services.alert_engine.active_alert


@router.post("/active/acknowledge")
async def acknowledge_active_alert(
    services: Services = Depends(get_services),
) -> dict[str, bool]:
    acknowledged = await services.alert_engine.acknowledge()
    return {"acknowledged": acknowledged}
