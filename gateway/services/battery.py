"""
gateway/services/battery.py

Battery level sources for the sensor status engine.
EstimatedBatteryReader is a placeholder used until the sensor reader
exposes real telemetry; swap in another BatteryReader to replace it.
"""

from datetime import datetime, timedelta
from typing import Optional

from gateway.constants import BATTERY_DRAIN_PER_DAY, BATTERY_FULL_LEVEL
from gateway.schemas import SensorStatus


def estimate_battery_level(activation_date: datetime, now: datetime) -> int:
    """Linear drain: 100% at activation, minus 6% per whole day worn."""
    days_since_activation = (now - activation_date) // timedelta(days=1)
    return max(0, BATTERY_FULL_LEVEL - BATTERY_DRAIN_PER_DAY * days_since_activation)


class EstimatedBatteryReader:
    """Derives the battery level from wear time."""

    async def read_level(self, status: SensorStatus, now: datetime) -> Optional[int]:
        if status.activation_date is None:
            return None
        return min(BATTERY_FULL_LEVEL, estimate_battery_level(status.activation_date, now))
