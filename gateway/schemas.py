"""
gateway/schemas.py

Pydantic data models for the gateway layer.
- SensorStatus / SensorAlert: sensor-health state owned by the status engine
- GlucoseReading / GlucoseAlert: readings consumed by the reading alert engine
- Request bodies for the HTTP routers
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from gateway.constants import OFFLINE_READING_ID_PREFIX


class SensorAlertType(str, Enum):
    """Kinds of sensor-health alerts, in evaluation priority order."""

    DISCONNECTED = "DISCONNECTED"
    LOW_BATTERY = "LOW_BATTERY"
    EXPIRED = "EXPIRED"
    EXPIRING_SOON = "EXPIRING_SOON"


class GlucoseAlertType(str, Enum):
    """Direction of a glucose threshold breach."""

    HIGH = "HIGH"
    LOW = "LOW"


class ReadingSource(str, Enum):
    """Where a glucose reading came from."""

    MANUAL_SCAN = "manual_scan"
    AUTO_MONITOR = "auto_monitor"
    CALIBRATION = "calibration"
    LIBRE_SENSOR = "libre_sensor"


class SensorStatus(BaseModel):
    """
    Last known state of the worn sensor.

    The is_expired / is_expiring_soon / has_low_battery flags are derived
    and only written by SensorStatusEngine.
    """

    serial_number: Optional[str] = None
    user_id: Optional[str] = None
    is_connected: bool = False
    battery_level: Optional[int] = Field(default=None, ge=0, le=100)
    activation_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    last_scan_time: Optional[datetime] = None

    # ── Derived ──────────────────────────────────────────────
    is_expired: bool = False
    is_expiring_soon: bool = False
    has_low_battery: bool = False


class SensorAlert(BaseModel):
    """A sensor-health alert held by the AlertLedger."""

    id: str
    type: SensorAlertType
    message: str
    timestamp: datetime
    is_read: bool = False


class GlucoseReading(BaseModel):
    """A single glucose sample (mg/dL). Persisted elsewhere; consumed here."""

    id: Optional[str] = None
    value: float
    timestamp: datetime
    user_id: Optional[str] = None
    comment: Optional[str] = None
    is_alert: Optional[bool] = None

    # ── Provenance ───────────────────────────────────────────
    source: Optional[ReadingSource] = None
    is_sensor_reading: Optional[bool] = None
    is_manual_reading: Optional[bool] = None
    is_offline: bool = False

    @property
    def is_persisted(self) -> bool:
        """True when the reading carries an id assigned by the history store."""
        return bool(self.id) and not self.id.startswith(OFFLINE_READING_ID_PREFIX)


class GlucoseAlert(BaseModel):
    """A threshold breach waiting for (or past) user acknowledgment."""

    reading: GlucoseReading
    alert_type: GlucoseAlertType
    timestamp: datetime
    acknowledged: bool = False


# ── Request bodies ───────────────────────────────────────────


class ActivateSensorRequest(BaseModel):
    """Body of POST /sensor/activate."""

    serial_number: str
    user_id: str


class SensorScanPayload(BaseModel):
    """Opaque result of a successful sensor scan from the external reader."""

    serial_number: str
    user_id: Optional[str] = None
    raw_telemetry: Optional[dict[str, Any]] = None


class ConnectionUpdateRequest(BaseModel):
    """Body of POST /sensor/connection."""

    connected: bool


class SensorStatusView(BaseModel):
    """Response of GET /sensor/status."""

    status: SensorStatus
    has_active_sensor: bool
    remaining_wear: str
