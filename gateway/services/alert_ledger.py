"""
gateway/services/alert_ledger.py

Append-only in-memory list of sensor-health alerts with read/unread state.

De-duplication: an alert is dropped when an unread alert of the same type
already exists whose age, measured from the new alert's timestamp, falls in
[0, ALERT_DEDUP_WINDOW_MIN). Dropped duplicates are not resurfaced later.
"""

import threading
from datetime import datetime, timedelta
from typing import Optional

import structlog

from gateway.constants import ALERT_DEDUP_WINDOW_MIN
from gateway.events import AlertRead, AlertsCleared, EventBus, SensorAlertRaised
from gateway.schemas import SensorAlert, SensorAlertType

logger = structlog.get_logger(__name__)

_DEDUP_WINDOW = timedelta(minutes=ALERT_DEDUP_WINDOW_MIN)


def alert_id_for(alert_type: SensorAlertType, created_at: datetime) -> str:
    """Identity derived from type and creation instant (millisecond precision)."""
    return f"{alert_type.value}_{int(created_at.timestamp() * 1000)}"


class AlertLedger:
    """Thread-safe ledger; all mutations are serialized by one lock."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self._lock = threading.RLock()
        self._alerts: list[SensorAlert] = []

    def record(self, alert: SensorAlert) -> bool:
        """
        Append alert unless it duplicates a recent unread one.

        Returns True if the alert was recorded (and announced).
        """
        recorded = self.admit(alert)
        if recorded is None:
            return False
        self.announce(recorded)
        return True

    def admit(self, alert: SensorAlert) -> Optional[SensorAlert]:
        """
        Append alert without announcing it; returns a copy of what was stored,
        or None for a duplicate. Callers holding their own lock announce later.
        """
        with self._lock:
            duplicate = next(
                (
                    existing
                    for existing in self._alerts
                    if existing.type == alert.type
                    and not existing.is_read
                    and timedelta(0) <= alert.timestamp - existing.timestamp < _DEDUP_WINDOW
                ),
                None,
            )
            if duplicate is not None:
                logger.debug(
                    "sensor_alert_deduplicated",
                    alert_type=alert.type.value,
                    existing_id=duplicate.id,
                )
                return None

            # Same type in the same millisecond: later alert gets a suffix
            known_ids = {existing.id for existing in self._alerts}
            if alert.id in known_ids:
                suffix = 1
                while f"{alert.id}-{suffix}" in known_ids:
                    suffix += 1
                alert = alert.model_copy(update={"id": f"{alert.id}-{suffix}"})

            self._alerts.append(alert)
            recorded = alert.model_copy()

        logger.info(
            "sensor_alert_recorded",
            alert_id=recorded.id,
            alert_type=recorded.type.value,
        )
        return recorded

    def announce(self, alert: SensorAlert) -> None:
        self._bus.publish(SensorAlertRaised(alert=alert))

    def unread(self) -> list[SensorAlert]:
        """Unread alerts in insertion order (copies)."""
        with self._lock:
            return [alert.model_copy() for alert in self._alerts if not alert.is_read]

    def all(self) -> list[SensorAlert]:
        with self._lock:
            return [alert.model_copy() for alert in self._alerts]

    def mark_read(self, alert_id: str) -> bool:
        """Flip is_read on the matching alert. Unknown ids are a no-op."""
        with self._lock:
            alert = next((a for a in self._alerts if a.id == alert_id), None)
            if alert is None:
                return False
            alert.is_read = True

        self._bus.publish(AlertRead(alert_id=alert_id))
        return True

    def clear(self) -> None:
        """Drop every alert. Not recoverable."""
        with self._lock:
            count = len(self._alerts)
            self._alerts = []

        logger.info("sensor_alerts_cleared", count=count)
        self._bus.publish(AlertsCleared())
