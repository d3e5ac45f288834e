"""
gateway/services/reading_events.py

Entry point for new glucose readings.
Announces every reading on the bus and forwards online readings to the
reading alert engine; offline readings are alerted once they sync.
"""

from typing import Optional

import structlog

from gateway.events import EventBus, NewGlucoseReading, ReadingSynced
from gateway.schemas import GlucoseAlert, GlucoseReading
from gateway.services.triage import ReadingAlertEngine

logger = structlog.get_logger(__name__)


class ReadingEventHub:
    def __init__(self, *, bus: EventBus, alert_engine: ReadingAlertEngine) -> None:
        self._bus = bus
        self._alert_engine = alert_engine
        self._current_user_id: Optional[str] = None

    @property
    def current_user_id(self) -> Optional[str]:
        return self._current_user_id

    def set_current_user_id(self, user_id: Optional[str]) -> None:
        self._current_user_id = user_id
        logger.info("reading_user_set", user_id=user_id)

    def emit_new_reading(self, reading: GlucoseReading) -> Optional[GlucoseAlert]:
        """Announce reading; returns the alert raised for it, if any."""
        self._bus.publish(NewGlucoseReading(reading=reading))

        if self._current_user_id:
            reading = reading.model_copy(update={"user_id": self._current_user_id})

        if reading.is_offline:
            logger.debug("offline_reading_not_alerted", value=reading.value)
            return None
        return self._alert_engine.process_reading(reading)

    def emit_reading_synced(self, reading: GlucoseReading) -> None:
        self._bus.publish(ReadingSynced(reading=reading))
