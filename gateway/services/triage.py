"""
gateway/services/triage.py

Reading Alert Engine.
- classify: HIGH / LOW / None against the glucose safety thresholds
- process_reading: builds a GlucoseAlert for a breach, starts the alarm
  and delivers it to the presentation callback or the acknowledge prompt
- acknowledge: the only path that stops the alarm; commits the reading
  to history

Uses constants from gateway/constants.py; no magic numbers allowed.
"""

import asyncio
import math
import threading
from collections.abc import Mapping
from concurrent.futures import Future
from datetime import datetime
from typing import Any, Callable, Optional, Union

import structlog
from pydantic import ValidationError

from gateway.clock import Clock
from gateway.constants import (
    ALARM_PROMPT_TITLE,
    GLUCOSE_HIGH_THRESHOLD,
    GLUCOSE_LOW_THRESHOLD,
)
from gateway.events import EventBus, GlucoseAlertAcknowledged, GlucoseAlertRaised
from gateway.ports import AcknowledgeAction, AcknowledgePrompt, HistoryStore
from gateway.schemas import GlucoseAlert, GlucoseAlertType, GlucoseReading
from gateway.services.history import save_alert_to_history
from gateway.services.notification import NotificationDispatcher

logger = structlog.get_logger(__name__)

AlertCallback = Callable[[GlucoseAlert], None]
AlertKey = tuple[GlucoseAlertType, datetime, Optional[str], float, datetime]


def _reading_value(reading: Any) -> Optional[float]:
    """Numeric, finite value of a reading or mapping; None otherwise."""
    if reading is None:
        return None
    if isinstance(reading, Mapping):
        value = reading.get("value")
    else:
        value = getattr(reading, "value", None)

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def classify(reading: Any) -> Optional[GlucoseAlertType]:
    """HIGH above 180 mg/dL, LOW below 70 mg/dL; boundaries are in range."""
    value = _reading_value(reading)
    if value is None:
        return None
    if value < GLUCOSE_LOW_THRESHOLD:
        return GlucoseAlertType.LOW
    if value > GLUCOSE_HIGH_THRESHOLD:
        return GlucoseAlertType.HIGH
    return None


def alert_message(alert: GlucoseAlert) -> str:
    direction = "High" if alert.alert_type is GlucoseAlertType.HIGH else "Low"
    return f"{direction} glucose level detected: {alert.reading.value:g} mg/dL"


def alert_key(alert: GlucoseAlert) -> AlertKey:
    """Identity of an alert that survives copying and ignores ack state."""
    reading = alert.reading
    return (alert.alert_type, alert.timestamp, reading.id, reading.value, reading.timestamp)


class ReadingAlertEngine:
    """
    Holds at most one active GlucoseAlert.

    A breach while an alert is active replaces it; the alarm keeps running
    until the (new) active alert is acknowledged. Changing the active alert
    and moving the dispatcher happen under one lock, so a breach and an
    acknowledgment arriving from different threads cannot interleave.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        bus: EventBus,
        dispatcher: NotificationDispatcher,
        history_store: HistoryStore,
        prompt: AcknowledgePrompt,
    ) -> None:
        self._clock = clock
        self._bus = bus
        self._dispatcher = dispatcher
        self._history_store = history_store
        self._prompt = prompt

        self._lock = threading.Lock()
        self._active: Optional[GlucoseAlert] = None
        self._acknowledged: set[AlertKey] = set()
        self._callback: Optional[AlertCallback] = None

    @property
    def active_alert(self) -> Optional[GlucoseAlert]:
        return self._active

    def register_alert_callback(self, callback: AlertCallback) -> None:
        with self._lock:
            self._callback = callback

    def unregister_alert_callback(self) -> None:
        with self._lock:
            self._callback = None

    def process_reading(
        self,
        reading: Union[GlucoseReading, Mapping, None],
    ) -> Optional[GlucoseAlert]:
        """Classify reading and raise an alert on breach. Invalid input is ignored."""
        if isinstance(reading, Mapping):
            try:
                reading = GlucoseReading.model_validate(reading)
            except ValidationError as exc:
                logger.debug("reading_ignored", reason="invalid", errors=exc.error_count())
                return None

        alert_type = classify(reading)
        if alert_type is None:
            return None

        alert = GlucoseAlert(
            reading=reading,
            alert_type=alert_type,
            timestamp=self._clock.now(),
        )
        with self._lock:
            replaced = self._active
            self._active = alert
            callback = self._callback
            self._dispatcher.trigger_alert(alert)

        if replaced is not None:
            logger.info(
                "glucose_alert_replaced",
                previous_value=replaced.reading.value,
                value=reading.value,
            )
        logger.info(
            "glucose_alert_triggered",
            user_id=reading.user_id,
            alert_type=alert_type.value,
            value=reading.value,
        )
        self._bus.publish(GlucoseAlertRaised(alert=alert))

        if callback is not None:
            try:
                callback(alert)
            except Exception as exc:
                logger.warning("alert_callback_failed", error=str(exc))
        else:
            self._prompt.show(
                ALARM_PROMPT_TITLE,
                alert_message(alert),
                self._prompt_action(alert),
            )
        return alert

    async def acknowledge(self, alert: Optional[GlucoseAlert] = None) -> bool:
        """
        Acknowledge alert (default: the active one).

        Returns False when there is nothing to acknowledge or it was already
        acknowledged, including through a copy of the same alert; history is
        written at most once per alert.
        """
        with self._lock:
            target = alert if alert is not None else self._active
            if target is None or target.acknowledged:
                return False
            key = alert_key(target)
            if key in self._acknowledged:
                return False
            self._acknowledged.add(key)

            active = self._active
            if active is not None and alert_key(active) == key:
                active.acknowledged = True
                self._active = None
                self._dispatcher.stop()
            target.acknowledged = True

        logger.info(
            "glucose_alert_acknowledged",
            user_id=target.reading.user_id,
            alert_type=target.alert_type.value,
        )
        self._bus.publish(GlucoseAlertAcknowledged(alert=target))
        await save_alert_to_history(target, self._history_store)
        return True

    def _prompt_action(self, alert: GlucoseAlert) -> AcknowledgeAction:
        """
        Synchronous acknowledge action for the prompt.

        Schedules acknowledge() on the loop that raised the alert and returns
        its Future, so the prompt may call it from any thread. Without a
        running loop the acknowledgment runs to completion in the caller.
        """
        try:
            loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        def on_acknowledge() -> "Future[bool]":
            if loop is not None and loop.is_running():
                return asyncio.run_coroutine_threadsafe(self.acknowledge(alert), loop)
            done: Future[bool] = Future()
            done.set_result(asyncio.run(self.acknowledge(alert)))
            return done

        return on_acknowledge
