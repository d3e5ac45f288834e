"""
gateway/events.py

In-process typed publish/subscribe channel connecting the engines to each
other and to presentation-layer subscribers.

Every event is a pydantic model tagged by a literal `kind`; BusEvent is the
discriminated union of all of them. Subscribers register per event class and
are invoked synchronously, in registration order, on the publishing thread.
"""

import threading
from typing import Annotated, Callable, Literal, TypeVar, Union

import structlog
from pydantic import BaseModel, Field

from gateway.schemas import GlucoseAlert, GlucoseReading, SensorAlert, SensorStatus

logger = structlog.get_logger(__name__)


class SensorAlertRaised(BaseModel):
    kind: Literal["sensor_alert"] = "sensor_alert"
    alert: SensorAlert


class SensorActivated(BaseModel):
    kind: Literal["sensor_activated"] = "sensor_activated"
    status: SensorStatus


class ConnectionStatusChanged(BaseModel):
    kind: Literal["connection_status_changed"] = "connection_status_changed"
    connected: bool


class AlertRead(BaseModel):
    kind: Literal["alert_read"] = "alert_read"
    alert_id: str


class AlertsCleared(BaseModel):
    kind: Literal["alerts_cleared"] = "alerts_cleared"


class GlucoseAlertRaised(BaseModel):
    kind: Literal["glucose_alert"] = "glucose_alert"
    alert: GlucoseAlert


class GlucoseAlertAcknowledged(BaseModel):
    kind: Literal["glucose_alert_acknowledged"] = "glucose_alert_acknowledged"
    alert: GlucoseAlert


class NewGlucoseReading(BaseModel):
    kind: Literal["new_glucose_reading"] = "new_glucose_reading"
    reading: GlucoseReading


class ReadingSynced(BaseModel):
    kind: Literal["reading_synced"] = "reading_synced"
    reading: GlucoseReading


BusEvent = Annotated[
    Union[
        SensorAlertRaised,
        SensorActivated,
        ConnectionStatusChanged,
        AlertRead,
        AlertsCleared,
        GlucoseAlertRaised,
        GlucoseAlertAcknowledged,
        NewGlucoseReading,
        ReadingSynced,
    ],
    Field(discriminator="kind"),
]

EVENT_TYPES: tuple[type[BaseModel], ...] = (
    SensorAlertRaised,
    SensorActivated,
    ConnectionStatusChanged,
    AlertRead,
    AlertsCleared,
    GlucoseAlertRaised,
    GlucoseAlertAcknowledged,
    NewGlucoseReading,
    ReadingSynced,
)

E = TypeVar("E", bound=BaseModel)


class Subscription:
    """Handle returned by EventBus.subscribe; call remove() to unsubscribe."""

    def __init__(self, bus: "EventBus", event_type: type[BaseModel], handler: Callable) -> None:
        self._bus = bus
        self._event_type = event_type
        self._handler = handler

    def remove(self) -> None:
        self._bus._unsubscribe(self._event_type, self._handler)


class EventBus:
    """Fire-and-forget, at-least-once delivery within the process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[type[BaseModel], list[Callable]] = {
            event_type: [] for event_type in EVENT_TYPES
        }

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> Subscription:
        """Register handler for one event class."""
        if event_type not in self._handlers:
            raise TypeError(f"{event_type!r} is not a bus event")
        with self._lock:
            self._handlers[event_type].append(handler)
        return Subscription(self, event_type, handler)

    def publish(self, event: BaseModel) -> None:
        """
        Deliver event to its subscribers.

        Unknown event types are ignored. A failing subscriber is logged and
        does not prevent delivery to the others.
        """
        with self._lock:
            handlers = list(self._handlers.get(type(event), ()))
        if type(event) not in self._handlers:
            logger.debug("event_type_unknown", event_type=type(event).__name__)
            return

        for handler in handlers:
            try:
                handler(event)
            except Exception as exc:
                logger.warning(
                    "event_subscriber_failed",
                    kind=getattr(event, "kind", None),
                    error=str(exc),
                )

    def remove_all_listeners(self) -> None:
        with self._lock:
            for handlers in self._handlers.values():
                handlers.clear()

    def _unsubscribe(self, event_type: type[BaseModel], handler: Callable) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
