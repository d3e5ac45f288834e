"""
gateway/container.py

Builds the service objects once at process start.
Consumers receive the Services instance explicitly (FastAPI app.state);
there are no module-level engine singletons.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from config import Settings
from db.models import Base, create_engine_for, create_session_factory
from db.stores import SqlHistoryStore, SqlSnapshotStore
from gateway.clock import Clock, SystemClock
from gateway.events import EventBus
from gateway.ports import (
    AcknowledgePrompt,
    AudioLoader,
    BatteryReader,
    HistoryStore,
    RemoteMirror,
    SnapshotStore,
    Vibrator,
)
from gateway.services.alert_ledger import AlertLedger
from gateway.services.battery import EstimatedBatteryReader
from gateway.services.devices import (
    LoggingAcknowledgePrompt,
    LoggingVibrator,
    UnavailableAudioLoader,
)
from gateway.services.notification import NotificationDispatcher
from gateway.services.reading_events import ReadingEventHub
from gateway.services.remote_mirror import HttpRemoteMirror
from gateway.services.sensor_status import SensorStatusEngine
from gateway.services.side_effects import SideEffects
from gateway.services.triage import ReadingAlertEngine


@dataclass
class Services:
    clock: Clock
    bus: EventBus
    ledger: AlertLedger
    sensor_status: SensorStatusEngine
    dispatcher: NotificationDispatcher
    alert_engine: ReadingAlertEngine
    reading_events: ReadingEventHub
    side_effects: SideEffects
    db_engine: Optional[AsyncEngine] = None

    async def start(self) -> None:
        if self.db_engine is not None:
            async with self.db_engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        self.dispatcher.preload()
        await self.sensor_status.restore()

    async def shutdown(self) -> None:
        self.dispatcher.release()
        await self.side_effects.drain()
        if self.db_engine is not None:
            await self.db_engine.dispose()


def build_services(
    *,
    settings: Settings,
    clock: Optional[Clock] = None,
    snapshot_store: Optional[SnapshotStore] = None,
    history_store: Optional[HistoryStore] = None,
    remote_mirror: Optional[RemoteMirror] = None,
    battery_reader: Optional[BatteryReader] = None,
    vibrator: Optional[Vibrator] = None,
    audio_loader: Optional[AudioLoader] = None,
    prompt: Optional[AcknowledgePrompt] = None,
) -> Services:
    """Wire every engine; any collaborator can be substituted."""
    clock = clock or SystemClock()
    bus = EventBus()
    side_effects = SideEffects()

    db_engine = None
    if snapshot_store is None or history_store is None:
        db_engine = create_engine_for(settings.resolved_database_url)
        session_factory = create_session_factory(db_engine)
        snapshot_store = snapshot_store or SqlSnapshotStore(session_factory)
        history_store = history_store or SqlHistoryStore(session_factory)

    ledger = AlertLedger(bus)
    sensor_status = SensorStatusEngine(
        clock=clock,
        ledger=ledger,
        bus=bus,
        snapshot_store=snapshot_store,
        remote_mirror=remote_mirror
        or HttpRemoteMirror(settings.remote_mirror_url, settings.remote_mirror_timeout_s),
        battery_reader=battery_reader or EstimatedBatteryReader(),
        side_effects=side_effects,
    )
    dispatcher = NotificationDispatcher(
        vibrator=vibrator or LoggingVibrator(),
        audio_loader=audio_loader or UnavailableAudioLoader(),
        sound_ref=settings.alarm_sound_ref,
        fallback_sound_ref=settings.alarm_fallback_sound_ref or None,
        pulse_ms=settings.alarm_vibration_pulse_ms,
        interval_s=settings.alarm_vibration_interval_s,
    )
    alert_engine = ReadingAlertEngine(
        clock=clock,
        bus=bus,
        dispatcher=dispatcher,
        history_store=history_store,
        prompt=prompt or LoggingAcknowledgePrompt(),
    )
    reading_events = ReadingEventHub(bus=bus, alert_engine=alert_engine)

    return Services(
        clock=clock,
        bus=bus,
        ledger=ledger,
        sensor_status=sensor_status,
        dispatcher=dispatcher,
        alert_engine=alert_engine,
        reading_events=reading_events,
        side_effects=side_effects,
        db_engine=db_engine,
    )
