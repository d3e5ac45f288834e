"""
tests/fixtures.py

Shared test data, fakes and builders.
All tests must use these helpers instead of hardcoding collaborators.
"""

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from gateway.events import EventBus
from gateway.ports import AcknowledgeAction, AudioUnavailableError, RecordNotFoundError
from gateway.schemas import GlucoseAlert, GlucoseAlertType, GlucoseReading, SensorStatus
from gateway.services.alert_ledger import AlertLedger
from gateway.services.battery import EstimatedBatteryReader
from gateway.services.sensor_status import SensorStatusEngine
from gateway.services.side_effects import SideEffects

T0: datetime = datetime(2024, 6, 15, 8, 0, 0, tzinfo=timezone.utc)

TEST_USER_ID: str = "u1"
TEST_SERIAL: str = "3MH00ABC123"


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class InMemorySnapshotStore:
    def __init__(self, fail_writes: bool = False) -> None:
        self.blobs: dict[str, bytes] = {}
        self.writes: int = 0
        self.fail_writes = fail_writes

    async def get(self, key: str) -> Optional[bytes]:
        return self.blobs.get(key)

    async def set(self, key: str, blob: bytes) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        self.writes += 1
        self.blobs[key] = blob


class FakeRemoteMirror:
    def __init__(self, users: Optional[set[str]] = None, fail: bool = False) -> None:
        self.users = users if users is not None else {TEST_USER_ID}
        self.fail = fail
        self.updates: list[tuple[str, str, dict[str, Any]]] = []

    async def read_record(self, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        if self.fail:
            raise ConnectionError("mirror unreachable")
        return {"id": record_id} if record_id in self.users else None

    async def update_record(self, collection: str, record_id: str, fields: dict[str, Any]) -> None:
        self.updates.append((collection, record_id, fields))


class FakeHistoryStore:
    def __init__(self, fail_update: bool = False, fail_insert: bool = False) -> None:
        self.inserts: list[tuple[str, GlucoseReading]] = []
        self.updates: list[tuple[str, str, dict[str, Any]]] = []
        self.fail_update = fail_update
        self.fail_insert = fail_insert

    async def insert(self, user_id: str, reading: GlucoseReading) -> str:
        if self.fail_insert:
            raise ConnectionError("history unavailable")
        self.inserts.append((user_id, reading))
        return f"reading_{len(self.inserts)}"

    async def update(self, user_id: str, reading_id: str, fields: dict[str, Any]) -> None:
        if self.fail_update:
            raise RecordNotFoundError(reading_id)
        self.updates.append((user_id, reading_id, fields))


class FixedBatteryReader:
    def __init__(self, level: Optional[int]) -> None:
        self.level = level

    async def read_level(self, status: SensorStatus, now: datetime) -> Optional[int]:
        return self.level


class RecordingVibrator:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.pulses: int = 0
        self.cancels: int = 0

    def vibrate(self, duration_ms: int) -> None:
        with self._lock:
            self.pulses += 1

    def cancel(self) -> None:
        with self._lock:
            self.cancels += 1


class FakeSound:
    def __init__(self, fail_play: bool = False) -> None:
        self.fail_play = fail_play
        self.plays: list[bool] = []
        self.volumes: list[float] = []
        self.stops: int = 0

    def play(self, loop: bool) -> None:
        if self.fail_play:
            raise AudioUnavailableError("device busy")
        self.plays.append(loop)

    def stop(self) -> None:
        self.stops += 1

    def set_volume(self, level: float) -> None:
        self.volumes.append(level)


class FakeAudioLoader:
    """Returns the queued sounds in order; raises once the queue is empty."""

    def __init__(self, sounds: Optional[list[FakeSound]] = None) -> None:
        self.sounds = list(sounds or [])
        self.loaded_refs: list[str] = []

    def load(self, resource_ref: str) -> FakeSound:
        self.loaded_refs.append(resource_ref)
        if not self.sounds:
            raise AudioUnavailableError(f"cannot load {resource_ref}")
        return self.sounds.pop(0)


class RecordingPrompt:
    def __init__(self) -> None:
        self.shown: list[tuple[str, str]] = []
        self.on_acknowledge: Optional[AcknowledgeAction] = None

    def show(self, title: str, message: str, on_acknowledge: AcknowledgeAction) -> None:
        self.shown.append((title, message))
        self.on_acknowledge = on_acknowledge


def build_reading(
    value: float = 120.0,
    user_id: Optional[str] = TEST_USER_ID,
    reading_id: Optional[str] = None,
    timestamp: Optional[datetime] = None,
    comment: Optional[str] = None,
    is_offline: bool = False,
) -> GlucoseReading:
    """Build a GlucoseReading with sensible defaults for testing."""
    return GlucoseReading(
        id=reading_id,
        value=value,
        timestamp=timestamp or T0,
        user_id=user_id,
        comment=comment,
        is_offline=is_offline,
    )


def build_alert(
    value: float = 250.0,
    alert_type: GlucoseAlertType = GlucoseAlertType.HIGH,
    **reading_kwargs: Any,
) -> GlucoseAlert:
    return GlucoseAlert(
        reading=build_reading(value=value, **reading_kwargs),
        alert_type=alert_type,
        timestamp=T0,
    )


def build_sensor_engine(
    clock: Optional[FrozenClock] = None,
    snapshot_store: Optional[InMemorySnapshotStore] = None,
    remote_mirror: Optional[FakeRemoteMirror] = None,
    battery_reader: Any = None,
    bus: Optional[EventBus] = None,
) -> tuple[SensorStatusEngine, AlertLedger, EventBus]:
    """Wire a SensorStatusEngine over in-memory collaborators."""
    bus = bus or EventBus()
    ledger = AlertLedger(bus)
    engine = SensorStatusEngine(
        clock=clock or FrozenClock(),
        ledger=ledger,
        bus=bus,
        snapshot_store=snapshot_store or InMemorySnapshotStore(),
        remote_mirror=remote_mirror,
        battery_reader=battery_reader or EstimatedBatteryReader(),
        side_effects=SideEffects(),
    )
    return engine, ledger, bus


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll predicate until true or timeout (for dispatcher thread tests)."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()
