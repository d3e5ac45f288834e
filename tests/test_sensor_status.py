"""
tests/test_sensor_status.py

Unit tests for gateway/services/sensor_status.py.
Covers derived-flag recomputation, activation, connection changes,
alert generation, snapshot persistence and remote mirroring.
"""

import threading
from datetime import timedelta

import pytest

from gateway.constants import SENSOR_STATUS_SNAPSHOT_KEY
from gateway.events import ConnectionStatusChanged, SensorActivated, SensorAlertRaised
from gateway.schemas import SensorAlertType, SensorStatus
from gateway.services.battery import estimate_battery_level
from gateway.services.sensor_status import recompute_derived, remaining_wear
from tests.fixtures import (
    T0,
    TEST_SERIAL,
    TEST_USER_ID,
    FakeRemoteMirror,
    FixedBatteryReader,
    FrozenClock,
    InMemorySnapshotStore,
    build_sensor_engine,
)


@pytest.mark.parametrize("hours_ago", [0.001, 1, 24, 24 * 30])
def test_past_expiration_is_expired_not_expiring(hours_ago: float) -> None:
    status = SensorStatus(expiration_date=T0 - timedelta(hours=hours_ago))
    recompute_derived(status, T0)
    assert status.is_expired is True
    assert status.is_expiring_soon is False


@pytest.mark.parametrize("hours_left", [0.001, 1, 12, 23.99])
def test_expiration_within_a_day_is_expiring_soon(hours_left: float) -> None:
    status = SensorStatus(expiration_date=T0 + timedelta(hours=hours_left))
    recompute_derived(status, T0)
    assert status.is_expiring_soon is True
    assert status.is_expired is False


def test_expiration_a_day_or_more_away_is_neither() -> None:
    status = SensorStatus(expiration_date=T0 + timedelta(hours=24))
    recompute_derived(status, T0)
    assert status.is_expiring_soon is False
    assert status.is_expired is False


@pytest.mark.parametrize(
    ("level", "expected"),
    [(0, True), (14, True), (15, False), (100, False), (None, False)],
)
def test_low_battery_threshold(level: int | None, expected: bool) -> None:
    status = SensorStatus(battery_level=level, has_low_battery=True)
    recompute_derived(status, T0)
    assert status.has_low_battery is expected


def test_estimate_battery_level_drains_per_whole_day() -> None:
    assert estimate_battery_level(T0, T0) == 100
    assert estimate_battery_level(T0, T0 + timedelta(days=3, hours=23)) == 82
    assert estimate_battery_level(T0, T0 + timedelta(days=17)) == 0


def test_remaining_wear_summary() -> None:
    assert remaining_wear(SensorStatus(), T0) == "N/A"
    assert remaining_wear(SensorStatus(expiration_date=T0), T0) == "Expired"
    status = SensorStatus(expiration_date=T0 + timedelta(days=1, hours=5))
    assert remaining_wear(status, T0) == "1 day, 5 hours"
    status = SensorStatus(expiration_date=T0 + timedelta(days=3, hours=1))
    assert remaining_wear(status, T0) == "3 days, 1 hour"


@pytest.mark.asyncio
async def test_activate_then_get_status_is_fresh_and_connected() -> None:
    """A just-activated sensor is connected, not expired and not expiring."""
    engine, ledger, bus = build_sensor_engine()
    activated: list[SensorActivated] = []
    bus.subscribe(SensorActivated, activated.append)

    await engine.activate(TEST_SERIAL, TEST_USER_ID)
    status = engine.get_status()

    assert status.is_connected is True
    assert status.is_expired is False
    assert status.is_expiring_soon is False
    assert status.activation_date == T0
    assert status.expiration_date == T0 + timedelta(days=14)
    assert status.last_scan_time == T0
    assert status.battery_level == 100
    assert engine.has_active_sensor() is True
    assert len(activated) == 1
    assert activated[0].status.serial_number == TEST_SERIAL
    assert ledger.unread() == []


@pytest.mark.asyncio
async def test_get_status_returns_a_copy() -> None:
    engine, _, _ = build_sensor_engine()
    await engine.activate(TEST_SERIAL, TEST_USER_ID)

    status = engine.get_status()
    status.is_connected = False

    assert engine.get_status().is_connected is True


@pytest.mark.asyncio
async def test_expiring_soon_scenario_raises_exactly_one_alert() -> None:
    """Activate at T0, advance to T0+13d1h: expiring soon, one EXPIRING_SOON alert."""
    clock = FrozenClock()
    engine, ledger, _ = build_sensor_engine(clock=clock)
    await engine.activate(TEST_SERIAL, TEST_USER_ID)

    clock.advance(days=13, hours=1)
    status = engine.get_status()
    engine.get_status()

    assert status.is_expiring_soon is True
    alerts = [a for a in ledger.all() if a.type is SensorAlertType.EXPIRING_SOON]
    assert len(alerts) == 1
    assert alerts[0].message == "Sensor expiring soon. Please prepare a new sensor."


@pytest.mark.asyncio
async def test_expired_suppresses_expiring_soon() -> None:
    clock = FrozenClock()
    engine, ledger, _ = build_sensor_engine(clock=clock)
    await engine.activate(TEST_SERIAL, TEST_USER_ID)

    clock.advance(days=14, minutes=1)
    status = engine.get_status()

    assert status.is_expired is True
    assert engine.has_active_sensor() is False
    types = [a.type for a in ledger.unread()]
    assert types == [SensorAlertType.EXPIRED]


@pytest.mark.asyncio
async def test_update_connection_status_is_idempotent() -> None:
    engine, _, bus = build_sensor_engine()
    changes: list[ConnectionStatusChanged] = []
    bus.subscribe(ConnectionStatusChanged, changes.append)
    await engine.activate(TEST_SERIAL, TEST_USER_ID)

    assert await engine.update_connection_status(True) is False
    assert changes == []


@pytest.mark.asyncio
async def test_disconnect_raises_alert_and_keeps_last_scan_time() -> None:
    clock = FrozenClock()
    engine, ledger, bus = build_sensor_engine(clock=clock)
    raised: list[SensorAlertRaised] = []
    bus.subscribe(SensorAlertRaised, raised.append)
    await engine.activate(TEST_SERIAL, TEST_USER_ID)

    clock.advance(hours=2)
    assert await engine.update_connection_status(False) is True

    status = engine.get_status()
    assert status.is_connected is False
    assert status.last_scan_time == T0
    assert [e.alert.type for e in raised] == [SensorAlertType.DISCONNECTED]

    clock.advance(hours=1)
    assert await engine.update_connection_status(True) is True
    assert engine.get_status().last_scan_time == T0 + timedelta(hours=3)


@pytest.mark.asyncio
async def test_disconnect_without_sensor_raises_nothing() -> None:
    engine, ledger, _ = build_sensor_engine()
    await engine.update_connection_status(True)
    await engine.update_connection_status(False)
    assert ledger.all() == []


@pytest.mark.asyncio
async def test_tick_applies_battery_reading_and_alerts_low_battery() -> None:
    reader = FixedBatteryReader(100)
    engine, ledger, _ = build_sensor_engine(battery_reader=reader)
    await engine.activate(TEST_SERIAL, TEST_USER_ID)

    reader.level = 10
    status = await engine.tick()

    assert status.battery_level == 10
    assert status.has_low_battery is True
    alerts = ledger.unread()
    assert [a.type for a in alerts] == [SensorAlertType.LOW_BATTERY]
    assert "(10%)" in alerts[0].message


@pytest.mark.asyncio
async def test_battery_reader_failure_is_swallowed() -> None:
    class BrokenReader:
        async def read_level(self, status, now):
            raise IOError("nfc timeout")

    engine, _, _ = build_sensor_engine(battery_reader=BrokenReader())
    status = await engine.activate(TEST_SERIAL, TEST_USER_ID)

    assert status.is_connected is True
    assert status.battery_level is None


@pytest.mark.asyncio
async def test_mutations_persist_snapshot_and_mirror() -> None:
    store = InMemorySnapshotStore()
    mirror = FakeRemoteMirror()
    engine, _, _ = build_sensor_engine(snapshot_store=store, remote_mirror=mirror)

    await engine.activate(TEST_SERIAL, TEST_USER_ID)
    await engine.update_connection_status(False)
    await engine.drain()

    saved = SensorStatus.model_validate_json(store.blobs[SENSOR_STATUS_SNAPSHOT_KEY])
    assert saved.serial_number == TEST_SERIAL
    assert saved.is_connected is False

    collection, record_id, fields = mirror.updates[-1]
    assert (collection, record_id) == ("sensors", TEST_SERIAL)
    assert fields["is_connected"] is False
    assert set(fields) == {
        "last_scan_time",
        "is_connected",
        "battery_level",
        "is_expired",
        "is_expiring_soon",
        "has_low_battery",
    }


@pytest.mark.asyncio
async def test_mirror_skips_unknown_user() -> None:
    mirror = FakeRemoteMirror(users=set())
    engine, _, _ = build_sensor_engine(remote_mirror=mirror)

    await engine.activate(TEST_SERIAL, TEST_USER_ID)
    await engine.drain()

    assert mirror.updates == []


@pytest.mark.asyncio
async def test_io_failures_never_reach_the_caller() -> None:
    """Snapshot and mirror failures are logged; local state still changes."""
    engine, _, bus = build_sensor_engine(
        snapshot_store=InMemorySnapshotStore(fail_writes=True),
        remote_mirror=FakeRemoteMirror(fail=True),
    )
    changes: list[ConnectionStatusChanged] = []
    bus.subscribe(ConnectionStatusChanged, changes.append)

    await engine.activate(TEST_SERIAL, TEST_USER_ID)
    await engine.update_connection_status(False)
    await engine.drain()

    assert engine.get_status().is_connected is False
    assert [c.connected for c in changes] == [False]


@pytest.mark.asyncio
async def test_restore_round_trips_snapshot() -> None:
    store = InMemorySnapshotStore()
    clock = FrozenClock()
    first, _, _ = build_sensor_engine(clock=clock, snapshot_store=store)
    await first.activate(TEST_SERIAL, TEST_USER_ID)
    await first.drain()

    second, ledger, _ = build_sensor_engine(clock=clock, snapshot_store=store)
    await second.restore()
    status = second.get_status()

    assert status.serial_number == TEST_SERIAL
    assert status.user_id == TEST_USER_ID
    assert status.expiration_date == T0 + timedelta(days=14)
    assert status.is_connected is True
    assert ledger.all() == []


@pytest.mark.asyncio
async def test_restore_ignores_missing_or_corrupt_snapshot() -> None:
    store = InMemorySnapshotStore()
    engine, _, _ = build_sensor_engine(snapshot_store=store)
    await engine.restore()
    assert engine.get_status() == SensorStatus()

    store.blobs[SENSOR_STATUS_SNAPSHOT_KEY] = b"{not json"
    await engine.restore()
    assert engine.get_status() == SensorStatus()


@pytest.mark.asyncio
async def test_alert_subscribers_run_outside_the_engine_lock() -> None:
    """A subscriber may hand work to a thread that reads the engine back."""
    engine, _, bus = build_sensor_engine()
    await engine.activate(TEST_SERIAL, TEST_USER_ID)
    reader_finished: list[bool] = []

    def read_from_other_thread(event: SensorAlertRaised) -> None:
        reader = threading.Thread(target=engine.get_status)
        reader.start()
        reader.join(timeout=1)
        reader_finished.append(not reader.is_alive())

    bus.subscribe(SensorAlertRaised, read_from_other_thread)

    await engine.update_connection_status(False)
    engine.get_status()
    await engine.drain()

    assert reader_finished == [True]
