"""
gateway/services/sensor_status.py

Sensor Status Engine.
Owns the canonical SensorStatus, recomputes its derived flags against the
clock on every read, and is the only producer of sensor-health alerts.

- activate / update_connection_status / tick: mutate, persist, mirror, announce
- get_status / has_active_sensor: pull-based recompute, no hidden polling
- restore: reload the last snapshot at startup

Snapshot writes and remote mirroring run as background tasks; their
failures are logged and never reach the caller or roll back local state.
"""

import asyncio
import threading
from datetime import datetime, timedelta
from typing import Optional

import structlog
from pydantic import ValidationError

from gateway.clock import Clock
from gateway.constants import (
    BATTERY_LOW_THRESHOLD,
    EXPIRING_SOON_HOURS,
    MIRROR_SENSORS_COLLECTION,
    MIRROR_USERS_COLLECTION,
    SENSOR_STATUS_SNAPSHOT_KEY,
    SENSOR_WEAR_DAYS,
)
from gateway.events import ConnectionStatusChanged, EventBus, SensorActivated
from gateway.ports import BatteryReader, RemoteMirror, SnapshotStore
from gateway.schemas import SensorAlert, SensorAlertType, SensorStatus
from gateway.services.alert_ledger import AlertLedger, alert_id_for
from gateway.services.side_effects import SideEffects

logger = structlog.get_logger(__name__)

_EXPIRING_SOON = timedelta(hours=EXPIRING_SOON_HOURS)

# Fields replicated to the remote sensors collection
_MIRRORED_FIELDS: set[str] = {
    "last_scan_time",
    "is_connected",
    "battery_level",
    "is_expired",
    "is_expiring_soon",
    "has_low_battery",
}


def recompute_derived(status: SensorStatus, now: datetime) -> None:
    """Set is_expired / is_expiring_soon / has_low_battery in place."""
    if status.expiration_date is not None:
        status.is_expired = now > status.expiration_date
        status.is_expiring_soon = (
            not status.is_expired and status.expiration_date - now < _EXPIRING_SOON
        )
    else:
        status.is_expired = False
        status.is_expiring_soon = False

    status.has_low_battery = (
        status.battery_level is not None and status.battery_level < BATTERY_LOW_THRESHOLD
    )


def remaining_wear(status: SensorStatus, now: datetime) -> str:
    """Human summary of wear time left, e.g. '3 days, 5 hours'."""
    if status.expiration_date is None:
        return "N/A"
    remaining = status.expiration_date - now
    if remaining <= timedelta(0):
        return "Expired"

    days = remaining.days
    hours = remaining.seconds // 3600
    return f"{days} day{'' if days == 1 else 's'}, {hours} hour{'' if hours == 1 else 's'}"


class SensorStatusEngine:
    """
    Single-writer owner of SensorStatus.

    In-memory state is guarded by a re-entrant lock so reads from other
    threads never observe a half-applied update; async mutators are further
    serialized by an asyncio lock because they await the battery reader.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        ledger: AlertLedger,
        bus: EventBus,
        snapshot_store: SnapshotStore,
        remote_mirror: Optional[RemoteMirror] = None,
        battery_reader: Optional[BatteryReader] = None,
        side_effects: Optional[SideEffects] = None,
    ) -> None:
        self._clock = clock
        self._ledger = ledger
        self._bus = bus
        self._snapshot_store = snapshot_store
        self._remote_mirror = remote_mirror
        self._battery_reader = battery_reader
        self._side_effects = side_effects or SideEffects()

        self._lock = threading.RLock()
        self._write_lock = asyncio.Lock()
        self._save_lock = asyncio.Lock()
        self._mirror_lock = asyncio.Lock()
        self._status = SensorStatus()

    # ── Queries ──────────────────────────────────────────────

    def get_status(self) -> SensorStatus:
        """Recompute against now, evaluate alerts, return a copy."""
        with self._lock:
            raised = self._refresh_locked(self._clock.now())
            status = self._status.model_copy()
        self._announce(raised)
        return status

    def has_active_sensor(self) -> bool:
        with self._lock:
            recompute_derived(self._status, self._clock.now())
            return (
                bool(self._status.serial_number)
                and self._status.activation_date is not None
                and not self._status.is_expired
            )

    # ── Mutations ────────────────────────────────────────────

    async def restore(self) -> None:
        """Load the persisted snapshot, if any, and recompute."""
        try:
            blob = await self._snapshot_store.get(SENSOR_STATUS_SNAPSHOT_KEY)
        except Exception as exc:
            logger.warning("snapshot_load_failed", error=str(exc))
            return
        if blob is None:
            logger.info("snapshot_missing", key=SENSOR_STATUS_SNAPSHOT_KEY)
            return

        try:
            restored = SensorStatus.model_validate_json(blob)
        except ValidationError as exc:
            logger.warning("snapshot_corrupt", error=str(exc))
            return

        async with self._write_lock:
            with self._lock:
                self._status = restored
                raised = self._refresh_locked(self._clock.now())
        self._announce(raised)
        logger.info(
            "sensor_status_restored",
            serial_number=restored.serial_number,
            is_connected=restored.is_connected,
        )

    async def activate(
        self,
        serial_number: str,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> SensorStatus:
        """Start a new 14-day wear period for serial_number."""
        now = now or self._clock.now()
        async with self._write_lock:
            with self._lock:
                self._status = self._status.model_copy(
                    update={
                        "serial_number": serial_number,
                        "user_id": user_id,
                        "activation_date": now,
                        "expiration_date": now + timedelta(days=SENSOR_WEAR_DAYS),
                        "is_connected": True,
                        "last_scan_time": now,
                        "is_expired": False,
                        "is_expiring_soon": False,
                    }
                )
                activated = self._status.model_copy()

            level = await self._read_battery(activated, now)

            with self._lock:
                if level is not None:
                    self._status.battery_level = level
                    self._status.has_low_battery = level < BATTERY_LOW_THRESHOLD
                snapshot = self._status.model_copy()
                self._schedule_sync()

        logger.info(
            "sensor_activated",
            serial_number=serial_number,
            user_id=user_id,
            expiration_date=snapshot.expiration_date.isoformat(),
            battery_level=snapshot.battery_level,
        )
        self._bus.publish(SensorActivated(status=snapshot))
        return snapshot

    async def update_connection_status(self, connected: bool) -> bool:
        """
        Flip is_connected. Returns False (and does nothing) if unchanged.
        last_scan_time only moves forward on reconnect.
        """
        async with self._write_lock:
            with self._lock:
                if self._status.is_connected == connected:
                    return False
                now = self._clock.now()
                self._status.is_connected = connected
                if connected:
                    self._status.last_scan_time = now
                raised = self._refresh_locked(now)
                self._schedule_sync()

        self._announce(raised)
        logger.info("sensor_connection_changed", connected=connected)
        self._bus.publish(ConnectionStatusChanged(connected=connected))
        return True

    async def tick(self) -> SensorStatus:
        """Scheduler hook: refresh battery, recompute, persist, mirror."""
        async with self._write_lock:
            now = self._clock.now()
            with self._lock:
                current = self._status.model_copy()

            level = await self._read_battery(current, now)

            with self._lock:
                if level is not None:
                    self._status.battery_level = level
                raised = self._refresh_locked(now)
                self._schedule_sync()
                status = self._status.model_copy()

        self._announce(raised)
        return status

    async def drain(self) -> None:
        """Wait for outstanding snapshot and mirror writes."""
        await self._side_effects.drain()

    # ── Internals ────────────────────────────────────────────

    def _refresh_locked(self, now: datetime) -> list[SensorAlert]:
        recompute_derived(self._status, now)
        return self._evaluate_alerts_locked(now)

    def _announce(self, raised: list[SensorAlert]) -> None:
        for alert in raised:
            self._ledger.announce(alert)

    def _evaluate_alerts_locked(self, now: datetime) -> list[SensorAlert]:
        """
        Record alerts in priority order; EXPIRED suppresses EXPIRING_SOON.
        Returns the recorded alerts for announcing once the lock is released.
        """
        status = self._status
        raised: list[SensorAlert] = []

        if not status.is_connected and status.serial_number:
            self._admit(
                raised,
                SensorAlertType.DISCONNECTED,
                "Sensor disconnected. Please scan to reconnect.",
                now,
            )

        if status.has_low_battery and status.battery_level is not None:
            self._admit(
                raised,
                SensorAlertType.LOW_BATTERY,
                f"Sensor battery low ({status.battery_level}%). "
                "Please prepare for replacement.",
                now,
            )

        if status.is_expired:
            self._admit(
                raised,
                SensorAlertType.EXPIRED,
                "Sensor has expired. Please replace the sensor.",
                now,
            )
        elif status.is_expiring_soon:
            self._admit(
                raised,
                SensorAlertType.EXPIRING_SOON,
                "Sensor expiring soon. Please prepare a new sensor.",
                now,
            )
        return raised

    def _admit(
        self,
        raised: list[SensorAlert],
        alert_type: SensorAlertType,
        message: str,
        now: datetime,
    ) -> None:
        recorded = self._ledger.admit(
            SensorAlert(
                id=alert_id_for(alert_type, now),
                type=alert_type,
                message=message,
                timestamp=now,
            )
        )
        if recorded is not None:
            raised.append(recorded)

    async def _read_battery(self, status: SensorStatus, now: datetime) -> Optional[int]:
        if self._battery_reader is None:
            return None
        try:
            return await self._battery_reader.read_level(status, now)
        except Exception as exc:
            logger.warning(
                "battery_read_failed",
                serial_number=status.serial_number,
                error=str(exc),
            )
            return None

    def _schedule_sync(self) -> None:
        self._side_effects.spawn(self._save_snapshot(), name="sensor_snapshot_save")
        self._side_effects.spawn(self._mirror_status(), name="sensor_status_mirror")

    async def _save_snapshot(self) -> None:
        # Each write takes the latest state, so the last write always wins
        async with self._save_lock:
            with self._lock:
                blob = self._status.model_dump_json().encode("utf-8")
            try:
                await self._snapshot_store.set(SENSOR_STATUS_SNAPSHOT_KEY, blob)
            except Exception as exc:
                logger.warning(
                    "snapshot_save_failed",
                    key=SENSOR_STATUS_SNAPSHOT_KEY,
                    error=str(exc),
                )

    async def _mirror_status(self) -> None:
        if self._remote_mirror is None:
            return
        async with self._mirror_lock:
            with self._lock:
                status = self._status.model_copy()
            if not status.user_id or not status.serial_number:
                return

            try:
                user = await self._remote_mirror.read_record(
                    MIRROR_USERS_COLLECTION, status.user_id
                )
                if user is None:
                    logger.info("remote_mirror_user_missing", user_id=status.user_id)
                    return
                await self._remote_mirror.update_record(
                    MIRROR_SENSORS_COLLECTION,
                    status.serial_number,
                    status.model_dump(mode="json", include=_MIRRORED_FIELDS),
                )
            except Exception as exc:
                logger.warning(
                    "remote_mirror_failed",
                    user_id=status.user_id,
                    serial_number=status.serial_number,
                    error=str(exc),
                )
