"""
gateway/ports.py

Collaborator interfaces consumed by the engines.
Concrete adapters live in db/stores.py, gateway/services/remote_mirror.py
and gateway/services/devices.py; tests substitute fakes.
"""

from datetime import datetime
from concurrent.futures import Future
from typing import Any, Callable, Optional, Protocol

from gateway.schemas import GlucoseReading, SensorStatus


class RecordNotFoundError(LookupError):
    """Raised by a store when the record to update does not exist."""


class AudioUnavailableError(RuntimeError):
    """Raised by an AudioLoader when the sound resource cannot be loaded or played."""


class SnapshotStore(Protocol):
    """Durable key-value store for the sensor status snapshot."""

    async def get(self, key: str) -> Optional[bytes]: ...

    async def set(self, key: str, blob: bytes) -> None: ...


class RemoteMirror(Protocol):
    """Best-effort remote replica of sensor status."""

    async def read_record(self, collection: str, record_id: str) -> Optional[dict[str, Any]]: ...

    async def update_record(
        self, collection: str, record_id: str, fields: dict[str, Any]
    ) -> None: ...


class HistoryStore(Protocol):
    """Persisted glucose reading history, keyed by user."""

    async def insert(self, user_id: str, reading: GlucoseReading) -> str: ...

    async def update(self, user_id: str, reading_id: str, fields: dict[str, Any]) -> None: ...


class BatteryReader(Protocol):
    """Source of the sensor battery level; None when it cannot be determined."""

    async def read_level(self, status: SensorStatus, now: datetime) -> Optional[int]: ...


class Playable(Protocol):
    def play(self, loop: bool) -> None: ...

    def stop(self) -> None: ...

    def set_volume(self, level: float) -> None: ...


class AudioLoader(Protocol):
    def load(self, resource_ref: str) -> Playable: ...


class Vibrator(Protocol):
    def vibrate(self, duration_ms: int) -> None: ...

    def cancel(self) -> None: ...


# Callable from any thread; schedules the acknowledgment and returns its result.
AcknowledgeAction = Callable[[], "Future[bool]"]


class AcknowledgePrompt(Protocol):
    """
    Blocking, non-dismissible prompt whose only action is acknowledge.

    on_acknowledge is synchronous. Do not block on the returned Future from
    the event loop thread.
    """

    def show(
        self,
        title: str,
        message: str,
        on_acknowledge: AcknowledgeAction,
    ) -> None: ...
