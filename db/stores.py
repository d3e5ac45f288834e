"""
db/stores.py

SQLAlchemy-backed implementations of the SnapshotStore and HistoryStore
ports. Errors are logged here and re-raised; the engines decide whether a
failure is swallowed.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.models import GlucoseMeasurement, SensorSnapshot
from gateway.ports import RecordNotFoundError
from gateway.schemas import GlucoseReading

logger = structlog.get_logger(__name__)

# Reading field name -> column name for partial updates
_UPDATABLE_COLUMNS: dict[str, str] = {
    "value": "value",
    "timestamp": "recorded_at",
    "comment": "comment",
    "is_alert": "is_alert",
}


class SqlSnapshotStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> Optional[bytes]:
        async with self._session_factory() as session:
            row = await session.get(SensorSnapshot, key)
            return row.blob if row is not None else None

    async def set(self, key: str, blob: bytes) -> None:
        try:
            async with self._session_factory() as session:
                row = await session.get(SensorSnapshot, key)
                now = datetime.now(timezone.utc)
                if row is None:
                    session.add(SensorSnapshot(key=key, blob=blob, updated_at=now))
                else:
                    row.blob = blob
                    row.updated_at = now
                await session.commit()
        except Exception as exc:
            logger.error("snapshot_write_failed", key=key, error=str(exc))
            raise


class SqlHistoryStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def insert(self, user_id: str, reading: GlucoseReading) -> str:
        """Insert reading for user_id and return the new record id."""
        record_id = str(uuid.uuid4())
        try:
            async with self._session_factory() as session:
                session.add(
                    GlucoseMeasurement(
                        id=record_id,
                        user_id=user_id,
                        value=reading.value,
                        recorded_at=reading.timestamp,
                        comment=reading.comment or "",
                        is_alert=bool(reading.is_alert),
                        source=reading.source.value if reading.source else None,
                        is_sensor_reading=reading.is_sensor_reading,
                        is_manual_reading=reading.is_manual_reading,
                        created_at=datetime.now(timezone.utc),
                    )
                )
                await session.commit()
        except Exception as exc:
            logger.error("measurement_insert_failed", user_id=user_id, error=str(exc))
            raise

        logger.info("measurement_inserted", user_id=user_id, reading_id=record_id)
        return record_id

    async def update(self, user_id: str, reading_id: str, fields: dict[str, Any]) -> None:
        """Apply a partial update; RecordNotFoundError if the row is missing."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(GlucoseMeasurement).where(
                    GlucoseMeasurement.id == reading_id,
                    GlucoseMeasurement.user_id == user_id,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                raise RecordNotFoundError(f"reading {reading_id} not found for {user_id}")

            for name, value in fields.items():
                column = _UPDATABLE_COLUMNS.get(name)
                if column is None:
                    logger.debug("measurement_field_ignored", field=name)
                    continue
                setattr(row, column, value)
            await session.commit()

    async def get(self, user_id: str, reading_id: str) -> Optional[GlucoseReading]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(GlucoseMeasurement).where(
                    GlucoseMeasurement.id == reading_id,
                    GlucoseMeasurement.user_id == user_id,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            return GlucoseReading(
                id=row.id,
                value=row.value,
                timestamp=row.recorded_at,
                user_id=row.user_id,
                comment=row.comment,
                is_alert=row.is_alert,
                source=row.source,
                is_sensor_reading=row.is_sensor_reading,
                is_manual_reading=row.is_manual_reading,
            )
