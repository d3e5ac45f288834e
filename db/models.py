"""
db/models.py

SQLAlchemy 2.0 async ORM model definitions.
- SensorSnapshot: key-value rows backing the sensor status snapshot store
- GlucoseMeasurement: per-user glucose reading history
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, LargeBinary, String, Text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def create_engine_for(database_url: str) -> AsyncEngine:
    """Async engine; pool settings only apply to server databases."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url)
    return create_async_engine(
        database_url,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class SensorSnapshot(Base):
    """Serialized sensor status, one row per key."""

    __tablename__ = "sensor_snapshots"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    blob: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class GlucoseMeasurement(Base):
    """A persisted glucose reading."""

    __tablename__ = "glucose_measurements"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    comment: Mapped[str] = mapped_column(Text, default="")
    is_alert: Mapped[bool] = mapped_column(Boolean, default=False)
    source: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_sensor_reading: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    is_manual_reading: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
