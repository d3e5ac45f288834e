"""
gateway/services/history.py

Folds an acknowledged glucose alert into the persisted reading history.
Readings already stored are updated in place; offline placeholders, new
readings and failed updates fall back to inserting a fresh record.
Failures are logged and never raised to the caller.
"""

import structlog

from gateway.ports import HistoryStore
from gateway.schemas import GlucoseAlert, GlucoseAlertType, GlucoseReading

logger = structlog.get_logger(__name__)


def alert_comment(reading: GlucoseReading, alert_type: GlucoseAlertType) -> str:
    """Keep the user's comment; otherwise describe the alert."""
    if reading.comment:
        return reading.comment
    label = "High" if alert_type is GlucoseAlertType.HIGH else "Low"
    return f"{label} glucose alert - automatically detected"


async def save_alert_to_history(alert: GlucoseAlert, store: HistoryStore) -> None:
    """Persist the alert's reading with is_alert set."""
    reading = alert.reading
    if not reading.user_id:
        logger.warning("alert_history_skipped_no_user", value=reading.value)
        return

    if reading.is_persisted:
        try:
            await store.update(
                reading.user_id,
                reading.id,
                {
                    "is_alert": True,
                    "comment": alert_comment(reading, alert.alert_type),
                },
            )
            logger.info(
                "alert_history_updated",
                user_id=reading.user_id,
                reading_id=reading.id,
            )
            return
        except Exception as exc:
            logger.warning(
                "alert_history_update_failed",
                user_id=reading.user_id,
                reading_id=reading.id,
                error=str(exc),
            )

    await _insert_alert_reading(alert, store)


async def _insert_alert_reading(alert: GlucoseAlert, store: HistoryStore) -> None:
    reading = alert.reading
    record = GlucoseReading(
        value=reading.value,
        timestamp=reading.timestamp,
        user_id=reading.user_id,
        comment=alert_comment(reading, alert.alert_type),
        is_alert=True,
        source=reading.source,
        is_sensor_reading=reading.is_sensor_reading,
        is_manual_reading=reading.is_manual_reading,
    )
    try:
        new_id = await store.insert(reading.user_id, record)
        logger.info(
            "alert_history_inserted",
            user_id=reading.user_id,
            reading_id=new_id,
        )
    except Exception as exc:
        logger.error(
            "alert_history_insert_failed",
            user_id=reading.user_id,
            error=str(exc),
        )
