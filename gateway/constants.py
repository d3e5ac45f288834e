"""
gateway/constants.py

Clinical and sensor-lifecycle constants used by the alert engines.
All numeric thresholds must be referenced from this module.
Magic numbers in business logic are prohibited.
"""

# ── Glucose thresholds (mg/dL) ───────────────────────────────
GLUCOSE_LOW_THRESHOLD: float = 70.0
GLUCOSE_HIGH_THRESHOLD: float = 180.0

# ── Sensor lifecycle ─────────────────────────────────────────
SENSOR_WEAR_DAYS: int = 14
EXPIRING_SOON_HOURS: int = 24

# ── Battery ──────────────────────────────────────────────────
BATTERY_LOW_THRESHOLD: int = 15  # percent
BATTERY_FULL_LEVEL: int = 100
BATTERY_DRAIN_PER_DAY: int = 6  # placeholder linear model

# ── Alert ledger ─────────────────────────────────────────────
ALERT_DEDUP_WINDOW_MIN: int = 60

# ── Persistence keys ─────────────────────────────────────────
SENSOR_STATUS_SNAPSHOT_KEY: str = "cgm_sensor_status"
OFFLINE_READING_ID_PREFIX: str = "offline_"

# ── Remote mirror collections ────────────────────────────────
MIRROR_USERS_COLLECTION: str = "users"
MIRROR_SENSORS_COLLECTION: str = "sensors"

# ── Alarm ────────────────────────────────────────────────────
ALARM_VOLUME: float = 1.0
ALARM_PROMPT_TITLE: str = "Glucose Alert"
ALARM_PROMPT_ACTION: str = "Acknowledge"
