"""
config.py

Centralized configuration management using pydantic-settings.
All modules must import settings from this file.
Direct os.getenv() calls are prohibited elsewhere.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings loaded from .env file."""

    # Database
    mysql_host: str = "127.0.0.1"
    mysql_port: int = 3306
    mysql_user: str = "sentinel"
    mysql_password: str = ""
    mysql_db: str = "cgm_sentinel"
    database_url: str = ""  # overrides the mysql_* fields when set

    # Remote status mirror
    remote_mirror_url: str = "http://127.0.0.1:8003"
    remote_mirror_timeout_s: float = 5.0

    # Alarm
    alarm_sound_ref: str = "assets/sounds/alarm.mp3"
    alarm_fallback_sound_ref: str = "system://alert"
    alarm_vibration_pulse_ms: int = 500
    alarm_vibration_interval_s: float = 1.5

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"  # "console" | "json"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @property
    def resolved_database_url(self) -> str:
        """Full SQLAlchemy URL, built from the mysql_* fields unless overridden."""
        if self.database_url:
            return self.database_url
        return (
            f"mysql+aiomysql://{self.mysql_user}:{self.mysql_password}"
            f"@{self.mysql_host}:{self.mysql_port}/{self.mysql_db}"
        )


settings = Settings()
