"""
gateway/clock.py

Time source for the engines. All expiration and de-duplication math is
relative to Clock.now(), which returns timezone-aware UTC instants.
"""

from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    """Supplies the current instant."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
