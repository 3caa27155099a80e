from datetime import datetime, timezone
from typing import Protocol
from zoneinfo import ZoneInfo

from app.core.config import settings


class Clock(Protocol):
    def now(self) -> datetime:
        """Current wall-clock time of the shop (naive, local)."""
        ...


class SystemClock:
    def __init__(self, timezone: str = settings.TIMEZONE):
        self.tz = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz).replace(tzinfo=None)


class FixedClock:
    """Clock frozen at a given instant; used by scripts and tests."""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant


def utcnow() -> datetime:
    """Naive UTC timestamp for audit columns (created_at, updated_at)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


_system_clock = SystemClock()


def get_clock() -> Clock:
    return _system_clock
