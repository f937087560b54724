# salon_booking/core/clock.py
"""Injectable clocks. Slot filtering never reads the wall clock directly."""
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


class Clock:
    """Current instant, plus helpers for the business-local view of it"""

    def __init__(self, tz_name: str = "UTC"):
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        raise NotImplementedError

    def local_now(self) -> datetime:
        """Business-local wall-clock time, tz-naive"""
        return self.now().astimezone(self.tz).replace(tzinfo=None)

    def today(self) -> date:
        return self.local_now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock frozen at a given instant (tests, replays)"""

    def __init__(self, instant: datetime, tz_name: str = "UTC"):
        super().__init__(tz_name)
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=self.tz)
        self.instant = instant.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self.instant

    def advance(self, delta) -> None:
        self.instant = self.instant + delta
