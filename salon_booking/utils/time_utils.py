# salon_booking/utils/time_utils.py
"""Date/time helpers shared by the availability and calendar services"""
from datetime import datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC (SQLite drops tzinfo on the way back)"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_local_naive(value: datetime, tz: ZoneInfo) -> datetime:
    """Instant -> business-local wall-clock datetime without tzinfo"""
    return ensure_aware(value).astimezone(tz).replace(tzinfo=None)


def local_to_utc(value: datetime, tz: ZoneInfo) -> datetime:
    """Business-local wall-clock datetime -> aware UTC instant"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz)
    return value.astimezone(timezone.utc)


def parse_hhmm(value: str) -> time:
    """Parse 'HH:MM' (24h) into a time, raising ValueError on bad input"""
    return datetime.strptime(value, "%H:%M").time()


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")


def minutes_since_midnight(value: time) -> int:
    return value.hour * 60 + value.minute


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Aware UTC instant; naive input is read as UTC"""
    if value is None:
        return None
    return ensure_aware(value).astimezone(timezone.utc)
