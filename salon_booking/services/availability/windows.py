# salon_booking/services/availability/windows.py
"""Value types for work windows and blocked periods, plus interval arithmetic"""
from dataclasses import dataclass
from datetime import datetime, time
from typing import Iterable, List, Union

from salon_booking.core.exceptions import ValidationError

WEEKDAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


@dataclass(frozen=True)
class ClosedWindow:
    is_open = False


@dataclass(frozen=True)
class OpenWindow:
    start: time
    end: time
    is_open = True

    def __post_init__(self):
        if self.start >= self.end:
            raise ValidationError(
                f"Window start {self.start} must be before end {self.end}",
                code="invalid_window",
                details={"start": self.start.isoformat(), "end": self.end.isoformat()},
            )


Window = Union[ClosedWindow, OpenWindow]

CLOSED = ClosedWindow()


@dataclass(frozen=True)
class Period:
    """Half-open [start, end) in business-local wall-clock time"""
    start: datetime
    end: datetime

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    def overlaps(self, other: "Period") -> bool:
        if self.is_empty or other.is_empty:
            return False
        return self.start < other.end and other.start < self.end

    def contains(self, start: datetime, end: datetime) -> bool:
        return self.start <= start and end <= self.end


def subtract(period: Period, block: Period) -> List[Period]:
    """Remove ``block`` from ``period``; returns 0, 1 or 2 remaining pieces"""
    if not period.overlaps(block):
        return [period]

    pieces = []
    if period.start < block.start:
        pieces.append(Period(period.start, block.start))
    if block.end < period.end:
        pieces.append(Period(block.end, period.end))
    return pieces


def subtract_all(periods: Iterable[Period], block: Period) -> List[Period]:
    remaining = []
    for period in periods:
        remaining.extend(subtract(period, block))
    return remaining


def merge(periods: Iterable[Period]) -> List[Period]:
    """Merge overlapping or adjacent periods, sorted by start"""
    ordered = sorted(periods, key=lambda p: p.start)
    if not ordered:
        return []

    merged = [ordered[0]]
    for current in ordered[1:]:
        last = merged[-1]
        if current.start <= last.end:
            if current.end > last.end:
                merged[-1] = Period(last.start, current.end)
        else:
            merged.append(current)
    return merged
