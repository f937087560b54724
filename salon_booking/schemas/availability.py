# salon_booking/schemas/availability.py
from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Optional
from datetime import date, datetime
from uuid import UUID

from salon_booking.services.availability.windows import CLOSED, OpenWindow, Window, WEEKDAY_NAMES
from salon_booking.utils.time_utils import format_hhmm, parse_hhmm


def _check_hhmm(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    try:
        parse_hhmm(value)
    except ValueError:
        raise ValueError(f"'{value}' is not a valid HH:MM time")
    return value


class DayHours(BaseModel):
    """Work hours for one weekday"""
    is_open: bool = Field(..., description="Whether the business is open that day")
    start_time: Optional[str] = Field(None, description="Opening time, HH:MM (24h)")
    end_time: Optional[str] = Field(None, description="Closing time, HH:MM (24h)")

    @field_validator("start_time", "end_time")
    @classmethod
    def valid_hhmm(cls, v: Optional[str]) -> Optional[str]:
        return _check_hhmm(v)

    @model_validator(mode="after")
    def open_days_need_hours(self) -> "DayHours":
        if self.is_open:
            if not self.start_time or not self.end_time:
                raise ValueError("Open days need both start_time and end_time")
            if parse_hhmm(self.start_time) >= parse_hhmm(self.end_time):
                raise ValueError("start_time must be before end_time")
        return self

    def to_window(self) -> Window:
        if not self.is_open:
            return CLOSED
        return OpenWindow(parse_hhmm(self.start_time), parse_hhmm(self.end_time))

    @classmethod
    def from_window(cls, window: Window) -> "DayHours":
        if isinstance(window, OpenWindow):
            return cls(is_open=True, start_time=format_hhmm(window.start), end_time=format_hhmm(window.end))
        return cls(is_open=False)


class WeekdayHours(DayHours):
    weekday: int = Field(..., ge=0, le=6, description="0=Monday .. 6=Sunday")
    name: Optional[str] = Field(None, description="Weekday name (read only)")


class WeeklySchedule(BaseModel):
    """The full weekly template; always seven days"""
    days: List[WeekdayHours] = Field(..., min_length=7, max_length=7)
    policy_version: Optional[int] = Field(None, description="Bumped on every save (read only)")

    @field_validator("days")
    @classmethod
    def one_entry_per_weekday(cls, v: List[WeekdayHours]) -> List[WeekdayHours]:
        if sorted(day.weekday for day in v) != list(range(7)):
            raise ValueError("Provide each weekday 0-6 exactly once")
        return sorted(v, key=lambda day: day.weekday)

    def to_windows(self) -> List[Window]:
        return [day.to_window() for day in self.days]

    @classmethod
    def from_windows(cls, windows: List[Window], policy_version: Optional[int] = None) -> "WeeklySchedule":
        days = []
        for weekday, window in enumerate(windows):
            hours = DayHours.from_window(window)
            days.append(WeekdayHours(weekday=weekday, name=WEEKDAY_NAMES[weekday], **hours.model_dump()))
        return cls(days=days, policy_version=policy_version)


class TimeOffCreate(BaseModel):
    start_at: datetime = Field(..., description="Start instant (naive values are read as UTC)")
    end_at: datetime = Field(..., description="End instant, must not precede start_at")
    reason: Optional[str] = Field(None, max_length=500)
    all_day: bool = Field(False, description="Block every business-local day the range touches")


class TimeOffResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    start_at: datetime
    end_at: datetime
    reason: Optional[str] = None
    all_day: bool
    created_at: Optional[datetime] = None


class AvailableSlotsResponse(BaseModel):
    """Bookable start times for one date and service"""
    requested_date: date
    service_ref: str
    duration_minutes: int
    timezone: str = Field(..., description="Business timezone all times are expressed in")
    slots: List[str] = Field(default_factory=list, description="Start times, HH:MM")
