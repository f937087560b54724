# salon_booking/services/availability/time_off_service.py
"""Time-off ledger: blackout intervals that override the weekly template"""
import logging
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from salon_booking.core.exceptions import NotFoundError, StorageError, ValidationError
from salon_booking.models.availability import TimeOffInterval
from salon_booking.services.availability.windows import Period
from salon_booking.utils.time_utils import to_local_naive, to_utc

logger = logging.getLogger(__name__)


def covered_days(interval: TimeOffInterval, tz: ZoneInfo) -> Tuple[date, date]:
    """
    First and last business-local calendar day an all-day interval covers.
    An end that falls exactly on local midnight does not cover that day.
    """
    local_start = to_local_naive(interval.start_at, tz)
    local_end = to_local_naive(interval.end_at, tz)
    last_day = local_end.date()
    if local_end.time() == time.min and local_end > local_start:
        last_day -= timedelta(days=1)
    return local_start.date(), last_day


def local_span(interval: TimeOffInterval, tz: ZoneInfo) -> Period:
    """The business-local wall-clock range an interval blocks"""
    if interval.all_day:
        first_day, last_day = covered_days(interval, tz)
        return Period(
            datetime.combine(first_day, time.min),
            datetime.combine(last_day + timedelta(days=1), time.min),
        )
    return Period(to_local_naive(interval.start_at, tz), to_local_naive(interval.end_at, tz))


def blocked_periods_for_date(intervals: List[TimeOffInterval], target_date: date, tz: ZoneInfo) -> List[Period]:
    """Clip intervals to ``target_date``, in business-local time"""
    day = Period(
        datetime.combine(target_date, time.min),
        datetime.combine(target_date + timedelta(days=1), time.min),
    )
    blocked = []
    for interval in intervals:
        span = local_span(interval, tz)
        if span.overlaps(day):
            blocked.append(Period(max(span.start, day.start), min(span.end, day.end)))
    return blocked


class TimeOffService:
    """Adds, removes and queries time-off intervals"""

    @staticmethod
    def add(
            db: Session,
            start_at: datetime,
            end_at: datetime,
            reason: Optional[str] = None,
            all_day: bool = False
    ) -> TimeOffInterval:
        """Record a blackout. Rejects end < start."""
        start_at = to_utc(start_at)
        end_at = to_utc(end_at)
        if end_at < start_at:
            raise ValidationError(
                "Time off must end at or after its start",
                code="invalid_time_off_range",
                details={"start_at": start_at.isoformat(), "end_at": end_at.isoformat()},
            )

        interval = TimeOffInterval(start_at=start_at, end_at=end_at, reason=reason, all_day=all_day)
        try:
            db.add(interval)
            db.commit()
            db.refresh(interval)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to save time off: {e}")
            raise StorageError("Could not save time off") from e

        logger.info(f"Time off added {interval.id} ({'all day' if all_day else 'partial'})")
        return interval

    @staticmethod
    def remove(db: Session, interval_id: UUID) -> None:
        interval = db.get(TimeOffInterval, interval_id)
        if not interval:
            raise NotFoundError(f"Time off {interval_id} not found")
        try:
            db.delete(interval)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError("Could not remove time off") from e
        logger.info(f"Time off removed {interval_id}")

    @staticmethod
    def list(db: Session, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[TimeOffInterval]:
        query = db.query(TimeOffInterval)
        if start:
            query = query.filter(TimeOffInterval.end_at >= to_utc(start))
        if end:
            query = query.filter(TimeOffInterval.start_at <= to_utc(end))
        return query.order_by(TimeOffInterval.start_at.asc()).all()

    @staticmethod
    def overlaps(db: Session, start: datetime, end: datetime, tz: ZoneInfo) -> List[TimeOffInterval]:
        """
        Intervals overlapping the instant range [start, end).

        All-day intervals cover [00:00, 24:00) of every business-local day they
        touch, so the query is widened by a day and refined in Python.
        """
        start = to_utc(start)
        end = to_utc(end)
        candidates = db.query(TimeOffInterval).filter(
            TimeOffInterval.start_at < end + timedelta(days=1),
            TimeOffInterval.end_at > start - timedelta(days=1),
        ).order_by(TimeOffInterval.start_at.asc()).all()

        window = Period(to_local_naive(start, tz), to_local_naive(end, tz))
        return [interval for interval in candidates if local_span(interval, tz).overlaps(window)]

    @staticmethod
    def for_date(db: Session, target_date: date, tz: ZoneInfo) -> List[TimeOffInterval]:
        """Intervals touching a business-local calendar day"""
        day_start = datetime.combine(target_date, time.min, tzinfo=tz)
        return TimeOffService.overlaps(db, day_start, day_start + timedelta(days=1), tz)
