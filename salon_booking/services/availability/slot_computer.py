# salon_booking/services/availability/slot_computer.py
"""
Slot computation.

Pure and deterministic: everything the result depends on is passed in,
including "now". Client and server must agree on what was available when a
booking was requested, so no clock, database or randomness is touched here.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Sequence

from salon_booking.core.exceptions import ValidationError
from salon_booking.services.availability.windows import OpenWindow, Period, Window, subtract_all


@dataclass(frozen=True)
class BookedSlot:
    """A non-cancelled appointment on the target date"""
    start_time: time
    duration_minutes: int


def compute_slots(
        target_date: date,
        duration_minutes: int,
        step_minutes: int,
        buffer_minutes: int,
        window: Window,
        time_off: Sequence[Period] = (),
        booked: Sequence[BookedSlot] = (),
        now: Optional[datetime] = None,
        extra_busy: Sequence[Period] = (),
) -> List[time]:
    """
    Return bookable slot start times for ``target_date``, ascending.

    Args:
        target_date: business-local calendar date
        duration_minutes: length of the service being booked
        step_minutes: slot grid, aligned to the window start
        buffer_minutes: padding kept free around every existing appointment
        window: the weekday's work window (closed => no slots)
        time_off: blocked periods already clipped to business-local time
        booked: non-cancelled appointments on ``target_date``
        now: business-local "now"; slots starting before it are dropped
             when ``target_date`` is today
        extra_busy: further busy periods (e.g. external calendar events)
    """
    if duration_minutes <= 0:
        raise ValidationError("Duration must be positive", code="invalid_duration")
    if step_minutes <= 0:
        raise ValidationError("Slot step must be positive", code="invalid_step")
    if buffer_minutes < 0:
        raise ValidationError("Buffer cannot be negative", code="invalid_buffer")

    if not isinstance(window, OpenWindow):
        return []

    if now is not None and target_date < now.date():
        return []

    day_start = datetime.combine(target_date, window.start)
    day_end = datetime.combine(target_date, window.end)

    free = [Period(day_start, day_end)]

    for block in time_off:
        free = subtract_all(free, block)

    buffer = timedelta(minutes=buffer_minutes)
    for appointment in booked:
        appt_start = datetime.combine(target_date, appointment.start_time)
        appt_end = appt_start + timedelta(minutes=appointment.duration_minutes)
        free = subtract_all(free, Period(appt_start - buffer, appt_end + buffer))

    for block in extra_busy:
        free = subtract_all(free, block)

    if not free:
        return []

    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)
    drop_before = now if now is not None and now.date() == target_date else None

    slots = []
    candidate = day_start
    while candidate + duration <= day_end:
        slot_end = candidate + duration
        fits = any(period.contains(candidate, slot_end) for period in free)
        if fits and (drop_before is None or candidate >= drop_before):
            slots.append(candidate.time())
        candidate += step

    return slots
