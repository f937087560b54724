from datetime import date, datetime, time, timedelta

import pytest

from salon_booking.core.exceptions import ValidationError
from salon_booking.services.availability.slot_computer import BookedSlot, compute_slots
from salon_booking.services.availability.windows import CLOSED, OpenWindow, Period, merge, subtract

MONDAY = date(2026, 3, 2)
NINE_TO_FIVE = OpenWindow(time(9, 0), time(17, 0))


def slots(**overrides):
    kwargs = dict(
        target_date=MONDAY,
        duration_minutes=30,
        step_minutes=30,
        buffer_minutes=0,
        window=NINE_TO_FIVE,
    )
    kwargs.update(overrides)
    return compute_slots(**kwargs)


def at(hour, minute=0):
    return datetime.combine(MONDAY, time(hour, minute))


class TestComputeSlots:

    def test_existing_appointment_removes_its_start(self):
        """A 10:00-10:30 booking takes 10:00 but leaves its neighbours free"""
        result = slots(booked=[BookedSlot(time(10, 0), 30)])

        assert time(10, 0) not in result
        assert result[:4] == [time(9, 0), time(9, 30), time(10, 30), time(11, 0)]

    def test_empty_day_fills_the_window(self):
        result = slots()

        assert result[0] == time(9, 0)
        assert result[-1] == time(16, 30)
        assert len(result) == 16

    def test_every_slot_fits_inside_the_window(self):
        result = slots(duration_minutes=90)

        assert result[-1] == time(15, 30)
        for start in result:
            begins = datetime.combine(MONDAY, start)
            assert at(9) <= begins
            assert begins + timedelta(minutes=90) <= at(17)

    def test_long_service_skips_starts_that_would_overlap(self):
        result = slots(duration_minutes=60, booked=[BookedSlot(time(11, 0), 30)])

        assert time(10, 30) not in result
        assert time(11, 0) not in result
        assert time(10, 0) in result
        assert time(11, 30) in result

    def test_buffer_pads_existing_appointments(self):
        result = slots(buffer_minutes=15, step_minutes=15, booked=[BookedSlot(time(10, 0), 30)])

        assert time(9, 15) in result
        assert time(9, 30) not in result
        assert time(10, 30) not in result
        assert time(10, 45) in result

    def test_closed_day_has_no_slots(self):
        assert slots(window=CLOSED) == []

    def test_date_in_the_past_has_no_slots(self):
        assert slots(now=datetime(2026, 3, 3, 8, 0)) == []

    def test_today_drops_starts_already_passed(self):
        result = slots(now=at(12, 10))

        assert time(12, 0) not in result
        assert result[0] == time(12, 30)

    def test_start_exactly_now_is_still_offered(self):
        assert slots(now=at(12, 0))[0] == time(12, 0)

    def test_future_date_ignores_time_of_day(self):
        result = slots(now=datetime(2026, 3, 1, 23, 0))

        assert result[0] == time(9, 0)

    def test_time_off_blocks_part_of_the_day(self):
        result = slots(time_off=[Period(at(12), at(14))])

        assert time(11, 30) in result
        assert time(12, 0) not in result
        assert time(13, 30) not in result
        assert time(14, 0) in result

    def test_time_off_covering_the_window_leaves_nothing(self):
        day = Period(datetime.combine(MONDAY, time.min), datetime(2026, 3, 3))

        assert slots(time_off=[day]) == []

    def test_extra_busy_periods_are_respected(self):
        result = slots(extra_busy=[Period(at(9), at(10))])

        assert result[0] == time(10, 0)

    def test_grid_is_aligned_to_window_start(self):
        result = slots(window=OpenWindow(time(9, 15), time(11, 0)))

        assert result == [time(9, 15), time(9, 45), time(10, 15)]

    def test_same_inputs_same_output(self):
        kwargs = dict(booked=[BookedSlot(time(13, 0), 45)], now=at(9, 5), buffer_minutes=10)

        assert slots(**kwargs) == slots(**kwargs)

    @pytest.mark.parametrize("field,value,code", [
        ("duration_minutes", 0, "invalid_duration"),
        ("step_minutes", 0, "invalid_step"),
        ("buffer_minutes", -5, "invalid_buffer"),
    ])
    def test_rejects_bad_discretization(self, field, value, code):
        with pytest.raises(ValidationError) as exc_info:
            slots(**{field: value})

        assert exc_info.value.code == code


class TestPeriods:

    def test_subtract_splits_in_two(self):
        pieces = subtract(Period(at(9), at(17)), Period(at(12), at(13)))

        assert pieces == [Period(at(9), at(12)), Period(at(13), at(17))]

    def test_touching_periods_do_not_overlap(self):
        assert not Period(at(9), at(10)).overlaps(Period(at(10), at(11)))

    def test_merge_joins_adjacent(self):
        merged = merge([Period(at(11), at(12)), Period(at(9), at(10)), Period(at(10), at(11))])

        assert merged == [Period(at(9), at(12))]

    def test_open_window_must_have_positive_length(self):
        with pytest.raises(ValidationError) as exc_info:
            OpenWindow(time(17, 0), time(9, 0))

        assert exc_info.value.code == "invalid_window"
