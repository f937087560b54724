from datetime import time

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import OperationalError

from salon_booking.config.settings import Settings
from salon_booking.core.exceptions import StorageError, ValidationError
from salon_booking.models import WorkDayRule
from salon_booking.services.availability.availability_policy_service import AvailabilityPolicyService
from salon_booking.services.availability.windows import CLOSED, OpenWindow

NINE_TO_FIVE = OpenWindow(time(9, 0), time(17, 0))


def test_unset_weekday_is_closed(db):
    assert AvailabilityPolicyService.get_window(db, 0) == CLOSED
    assert AvailabilityPolicyService.policy_version(db) == 0


def test_replace_week_persists_all_days(db):
    week = [NINE_TO_FIVE] * 5 + [OpenWindow(time(10, 0), time(14, 0)), CLOSED]

    version = AvailabilityPolicyService.replace_week(db, week)

    assert version == 1
    assert AvailabilityPolicyService.get_week(db) == week
    assert db.query(WorkDayRule).count() == 7


def test_every_save_bumps_the_version(db):
    AvailabilityPolicyService.replace_week(db, [NINE_TO_FIVE] * 7)
    version = AvailabilityPolicyService.replace_week(db, [CLOSED] * 7)

    assert version == 2
    assert AvailabilityPolicyService.get_window(db, 3) == CLOSED


def test_set_window_changes_one_day(db):
    AvailabilityPolicyService.replace_week(db, [NINE_TO_FIVE] * 5 + [CLOSED, CLOSED])

    AvailabilityPolicyService.set_window(db, 5, OpenWindow(time(10, 0), time(13, 0)))

    week = AvailabilityPolicyService.get_week(db)
    assert week[5] == OpenWindow(time(10, 0), time(13, 0))
    assert week[0] == NINE_TO_FIVE
    assert week[6] == CLOSED


@pytest.mark.parametrize("weekday", [-1, 7, "monday"])
def test_invalid_weekday(db, weekday):
    with pytest.raises(ValidationError) as exc_info:
        AvailabilityPolicyService.get_window(db, weekday)

    assert exc_info.value.code == "invalid_weekday"


def test_week_must_have_seven_days(db):
    with pytest.raises(ValidationError) as exc_info:
        AvailabilityPolicyService.replace_week(db, [NINE_TO_FIVE] * 6)

    assert exc_info.value.code == "invalid_week"


def test_failed_save_leaves_previous_week(db, monkeypatch):
    """A storage failure mid-write must not leave a half-updated template"""
    AvailabilityPolicyService.replace_week(db, [NINE_TO_FIVE] * 7)

    def broken_commit():
        raise OperationalError("COMMIT", {}, Exception("disk full"))

    monkeypatch.setattr(db, "commit", broken_commit)
    with pytest.raises(StorageError):
        AvailabilityPolicyService.replace_week(db, [CLOSED] * 7)
    monkeypatch.undo()

    assert AvailabilityPolicyService.get_week(db) == [NINE_TO_FIVE] * 7
    assert AvailabilityPolicyService.policy_version(db) == 1


def test_opening_time_must_sit_on_the_claim_grid(db):
    week = [OpenWindow(time(9, 10), time(17, 0))] + [CLOSED] * 6

    with pytest.raises(ValidationError) as exc_info:
        AvailabilityPolicyService.replace_week(db, week, claim_granularity=15)

    assert exc_info.value.code == "misaligned_window"
    assert AvailabilityPolicyService.policy_version(db) == 0

    assert AvailabilityPolicyService.replace_week(db, week, claim_granularity=5) == 1


def test_slot_step_must_be_a_multiple_of_the_claim_grid():
    with pytest.raises(PydanticValidationError):
        Settings(SLOT_STEP_MINUTES=32, SLOT_CLAIM_GRANULARITY_MINUTES=5)

    assert Settings(SLOT_STEP_MINUTES=45, SLOT_CLAIM_GRANULARITY_MINUTES=15).SLOT_STEP_MINUTES == 45
