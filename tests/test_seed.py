from salon_booking.models import Service
from salon_booking.scripts.seed_salon import SERVICES, seed_services, seed_week
from salon_booking.services.availability.availability_policy_service import AvailabilityPolicyService


def test_seed_is_repeatable(db):
    assert seed_services(db) == len(SERVICES)
    assert seed_services(db) == 0
    assert db.query(Service).count() == len(SERVICES)


def test_seed_week_opens_tuesday_to_saturday(db):
    seed_week(db)

    week = AvailabilityPolicyService.get_week(db)
    assert [window.is_open for window in week] == [False, True, True, True, True, True, False]
