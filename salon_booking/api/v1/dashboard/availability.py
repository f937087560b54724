# ============================================================================
# FILE: salon_booking/api/v1/dashboard/availability.py
# Admin endpoints - thin HTTP layer
# ============================================================================
from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from salon_booking.api.dependencies import require_admin
from salon_booking.config.database import get_db
from salon_booking.schemas.availability import DayHours, WeeklySchedule
from salon_booking.services.availability.availability_policy_service import AvailabilityPolicyService

router = APIRouter(prefix="/availability", tags=["dashboard-availability"])


def _current_schedule(db: Session) -> WeeklySchedule:
    return WeeklySchedule.from_windows(
        AvailabilityPolicyService.get_week(db),
        policy_version=AvailabilityPolicyService.policy_version(db),
    )


@router.get("", response_model=WeeklySchedule)
def get_weekly_schedule(
        admin: dict = Depends(require_admin),
        db: Session = Depends(get_db)
):
    """The weekly work-hour template, Monday=0 .. Sunday=6"""
    return _current_schedule(db)


@router.put("", response_model=WeeklySchedule)
def replace_weekly_schedule(
        schedule: WeeklySchedule,
        admin: dict = Depends(require_admin),
        db: Session = Depends(get_db)
):
    """
    Replace all seven days at once.
    Either every day is saved or none is.
    """
    AvailabilityPolicyService.replace_week(db, schedule.to_windows())
    return _current_schedule(db)


@router.patch("/{weekday}", response_model=WeeklySchedule)
def update_weekday(
        hours: DayHours,
        weekday: int = Path(..., description="0=Monday .. 6=Sunday"),
        admin: dict = Depends(require_admin),
        db: Session = Depends(get_db)
):
    """Change a single weekday"""
    AvailabilityPolicyService.set_window(db, weekday, hours.to_window())
    return _current_schedule(db)
