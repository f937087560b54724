# salon_booking/services/availability/availability_policy_service.py
"""Weekly work-hour template: read per weekday, written as a whole week"""
import logging
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from salon_booking.config.settings import get_settings
from salon_booking.core.exceptions import StorageError, ValidationError
from salon_booking.models.availability import AvailabilitySettings, WorkDayRule
from salon_booking.services.availability.windows import CLOSED, OpenWindow, Window, WEEKDAY_NAMES
from salon_booking.utils.time_utils import minutes_since_midnight

logger = logging.getLogger(__name__)

SETTINGS_ROW_ID = 1


def _check_weekday(weekday: int) -> None:
    if not isinstance(weekday, int) or not 0 <= weekday <= 6:
        raise ValidationError(
            f"Weekday must be 0 (Monday) to 6 (Sunday), got {weekday!r}",
            code="invalid_weekday",
        )


def _rule_to_window(rule: WorkDayRule) -> Window:
    if not rule or not rule.is_open or rule.start_time is None or rule.end_time is None:
        return CLOSED
    return OpenWindow(rule.start_time, rule.end_time)


class AvailabilityPolicyService:
    """Reads and replaces the weekly availability template"""

    @staticmethod
    def get_window(db: Session, weekday: int) -> Window:
        """Work window for a weekday; a weekday with no rule is closed"""
        _check_weekday(weekday)
        rule = db.query(WorkDayRule).filter_by(weekday=weekday).first()
        return _rule_to_window(rule)

    @staticmethod
    def get_week(db: Session) -> List[Window]:
        """All seven windows, indexed Monday=0 .. Sunday=6"""
        rules = {rule.weekday: rule for rule in db.query(WorkDayRule).all()}
        return [_rule_to_window(rules.get(weekday)) for weekday in range(7)]

    @staticmethod
    def policy_version(db: Session) -> int:
        row = db.get(AvailabilitySettings, SETTINGS_ROW_ID)
        return row.policy_version if row else 0

    @staticmethod
    def set_window(db: Session, weekday: int, window: Window, claim_granularity: Optional[int] = None) -> int:
        """
        Change one weekday. The whole week is rewritten in the same
        transaction so readers never observe a half-updated template.
        """
        _check_weekday(weekday)
        week = AvailabilityPolicyService.get_week(db)
        week[weekday] = window
        return AvailabilityPolicyService.replace_week(db, week, claim_granularity)

    @staticmethod
    def replace_week(db: Session, windows: Sequence[Window], claim_granularity: Optional[int] = None) -> int:
        """
        Persist all seven windows atomically. Returns the new policy version.

        Slots start at the window start plus multiples of the slot step, and
        the booking guard claims cells on the claim grid, so an open day must
        start on that grid or back-to-back slots would collide.
        """
        granularity = claim_granularity or get_settings().SLOT_CLAIM_GRANULARITY_MINUTES
        if len(windows) != 7:
            raise ValidationError(
                f"A weekly template needs exactly 7 days, got {len(windows)}",
                code="invalid_week",
            )
        for weekday, window in enumerate(windows):
            if isinstance(window, OpenWindow) and minutes_since_midnight(window.start) % granularity:
                raise ValidationError(
                    f"{WEEKDAY_NAMES[weekday].title()}: opening time must be a multiple of {granularity} minutes",
                    code="misaligned_window",
                    details={"weekday": weekday, "granularity_minutes": granularity},
                )

        try:
            db.query(WorkDayRule).delete(synchronize_session=False)
            for weekday, window in enumerate(windows):
                is_open = isinstance(window, OpenWindow)
                db.add(WorkDayRule(
                    weekday=weekday,
                    is_open=is_open,
                    start_time=window.start if is_open else None,
                    end_time=window.end if is_open else None,
                ))

            row = db.get(AvailabilitySettings, SETTINGS_ROW_ID, with_for_update=True)
            if row is None:
                row = AvailabilitySettings(id=SETTINGS_ROW_ID, policy_version=0)
                db.add(row)
            row.policy_version = (row.policy_version or 0) + 1

            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to save weekly availability: {e}")
            raise StorageError("Could not save weekly availability") from e

        logger.info(f"Weekly availability saved (policy version {row.policy_version})")
        return row.policy_version
