# ============================================================================
# salon_booking/services/appointment/appointment_ledger.py
# Durable appointment store: uniqueness guard and status state machine
# ============================================================================
"""
Appointment ledger.

Collisions are settled by the database, not by a process-local lock: every
active appointment owns one ``AppointmentSlotClaim`` row per claim cell it
covers, and ``(claim_date, claim_minute)`` is unique. A partial unique index
on ``(appointment_date, start_time)`` over non-cancelled rows backs this up.
Whichever transaction commits second gets an ``IntegrityError`` and is told
``ConflictError``; it never overwrites the winner.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from salon_booking.config.settings import get_settings
from salon_booking.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from salon_booking.models.appointment import (
    Appointment,
    AppointmentSlotClaim,
    AppointmentStatus,
    AppointmentStatusEvent,
)
from salon_booking.services.catalog.service_catalog import ServiceInfo
from salon_booking.utils.time_utils import minutes_since_midnight

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60

ALLOWED_TRANSITIONS: Dict[AppointmentStatus, Set[AppointmentStatus]] = {
    AppointmentStatus.PENDING: {AppointmentStatus.APPROVED, AppointmentStatus.CANCELLED},
    AppointmentStatus.APPROVED: {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED},
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
}

RESCHEDULABLE = {AppointmentStatus.PENDING.value, AppointmentStatus.APPROVED.value}


def is_transition_allowed(from_status: str, to_status: str) -> bool:
    return AppointmentStatus(to_status) in ALLOWED_TRANSITIONS[AppointmentStatus(from_status)]


def claim_cells(start_time: time, duration_minutes: int, granularity: int) -> List[int]:
    """
    Claim-cell minutes covered by [start, start + duration).

    Exact only for starts on the grid: an aligned start never shares a cell
    with an earlier appointment that ends at or before it. Window starts and
    the slot step are kept on the grid for that reason.
    """
    start = minutes_since_midnight(start_time)
    end = start + duration_minutes
    first = (start // granularity) * granularity
    return list(range(first, end, granularity))


@dataclass
class NewAppointment:
    appointment_date: date
    start_time: time
    service: ServiceInfo
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_ref: Optional[str] = None
    note: Optional[str] = None


class AppointmentLedger:
    """Creates appointments and moves them through their lifecycle"""

    def __init__(self, db: Session, claim_granularity_minutes: Optional[int] = None):
        self.db = db
        self.granularity = claim_granularity_minutes or get_settings().SLOT_CLAIM_GRANULARITY_MINUTES

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, appointment_id: UUID, fresh: bool = False) -> Appointment:
        query = self.db.query(Appointment).filter(Appointment.id == appointment_id)
        if fresh:
            query = query.populate_existing()
        appointment = query.first()
        if not appointment:
            raise NotFoundError(f"Appointment {appointment_id} not found", details={"id": str(appointment_id)})
        return appointment

    def booked_on(self, target_date: date) -> List[Appointment]:
        """Non-cancelled appointments on a date, ordered by start"""
        return self.db.query(Appointment).filter(
            Appointment.appointment_date == target_date,
            Appointment.status != AppointmentStatus.CANCELLED.value,
        ).order_by(Appointment.start_time.asc()).all()

    def find_overlapping(
            self,
            target_date: date,
            start_time: time,
            duration_minutes: int,
            exclude_id: Optional[UUID] = None
    ) -> List[Appointment]:
        start = datetime.combine(target_date, start_time)
        end = start + timedelta(minutes=duration_minutes)
        overlapping = []
        for appointment in self.booked_on(target_date):
            if exclude_id and appointment.id == exclude_id:
                continue
            appt_start = datetime.combine(target_date, appointment.start_time)
            appt_end = appt_start + timedelta(minutes=appointment.duration_minutes)
            if start < appt_end and appt_start < end:
                overlapping.append(appointment)
        return overlapping

    def list_by_status(self, status: str) -> List[Appointment]:
        return self.db.query(Appointment).filter(Appointment.status == status).order_by(
            Appointment.appointment_date.asc(), Appointment.start_time.asc()
        ).all()

    def find_by_customer_email(self, email: str) -> List[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.customer_email == email.strip().lower()
        ).order_by(Appointment.appointment_date.desc(), Appointment.start_time.desc()).all()

    def list(
            self,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None,
            status: Optional[str] = None,
            customer_email: Optional[str] = None,
            skip: int = 0,
            limit: int = 50
    ) -> Tuple[int, List[Appointment]]:
        """Paginated appointments, newest first"""
        query = self.db.query(Appointment)

        if start_date:
            query = query.filter(Appointment.appointment_date >= start_date)
        if end_date:
            query = query.filter(Appointment.appointment_date <= end_date)
        if status:
            query = query.filter(Appointment.status == status)
        if customer_email:
            query = query.filter(Appointment.customer_email == customer_email.strip().lower())

        total = query.count()
        items = query.order_by(
            Appointment.appointment_date.desc(),
            Appointment.start_time.desc(),
            Appointment.created_at.desc(),
        ).offset(skip).limit(limit).all()
        return total, items

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _check_fits_in_day(self, start_time: time, duration_minutes: int) -> None:
        if duration_minutes <= 0:
            raise ValidationError("Duration must be positive", code="invalid_duration")
        if minutes_since_midnight(start_time) + duration_minutes > MINUTES_PER_DAY:
            raise ValidationError("Appointment cannot run past midnight", code="crosses_midnight")

    def _check_on_grid(self, start_time: time) -> None:
        if minutes_since_midnight(start_time) % self.granularity:
            raise ValidationError(
                f"Start time {start_time.strftime('%H:%M')} is not on the {self.granularity}-minute booking grid",
                code="misaligned_start",
                details={"time": start_time.strftime("%H:%M"), "granularity_minutes": self.granularity},
            )

    def _claims_for(self, target_date: date, start_time: time, duration_minutes: int) -> List[AppointmentSlotClaim]:
        return [
            AppointmentSlotClaim(claim_date=target_date, claim_minute=minute)
            for minute in claim_cells(start_time, duration_minutes, self.granularity)
        ]

    def _conflict(self, target_date: date, start_time: time, reason: str = "slot_taken") -> ConflictError:
        return ConflictError(
            f"The slot {target_date.isoformat()} {start_time.strftime('%H:%M')} is no longer available",
            code=reason,
            details={"date": target_date.isoformat(), "time": start_time.strftime("%H:%M")},
        )

    def create(self, request: NewAppointment) -> Appointment:
        """
        Claim a slot. The pre-check gives a friendly answer in the common case;
        the unique indexes decide races at commit time.
        """
        duration = request.service.duration_minutes
        self._check_fits_in_day(request.start_time, duration)
        self._check_on_grid(request.start_time)

        if self.find_overlapping(request.appointment_date, request.start_time, duration):
            raise self._conflict(request.appointment_date, request.start_time)

        appointment = Appointment(
            customer_ref=request.customer_ref,
            customer_name=request.customer_name,
            customer_email=request.customer_email.strip().lower() if request.customer_email else None,
            customer_phone=request.customer_phone,
            service_ref=request.service.ref,
            service_name=request.service.name,
            appointment_date=request.appointment_date,
            start_time=request.start_time,
            duration_minutes=duration,
            price=request.service.price,
            note=request.note,
            status=AppointmentStatus.PENDING.value,
            version=1,
        )
        appointment.claims = self._claims_for(request.appointment_date, request.start_time, duration)
        appointment.status_events = [AppointmentStatusEvent(from_status=None, to_status=AppointmentStatus.PENDING.value)]

        try:
            self.db.add(appointment)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.info(
                f"Booking conflict on {request.appointment_date} {request.start_time}: lost the race"
            )
            raise self._conflict(request.appointment_date, request.start_time) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create appointment: {e}")
            raise StorageError("Could not save appointment") from e

        self.db.refresh(appointment)
        logger.info(f"Appointment {appointment.id} created for {appointment.appointment_date} {appointment.start_time}")
        return appointment

    def update_status(
            self,
            appointment_id: UUID,
            new_status: str,
            expected_status: Optional[str] = None
    ) -> Tuple[Appointment, str]:
        """
        Apply a state-machine transition with optimistic concurrency.

        Returns the refreshed appointment and the status it left. The current
        status is re-read first; if another writer changes it between that read
        and the conditional UPDATE, no row matches and the call fails with
        ``InvalidTransitionError`` instead of applying blindly.
        """
        try:
            target = AppointmentStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown status '{new_status}'", code="invalid_status")

        appointment = self.get(appointment_id, fresh=True)
        current = appointment.status

        if expected_status is not None and current != expected_status:
            raise InvalidTransitionError(current, target.value, code="stale_status")
        if not is_transition_allowed(current, target.value):
            raise InvalidTransitionError(current, target.value)

        values = {
            Appointment.status: target.value,
            Appointment.version: appointment.version + 1,
        }
        if target == AppointmentStatus.CANCELLED:
            values[Appointment.cancelled_at] = func.now()

        try:
            updated = self.db.query(Appointment).filter(
                Appointment.id == appointment_id,
                Appointment.status == current,
                Appointment.version == appointment.version,
            ).update(values, synchronize_session=False)

            if updated == 0:
                self.db.rollback()
                latest = self.get(appointment_id, fresh=True)
                raise InvalidTransitionError(latest.status, target.value, code="stale_status")

            if target == AppointmentStatus.CANCELLED:
                # frees the slot for new bookings
                self.db.query(AppointmentSlotClaim).filter(
                    AppointmentSlotClaim.appointment_id == appointment_id
                ).delete(synchronize_session=False)

            self.db.add(AppointmentStatusEvent(
                appointment_id=appointment_id,
                from_status=current,
                to_status=target.value,
            ))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update status of appointment {appointment_id}: {e}")
            raise StorageError("Could not update appointment status") from e

        appointment = self.get(appointment_id, fresh=True)
        logger.info(f"Appointment {appointment_id} moved {current} -> {target.value}")
        return appointment, current

    def reschedule(self, appointment_id: UUID, new_date: date, new_time: time) -> Appointment:
        """Move a pending/approved appointment, swapping its claims atomically"""
        appointment = self.get(appointment_id, fresh=True)
        if appointment.status not in RESCHEDULABLE:
            raise InvalidTransitionError(
                appointment.status,
                appointment.status,
                code="not_reschedulable",
                message=f"A {appointment.status} appointment cannot be rescheduled",
            )

        duration = appointment.duration_minutes
        self._check_fits_in_day(new_time, duration)
        self._check_on_grid(new_time)

        if self.find_overlapping(new_date, new_time, duration, exclude_id=appointment.id):
            raise self._conflict(new_date, new_time)

        version = appointment.version
        try:
            self.db.query(AppointmentSlotClaim).filter(
                AppointmentSlotClaim.appointment_id == appointment_id
            ).delete(synchronize_session=False)

            updated = self.db.query(Appointment).filter(
                Appointment.id == appointment_id,
                Appointment.version == version,
            ).update({
                Appointment.appointment_date: new_date,
                Appointment.start_time: new_time,
                Appointment.version: version + 1,
            }, synchronize_session=False)

            if updated == 0:
                self.db.rollback()
                raise ConflictError(
                    "Appointment changed while rescheduling, reload and retry",
                    code="stale_appointment",
                    details={"id": str(appointment_id)},
                )

            for claim in self._claims_for(new_date, new_time, duration):
                claim.appointment_id = appointment_id
                self.db.add(claim)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise self._conflict(new_date, new_time) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to reschedule appointment {appointment_id}: {e}")
            raise StorageError("Could not reschedule appointment") from e

        logger.info(f"Appointment {appointment_id} rescheduled to {new_date} {new_time}")
        return self.get(appointment_id, fresh=True)
