# ============================================================================
# salon_booking/services/booking/booking_orchestrator.py
# Entry point for every booking use case
# ============================================================================
"""
Booking orchestrator.

Composes availability, the appointment ledger and calendar sync. The ledger
commit is the point of no return; the calendar step runs after it, in
isolation, and can only ever add a warning to the result.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, List, Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from salon_booking.config.settings import Settings, get_settings
from salon_booking.core.clock import Clock, SystemClock
from salon_booking.core.exceptions import BookingError, ConflictError, ExternalSyncError, ValidationError
from salon_booking.models.appointment import Appointment, AppointmentStatus, SyncStatus
from salon_booking.models.calendar_integration import CalendarSyncLink
from salon_booking.services.appointment.appointment_ledger import AppointmentLedger, NewAppointment
from salon_booking.services.availability.availability_policy_service import AvailabilityPolicyService
from salon_booking.services.availability.slot_computer import BookedSlot, compute_slots
from salon_booking.services.availability.time_off_service import TimeOffService, blocked_periods_for_date
from salon_booking.services.availability.windows import Period
from salon_booking.services.calendar.calendar_sync_service import CalendarSyncService, SyncOutcome
from salon_booking.services.catalog.service_catalog import ServiceCatalog
from salon_booking.utils.time_utils import format_hhmm, local_to_utc

logger = logging.getLogger(__name__)

UPSERT = "upsert"
DELETE = "delete"


@dataclass
class CustomerInfo:
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    ref: Optional[str] = None


@dataclass
class ChangeResult:
    """An appointment after a committed change, plus what happened in the calendar"""
    appointment: Appointment
    from_status: Optional[str] = None
    sync: Optional[SyncOutcome] = None

    @property
    def warning(self) -> Optional[str]:
        return self.sync.warning if self.sync is not None else None


@dataclass
class ResyncReport:
    succeeded: int = 0
    skipped: int = 0
    failed: List[Dict] = field(default_factory=list)
    cancelled: bool = False
    pruned: Optional[Dict] = None

    def to_dict(self) -> Dict:
        return {
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "pruned": self.pruned,
        }


def _enqueue_sync(appointment_id: str, action: str) -> None:
    # imported here: the task module imports this one
    from salon_booking.tasks.calendar_tasks import sync_appointment_to_calendar
    sync_appointment_to_calendar.delay(appointment_id, action)


class BookingOrchestrator:

    def __init__(
            self,
            db: Session,
            clock: Optional[Clock] = None,
            sync_service: Optional[CalendarSyncService] = None,
            settings: Optional[Settings] = None,
            dispatcher: Optional[Callable[[str, str], None]] = None
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock(self.settings.BUSINESS_TIMEZONE)
        self.tz = ZoneInfo(self.settings.BUSINESS_TIMEZONE)
        self.ledger = AppointmentLedger(db, self.settings.SLOT_CLAIM_GRANULARITY_MINUTES)
        self.sync = sync_service or CalendarSyncService(db, clock=self.clock, settings=self.settings)
        self.dispatcher = dispatcher or _enqueue_sync

    # ========== AVAILABILITY ==========

    def _external_busy(self, target_date: date) -> List[Period]:
        if not self.settings.BLOCK_EXTERNAL_BUSY_TIMES:
            return []
        try:
            return self.sync.busy_periods(target_date)
        except BookingError as e:
            # availability still answers when the calendar is unreachable
            logger.warning(f"External busy times unavailable for {target_date}: {e.code}")
            return []

    def _slots_for(self, target_date: date, duration_minutes: int, exclude_id: Optional[UUID] = None) -> List[time]:
        window = AvailabilityPolicyService.get_window(self.db, target_date.weekday())
        time_off = blocked_periods_for_date(
            TimeOffService.for_date(self.db, target_date, self.tz), target_date, self.tz
        )
        booked = [
            BookedSlot(appointment.start_time, appointment.duration_minutes)
            for appointment in self.ledger.booked_on(target_date)
            if appointment.id != exclude_id
        ]
        return compute_slots(
            target_date=target_date,
            duration_minutes=duration_minutes,
            step_minutes=self.settings.SLOT_STEP_MINUTES,
            buffer_minutes=self.settings.BOOKING_BUFFER_MINUTES,
            window=window,
            time_off=time_off,
            booked=booked,
            now=self.clock.local_now(),
            extra_busy=self._external_busy(target_date),
        )

    def request_slots(self, target_date: date, service_ref: str) -> List[time]:
        """Bookable start times for a service on a business-local date"""
        service = ServiceCatalog.get_service(self.db, service_ref)
        return self._slots_for(target_date, service.duration_minutes)

    def _check_offered(
            self,
            target_date: date,
            start_time: time,
            duration_minutes: int,
            exclude_id: Optional[UUID] = None
    ) -> None:
        if target_date < self.clock.today():
            raise ValidationError("Cannot book a date in the past", code="date_in_past",
                                  details={"date": target_date.isoformat()})

        if start_time in self._slots_for(target_date, duration_minutes, exclude_id):
            return

        if self.ledger.find_overlapping(target_date, start_time, duration_minutes, exclude_id=exclude_id):
            raise ConflictError(
                f"The slot {target_date.isoformat()} {format_hhmm(start_time)} is no longer available",
                code="slot_taken",
                details={"date": target_date.isoformat(), "time": format_hhmm(start_time)},
            )
        raise ValidationError(
            f"{format_hhmm(start_time)} on {target_date.isoformat()} is not an available slot",
            code="outside_availability",
            details={"date": target_date.isoformat(), "time": format_hhmm(start_time)},
        )

    # ========== BOOKING ==========

    def book(
            self,
            target_date: date,
            start_time: time,
            service_ref: str,
            customer: CustomerInfo,
            note: Optional[str] = None
    ) -> Appointment:
        """Create a pending appointment in an offered slot"""
        if not customer.name or not customer.name.strip():
            raise ValidationError("Customer name is required", code="missing_customer_name")

        service = ServiceCatalog.get_service(self.db, service_ref)
        self._check_offered(target_date, start_time, service.duration_minutes)

        return self.ledger.create(NewAppointment(
            appointment_date=target_date,
            start_time=start_time,
            service=service,
            customer_name=customer.name.strip(),
            customer_email=customer.email,
            customer_phone=customer.phone,
            customer_ref=customer.ref,
            note=note,
        ))

    def set_status(self, appointment_id: UUID, new_status: str, expected_status: Optional[str] = None) -> ChangeResult:
        appointment, from_status = self.ledger.update_status(appointment_id, new_status, expected_status)
        action = self._sync_action(from_status, appointment.status)
        sync = self._run_sync(appointment, action) if action else None
        return ChangeResult(appointment=appointment, from_status=from_status, sync=sync)

    def reschedule(self, appointment_id: UUID, new_date: date, new_time: time) -> ChangeResult:
        current = self.ledger.get(appointment_id, fresh=True)
        self._check_offered(new_date, new_time, current.duration_minutes, exclude_id=current.id)

        appointment = self.ledger.reschedule(appointment_id, new_date, new_time)
        sync = None
        if appointment.status == AppointmentStatus.APPROVED.value:
            sync = self._run_sync(appointment, UPSERT)
        return ChangeResult(appointment=appointment, from_status=appointment.status, sync=sync)

    # ========== CALENDAR SYNC ==========

    def _sync_action(self, from_status: str, to_status: str) -> Optional[str]:
        if to_status == AppointmentStatus.APPROVED.value:
            return UPSERT
        if from_status != AppointmentStatus.APPROVED.value:
            return None
        if to_status == AppointmentStatus.CANCELLED.value:
            return DELETE
        if to_status == AppointmentStatus.COMPLETED.value and not self.settings.CALENDAR_KEEP_COMPLETED_EVENTS:
            return DELETE
        return None

    def _run_sync(self, appointment: Appointment, action: str) -> Optional[SyncOutcome]:
        if self.settings.CALENDAR_SYNC_MODE == "deferred":
            appointment.sync_status = SyncStatus.PENDING.value
            self.db.commit()
            self.dispatcher(str(appointment.id), action)
            logger.info(f"Queued calendar {action} for appointment {appointment.id}")
            return SyncOutcome(status=SyncStatus.PENDING.value, action="queued")
        return self.apply_sync(appointment, action)

    def apply_sync(self, appointment: Appointment, action: str) -> SyncOutcome:
        """Run one calendar step; any failure becomes a warning on the outcome"""
        try:
            if action == DELETE:
                return self.sync.delete_event(appointment)
            return self.sync.upsert_event(appointment)
        except BookingError as e:
            self.db.rollback()
            logger.error(f"Calendar {action} for appointment {appointment.id} failed: {e.code}")
            return SyncOutcome.failed(e.code)
        except Exception as e:
            # the status change is already committed; whatever broke here is only a sync failure
            self.db.rollback()
            logger.exception(f"Unexpected error during calendar {action} for appointment {appointment.id}")
            return self._record_unexpected(appointment, e)

    def _record_unexpected(self, appointment: Appointment, error: Exception) -> SyncOutcome:
        outcome = SyncOutcome.failed(f"unexpected_error: {type(error).__name__}")
        try:
            appointment.sync_status = SyncStatus.FAILED.value
            appointment.last_sync_error = outcome.warning
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"Could not record sync failure for appointment {appointment.id}")
        return outcome

    def sync_appointment(self, appointment_id: UUID) -> SyncOutcome:
        """Manual re-sync of one appointment; failure is reported as ExternalSyncError"""
        appointment = self.ledger.get(appointment_id, fresh=True)
        if appointment.status == AppointmentStatus.APPROVED.value:
            action = UPSERT
        elif appointment.id in self._pending_removals():
            action = DELETE
        else:
            raise ValidationError(
                f"A {appointment.status} appointment is not mirrored to the calendar",
                code="not_syncable",
                details={"status": appointment.status},
            )

        outcome = self.apply_sync(appointment, action)
        if not outcome.ok:
            raise ExternalSyncError(
                "Calendar sync failed",
                details={"id": str(appointment_id), "reason": outcome.warning},
            )
        return outcome

    def _pending_removals(self) -> List[UUID]:
        """Appointments that still have an event but should no longer be mirrored"""
        statuses = [AppointmentStatus.CANCELLED.value]
        if not self.settings.CALENDAR_KEEP_COMPLETED_EVENTS:
            statuses.append(AppointmentStatus.COMPLETED.value)
        rows = self.db.query(Appointment.id).join(
            CalendarSyncLink, CalendarSyncLink.appointment_id == Appointment.id
        ).filter(Appointment.status.in_(statuses)).all()
        return [row.id for row in rows]

    def resync_all(self, cancel_event=None, prune_orphans: bool = False) -> ResyncReport:
        """
        Push every approved appointment to the calendar and drop events that
        should no longer exist.

        Each item is isolated: a failure is recorded and the loop moves on.
        ``cancel_event`` (anything with ``is_set()``) is checked between items.
        """
        report = ResyncReport()
        work = [(row.id, UPSERT) for row in self.ledger.list_by_status(AppointmentStatus.APPROVED.value)]
        work += [(appointment_id, DELETE) for appointment_id in self._pending_removals()]

        logger.info(f"Calendar resync started for {len(work)} appointments")
        for appointment_id, action in work:
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                logger.info("Calendar resync cancelled")
                break
            try:
                appointment = self.ledger.get(appointment_id, fresh=True)
                outcome = self.apply_sync(appointment, action)
            except BookingError as e:
                self.db.rollback()
                report.failed.append({"id": str(appointment_id), "reason": e.code})
                continue

            if not outcome.ok:
                report.failed.append({"id": str(appointment_id), "reason": outcome.warning})
            elif outcome.status == SyncStatus.SKIPPED.value:
                report.skipped += 1
            else:
                report.succeeded += 1

        if prune_orphans and not report.cancelled:
            report.pruned = self._prune()

        logger.info(
            f"Calendar resync finished: {report.succeeded} ok, {report.skipped} skipped, "
            f"{len(report.failed)} failed, cancelled={report.cancelled}"
        )
        return report

    def _prune(self) -> Dict:
        today = self.clock.today()
        start = datetime.combine(today - timedelta(days=self.settings.RESYNC_WINDOW_PAST_DAYS), time.min)
        end = datetime.combine(today + timedelta(days=self.settings.RESYNC_WINDOW_FUTURE_DAYS), time.min)
        try:
            return self.sync.prune_orphans(local_to_utc(start, self.tz), local_to_utc(end, self.tz))
        except BookingError as e:
            logger.error(f"Orphan pruning failed: {e.code}")
            return {"deleted": 0, "failed": [{"reason": e.code}]}
