# ============================================================================
# FILE: salon_booking/api/v1/dashboard/appointments.py
# Admin endpoints - thin HTTP layer
# IMPORTANT: Specific routes MUST come before parameterized routes
# ============================================================================
from fastapi import APIRouter, Depends, Path, Query, status
from datetime import date
from typing import Optional
from uuid import UUID, uuid4

from salon_booking.api.dependencies import get_orchestrator, require_admin
from salon_booking.schemas.appointments import (
    AppointmentDetailResponse,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatusValue,
    ChangeResponse,
    RescheduleRequest,
    ResyncResponse,
    StatusChangeRequest,
    SyncResult,
)
from salon_booking.services.booking.booking_orchestrator import BookingOrchestrator, ChangeResult

router = APIRouter(prefix="/appointments", tags=["dashboard-appointments"])


def _change_response(result: ChangeResult) -> ChangeResponse:
    sync = None
    if result.sync is not None:
        sync = SyncResult(
            status=result.sync.status,
            action=result.sync.action,
            external_event_id=result.sync.external_event_id,
            warning=result.sync.warning,
        )
    return ChangeResponse(
        appointment=AppointmentResponse.model_validate(result.appointment),
        from_status=result.from_status,
        sync=sync,
        warning=result.warning,
    )


@router.get("", response_model=AppointmentListResponse)
def list_appointments(
        start_date: Optional[date] = Query(None, description="Filter appointments on or after this date"),
        end_date: Optional[date] = Query(None, description="Filter appointments on or before this date"),
        status: Optional[AppointmentStatusValue] = Query(None, description="Filter by status"),
        customer_email: Optional[str] = Query(None, description="Filter by customer email"),
        skip: int = Query(0, ge=0, description="Number of records to skip"),
        limit: int = Query(50, ge=1, le=100, description="Number of records to return"),
        admin: dict = Depends(require_admin),
        orchestrator: BookingOrchestrator = Depends(get_orchestrator)
):
    total, items = orchestrator.ledger.list(
        start_date=start_date,
        end_date=end_date,
        status=status.value if status else None,
        customer_email=customer_email,
        skip=skip,
        limit=limit,
    )
    return AppointmentListResponse(
        total=total,
        skip=skip,
        limit=limit,
        items=[AppointmentResponse.model_validate(item) for item in items],
    )


@router.post("/sync-all", response_model=ResyncResponse)
def sync_all_appointments(
        prune_orphans: bool = Query(False, description="Also delete stray events this system created"),
        admin: dict = Depends(require_admin),
        orchestrator: BookingOrchestrator = Depends(get_orchestrator)
):
    """
    Re-push every approved appointment to Google Calendar.
    One failing appointment does not stop the others.
    """
    if orchestrator.settings.CALENDAR_SYNC_MODE == "deferred":
        from salon_booking.tasks.calendar_tasks import resync_all_appointments

        run_id = str(uuid4())
        resync_all_appointments.apply_async(
            kwargs={"run_id": run_id, "prune_orphans": prune_orphans},
            task_id=run_id,
        )
        return ResyncResponse(run_id=run_id)

    return ResyncResponse(**orchestrator.resync_all(prune_orphans=prune_orphans).to_dict())


@router.delete("/sync-all/{run_id}", status_code=status.HTTP_202_ACCEPTED)
def cancel_sync_all(
        run_id: str = Path(..., description="Run id returned by POST /sync-all"),
        admin: dict = Depends(require_admin)
):
    """Ask a queued resync to stop after the appointment it is working on"""
    from salon_booking.tasks.calendar_tasks import RedisCancelFlag

    RedisCancelFlag(run_id).set()
    return {"run_id": run_id, "cancel_requested": True}


@router.get("/{appointment_id}", response_model=AppointmentDetailResponse)
def get_appointment(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        admin: dict = Depends(require_admin),
        orchestrator: BookingOrchestrator = Depends(get_orchestrator)
):
    """Appointment with its status history and calendar link"""
    return AppointmentDetailResponse.from_appointment(orchestrator.ledger.get(appointment_id))


@router.patch("/{appointment_id}/status", response_model=ChangeResponse)
def change_status(
        request: StatusChangeRequest,
        appointment_id: UUID = Path(..., description="The appointment ID"),
        admin: dict = Depends(require_admin),
        orchestrator: BookingOrchestrator = Depends(get_orchestrator)
):
    """
    Approve, complete or cancel.
    The status change is final even if the calendar update fails; that
    failure comes back as ``warning``.
    """
    result = orchestrator.set_status(
        appointment_id,
        request.status.value,
        expected_status=request.expected_status.value if request.expected_status else None,
    )
    return _change_response(result)


@router.patch("/{appointment_id}/reschedule", response_model=ChangeResponse)
def reschedule_appointment(
        request: RescheduleRequest,
        appointment_id: UUID = Path(..., description="The appointment ID"),
        admin: dict = Depends(require_admin),
        orchestrator: BookingOrchestrator = Depends(get_orchestrator)
):
    result = orchestrator.reschedule(appointment_id, request.appointment_date, request.start)
    return _change_response(result)


@router.post("/{appointment_id}/sync-calendar", response_model=SyncResult)
def sync_appointment(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        admin: dict = Depends(require_admin),
        orchestrator: BookingOrchestrator = Depends(get_orchestrator)
):
    """Retry the calendar mirror for one appointment; answers 502 if Google rejects it"""
    outcome = orchestrator.sync_appointment(appointment_id)
    return SyncResult(
        status=outcome.status,
        action=outcome.action,
        external_event_id=outcome.external_event_id,
        warning=outcome.warning,
    )
