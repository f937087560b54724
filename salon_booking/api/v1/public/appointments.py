# ============================================================================
# FILE: salon_booking/api/v1/public/appointments.py
# Public endpoints - thin HTTP layer
# ============================================================================
from fastapi import APIRouter, Depends, status

from salon_booking.api.dependencies import get_orchestrator
from salon_booking.schemas.appointments import BookingConfirmation, BookingRequest
from salon_booking.services.booking.booking_orchestrator import BookingOrchestrator, CustomerInfo

router = APIRouter(prefix="/appointments", tags=["public-appointments"])


@router.post("", response_model=BookingConfirmation, status_code=status.HTTP_201_CREATED)
def book_appointment(
        request: BookingRequest,
        orchestrator: BookingOrchestrator = Depends(get_orchestrator)
):
    """
    Request an appointment. It starts out pending until the business approves it.
    A taken slot answers 409 with error "slot_taken"; re-query availability.
    """
    appointment = orchestrator.book(
        target_date=request.appointment_date,
        start_time=request.start,
        service_ref=request.service_ref,
        customer=CustomerInfo(
            name=request.customer_name,
            email=request.customer_email,
            phone=request.customer_phone,
            ref=request.customer_ref,
        ),
        note=request.note,
    )
    return BookingConfirmation.from_appointment(appointment)
