# ============================================================================
# FILE: salon_booking/api/v1/public/availability.py
# Public endpoints - thin HTTP layer
# ============================================================================
from fastapi import APIRouter, Depends, Query
from datetime import date

from salon_booking.api.dependencies import get_orchestrator
from salon_booking.schemas.availability import AvailableSlotsResponse
from salon_booking.services.booking.booking_orchestrator import BookingOrchestrator
from salon_booking.services.catalog.service_catalog import ServiceCatalog
from salon_booking.utils.time_utils import format_hhmm

router = APIRouter(prefix="/availability", tags=["public-availability"])


@router.get("", response_model=AvailableSlotsResponse)
def get_available_slots(
        requested_date: date = Query(..., alias="date", description="Business-local date, YYYY-MM-DD"),
        service_ref: str = Query(..., description="Service slug or id"),
        orchestrator: BookingOrchestrator = Depends(get_orchestrator)
):
    """
    Bookable start times for a service on a date.
    No authentication required.
    """
    service = ServiceCatalog.get_service(orchestrator.db, service_ref)
    slots = orchestrator.request_slots(requested_date, service_ref)
    return AvailableSlotsResponse(
        requested_date=requested_date,
        service_ref=service.ref,
        duration_minutes=service.duration_minutes,
        timezone=orchestrator.settings.BUSINESS_TIMEZONE,
        slots=[format_hhmm(slot) for slot in slots],
    )
