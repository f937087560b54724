# ============================================================================
# FILE: salon_booking/api/v1/dashboard/time_off.py
# Admin endpoints - thin HTTP layer
# ============================================================================
from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from salon_booking.api.dependencies import require_admin
from salon_booking.config.database import get_db
from salon_booking.schemas.availability import TimeOffCreate, TimeOffResponse
from salon_booking.services.availability.time_off_service import TimeOffService

router = APIRouter(prefix="/time-off", tags=["dashboard-time-off"])


@router.get("", response_model=List[TimeOffResponse])
def list_time_off(
        start: Optional[datetime] = Query(None, description="Only intervals ending at or after this instant"),
        end: Optional[datetime] = Query(None, description="Only intervals starting at or before this instant"),
        admin: dict = Depends(require_admin),
        db: Session = Depends(get_db)
):
    return TimeOffService.list(db, start=start, end=end)


@router.post("", response_model=TimeOffResponse, status_code=status.HTTP_201_CREATED)
def add_time_off(
        request: TimeOffCreate,
        admin: dict = Depends(require_admin),
        db: Session = Depends(get_db)
):
    """Block a range. Existing appointments inside it are left untouched."""
    return TimeOffService.add(
        db,
        start_at=request.start_at,
        end_at=request.end_at,
        reason=request.reason,
        all_day=request.all_day,
    )


@router.delete("/{time_off_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_time_off(
        time_off_id: UUID = Path(..., description="The time-off ID"),
        admin: dict = Depends(require_admin),
        db: Session = Depends(get_db)
):
    TimeOffService.remove(db, time_off_id)
