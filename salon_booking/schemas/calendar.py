# salon_booking/schemas/calendar.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class AuthorizationUrlResponse(BaseModel):
    authorization_url: str = Field(..., description="Google consent page for the business owner")


class CalendarConnectionStatus(BaseModel):
    """Connection state as shown on the dashboard. Carries no token material."""
    provider: str = "google"
    state: str = Field(..., description="disconnected, connected or error")
    calendar_id: Optional[str] = None
    error: Optional[str] = None
    connected_at: Optional[datetime] = None
    last_refreshed_at: Optional[datetime] = None


class CalendarInfo(BaseModel):
    id: str
    name: str


class CalendarSelection(BaseModel):
    calendar_id: str = Field(..., min_length=1, description="Calendar id from GET /google/calendars")
