# salon_booking/models/__init__.py
from .base import Base
from .availability import WorkDayRule, AvailabilitySettings, TimeOffInterval
from .appointment import (
    Appointment,
    AppointmentSlotClaim,
    AppointmentStatusEvent,
    AppointmentStatus,
    SyncStatus,
)
from .calendar_integration import CalendarCredential, CalendarSyncLink, ConnectionState
from .service import Service

__all__ = [
    "Base",
    "WorkDayRule",
    "AvailabilitySettings",
    "TimeOffInterval",
    "Appointment",
    "AppointmentSlotClaim",
    "AppointmentStatusEvent",
    "AppointmentStatus",
    "SyncStatus",
    "CalendarCredential",
    "CalendarSyncLink",
    "ConnectionState",
    "Service",
]
