# salon_booking/schemas/__init__.py
from .availability import (
    DayHours,
    WeekdayHours,
    WeeklySchedule,
    TimeOffCreate,
    TimeOffResponse,
    AvailableSlotsResponse
)

from .appointments import (
    AppointmentStatusValue,
    BookingRequest,
    StatusChangeRequest,
    RescheduleRequest,
    StatusEventResponse,
    AppointmentResponse,
    AppointmentDetailResponse,
    AppointmentListResponse,
    BookingConfirmation,
    SyncResult,
    ChangeResponse,
    ResyncResponse
)

from .calendar import (
    AuthorizationUrlResponse,
    CalendarConnectionStatus,
    CalendarInfo,
    CalendarSelection
)

from .services import ServiceResponse
