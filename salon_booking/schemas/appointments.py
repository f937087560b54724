# salon_booking/schemas/appointments.py
from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Optional
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from uuid import UUID

from salon_booking.utils.time_utils import format_hhmm, parse_hhmm


class AppointmentStatusValue(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


def _hhmm(value: str) -> str:
    try:
        parse_hhmm(value)
    except ValueError:
        raise ValueError(f"'{value}' is not a valid HH:MM time")
    return value


class BookingRequest(BaseModel):
    """Customer booking request"""
    service_ref: str = Field(..., min_length=1, description="Service slug or id")
    appointment_date: date = Field(..., description="Business-local date")
    start_time: str = Field(..., description="Business-local start time, HH:MM")
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: Optional[str] = Field(None, max_length=320)
    customer_phone: Optional[str] = Field(None, max_length=40)
    customer_ref: Optional[str] = Field(None, description="Opaque customer reference from the directory")
    note: Optional[str] = Field(None, max_length=2000)

    @field_validator("start_time")
    @classmethod
    def valid_start_time(cls, v: str) -> str:
        return _hhmm(v)

    @field_validator("customer_email")
    @classmethod
    def looks_like_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("Invalid email address")
        return v.strip().lower()

    @property
    def start(self) -> time:
        return parse_hhmm(self.start_time)


class StatusChangeRequest(BaseModel):
    status: AppointmentStatusValue
    expected_status: Optional[AppointmentStatusValue] = Field(
        None, description="Reject the change if the appointment is no longer in this status"
    )


class RescheduleRequest(BaseModel):
    appointment_date: date
    start_time: str = Field(..., description="HH:MM")

    @field_validator("start_time")
    @classmethod
    def valid_start_time(cls, v: str) -> str:
        return _hhmm(v)

    @property
    def start(self) -> time:
        return parse_hhmm(self.start_time)


class StatusEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_status: Optional[str] = None
    to_status: str
    changed_at: Optional[datetime] = None


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: str
    appointment_date: date
    start_time: time
    duration_minutes: int
    service_ref: str
    service_name: Optional[str] = None
    price: Decimal
    customer_ref: Optional[str] = None
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    note: Optional[str] = None
    sync_status: str
    last_sync_error: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class AppointmentDetailResponse(AppointmentResponse):
    external_event_id: Optional[str] = None
    history: List[StatusEventResponse] = Field(default_factory=list)

    @classmethod
    def from_appointment(cls, appointment) -> "AppointmentDetailResponse":
        detail = cls.model_validate(appointment)
        detail.history = [StatusEventResponse.model_validate(event) for event in appointment.status_events]
        if appointment.sync_link is not None:
            detail.external_event_id = appointment.sync_link.external_event_id
        return detail


class AppointmentListResponse(BaseModel):
    total: int
    skip: int
    limit: int
    items: List[AppointmentResponse]


class BookingConfirmation(BaseModel):
    """What the customer sees after booking"""
    id: UUID
    status: str
    appointment_date: date
    start_time: str
    duration_minutes: int
    service_name: Optional[str] = None
    message: str

    @classmethod
    def from_appointment(cls, appointment) -> "BookingConfirmation":
        return cls(
            id=appointment.id,
            status=appointment.status,
            appointment_date=appointment.appointment_date,
            start_time=format_hhmm(appointment.start_time),
            duration_minutes=appointment.duration_minutes,
            service_name=appointment.service_name,
            message="Your appointment request was received and is awaiting confirmation.",
        )


class SyncResult(BaseModel):
    status: str
    action: Optional[str] = None
    external_event_id: Optional[str] = None
    warning: Optional[str] = None


class ChangeResponse(BaseModel):
    """Result of a status change or reschedule: the committed appointment plus any calendar warning"""
    appointment: AppointmentResponse
    from_status: Optional[str] = None
    sync: Optional[SyncResult] = None
    warning: Optional[str] = None


class ResyncResponse(BaseModel):
    succeeded: int = 0
    skipped: int = 0
    failed: List[Dict[str, Any]] = Field(default_factory=list)
    cancelled: bool = False
    pruned: Optional[Dict[str, Any]] = None
    run_id: Optional[str] = Field(None, description="Set when the resync was queued to a worker")
