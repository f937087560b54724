from sqlalchemy import (
    Column, String, Integer, Text, Date, Time, DateTime, Numeric, ForeignKey, Index, UniqueConstraint, text
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .base import Base
import enum
import uuid


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SyncStatus(str, enum.Enum):
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"
    SKIPPED = "skipped"
    NOT_REQUIRED = "not_required"


ACTIVE_SLOT_PREDICATE = text("status <> 'cancelled'")


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Opaque references into the directory service
    customer_ref = Column(String, nullable=True)
    service_ref = Column(String, nullable=False)

    # Customer contact info
    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)

    # Appointment details (business-local wall clock)
    service_name = Column(String, nullable=True)
    appointment_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    note = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)

    # Status tracking
    status = Column(String, nullable=False, default=AppointmentStatus.PENDING.value)
    version = Column(Integer, nullable=False, default=1)  # optimistic concurrency

    # Calendar sync bookkeeping
    sync_status = Column(String, nullable=False, default=SyncStatus.NOT_REQUIRED.value)
    sync_attempts = Column(Integer, nullable=False, default=0)
    last_sync_error = Column(Text, nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    claims = relationship("AppointmentSlotClaim", back_populates="appointment", cascade="all, delete-orphan")
    status_events = relationship(
        "AppointmentStatusEvent",
        back_populates="appointment",
        order_by="AppointmentStatusEvent.id",
        cascade="all, delete-orphan",
    )
    sync_link = relationship("CalendarSyncLink", back_populates="appointment", uselist=False)

    __table_args__ = (
        # Storage-native guard: one active booking per (date, time)
        Index(
            "uq_appointments_active_slot",
            "appointment_date",
            "start_time",
            unique=True,
            postgresql_where=ACTIVE_SLOT_PREDICATE,
            sqlite_where=ACTIVE_SLOT_PREDICATE,
        ),
        Index("ix_appointments_date_status", "appointment_date", "status"),
        Index("ix_appointments_customer_email", "customer_email"),
    )

    @property
    def is_active(self) -> bool:
        return self.status != AppointmentStatus.CANCELLED.value

    def __repr__(self):
        return f"<Appointment(id={self.id}, {self.appointment_date} {self.start_time}, status={self.status})>"


class AppointmentSlotClaim(Base):
    """One row per claim cell covered by an active appointment.

    The unique index on (claim_date, claim_minute) makes two overlapping
    bookings impossible to commit, whichever server instance writes them.
    """
    __tablename__ = "appointment_slot_claims"

    id = Column(Integer, primary_key=True, autoincrement=True)
    appointment_id = Column(
        UUID(as_uuid=True), ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    claim_date = Column(Date, nullable=False)
    claim_minute = Column(Integer, nullable=False)  # minutes since local midnight

    appointment = relationship("Appointment", back_populates="claims")

    __table_args__ = (
        UniqueConstraint("claim_date", "claim_minute", name="uq_slot_claims_cell"),
    )


class AppointmentStatusEvent(Base):
    """Audit trail of status transitions"""
    __tablename__ = "appointment_status_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    appointment_id = Column(
        UUID(as_uuid=True), ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_status = Column(String, nullable=True)  # None for the creation event
    to_status = Column(String, nullable=False)
    changed_at = Column(DateTime(timezone=True), server_default=func.now())

    appointment = relationship("Appointment", back_populates="status_events")
