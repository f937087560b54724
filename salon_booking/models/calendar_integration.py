from sqlalchemy import Column, String, DateTime, LargeBinary, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from salon_booking.models.base import Base
import enum
import uuid


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    ERROR = "error"


class CalendarCredential(Base):
    """OAuth credential for the business owner's Google Calendar.

    Tokens are stored Fernet-encrypted and are never serialized outward;
    use ``CalendarSyncService.connection_status`` for anything user-facing.
    """
    __tablename__ = "calendar_credentials"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_ref = Column(String, nullable=False, unique=True)
    provider = Column(String, nullable=False, default="google")

    # OAuth tokens (cryptography.fernet)
    access_token_encrypted = Column(LargeBinary, nullable=True)
    refresh_token_encrypted = Column(LargeBinary, nullable=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)

    external_calendar_id = Column(String, nullable=True)
    connection_state = Column(String, nullable=False, default=ConnectionState.DISCONNECTED.value)
    last_error = Column(Text, nullable=True)

    connected_at = Column(DateTime(timezone=True), nullable=True)
    last_refreshed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        # tokens deliberately left out
        return f"<CalendarCredential(owner_ref={self.owner_ref}, state={self.connection_state})>"


class CalendarSyncLink(Base):
    """Mapping from a local appointment to its mirrored external event"""
    __tablename__ = "calendar_sync_links"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    appointment_id = Column(
        UUID(as_uuid=True), ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    external_event_id = Column(String, nullable=False)
    external_calendar_id = Column(String, nullable=False)
    synced_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    appointment = relationship("Appointment", back_populates="sync_link")
