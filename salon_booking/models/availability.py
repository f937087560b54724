# ===== salon_booking/models/availability.py =====
from sqlalchemy import Column, Integer, Boolean, Time, DateTime, Text, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from salon_booking.models.base import Base
import uuid


class WorkDayRule(Base):
    """Weekly work-hour template, one row per weekday (replaced wholesale on edit)"""
    __tablename__ = "work_day_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    weekday = Column(Integer, nullable=False, unique=True)  # 0=Monday, 6=Sunday
    is_open = Column(Boolean, nullable=False, default=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<WorkDayRule(weekday={self.weekday}, open={self.is_open}, {self.start_time}-{self.end_time})>"


class AvailabilitySettings(Base):
    """Singleton row carrying the weekly policy version"""
    __tablename__ = "availability_settings"

    id = Column(Integer, primary_key=True)
    policy_version = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class TimeOffInterval(Base):
    """Administrator-declared blackout (holidays, vacation, partial-day blocks)"""
    __tablename__ = "time_off"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=False)
    reason = Column(Text, nullable=True)  # "Holiday", "Vacation", etc.
    all_day = Column(Boolean, nullable=False, default=False)  # True = blocks whole day(s)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_time_off_range", "start_at", "end_at"),
    )

    def __repr__(self):
        return f"<TimeOffInterval(id={self.id}, {self.start_at} -> {self.end_at}, all_day={self.all_day})>"
