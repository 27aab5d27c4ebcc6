"""Appointment model definitions."""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from scheduler.database import Base


class AppointmentStatus(str, Enum):
    """
    Appointment lifecycle status.

    Public bookings:  pending_approval -> confirmed -> completed
                                       \\-> cancelled
    System bookings:  pending -> scheduled / confirmed -> completed
    """

    PENDING_APPROVAL = "pending_approval"
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses that occupy time on the calendar. pending_approval is left out so
# an unanswered request never holds a slot.
ACTIVE_STATUSES = frozenset(
    {AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value, AppointmentStatus.PENDING.value}
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Appointment(Base):
    """Represents a booked appointment on a calendar resource."""
    __tablename__ = "appointments"

    id = Column(String, primary_key=True)
    resource_id = Column(String, ForeignKey("calendar_resources.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False)
    client_name = Column(String, nullable=False)
    client_email = Column(String, nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default=AppointmentStatus.PENDING_APPROVAL.value, index=True)
    requires_approval = Column(Boolean, nullable=False, default=True)
    is_approved = Column(Boolean, nullable=False, default=False)
    session_token = Column(String, nullable=False, unique=True)
    notes = Column(Text)
    work_notes = Column(Text)
    billable_hours = Column(Float)
    consultation_type = Column(String, default="free")
    consultation_source = Column(String)
    order_reference = Column(String, unique=True)
    meeting_link = Column(String)
    approved_at = Column(DateTime)
    rejected_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)
