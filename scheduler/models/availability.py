"""Availability model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from scheduler.database import Base


class AvailabilityWindow(Base):
    """A recurring weekly open window, [start_time, end_time) on day_of_week."""
    __tablename__ = "availability_windows"

    id = Column(Integer, primary_key=True)
    resource_id = Column(String, ForeignKey("calendar_resources.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday, 6=Saturday (UTC)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)  # HH:MM, 24:00 allowed
    timezone = Column(String, nullable=False, default="UTC")
    is_active = Column(Boolean, nullable=False, default=True)
