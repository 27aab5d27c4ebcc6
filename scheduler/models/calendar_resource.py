"""Calendar resource model definitions."""

from sqlalchemy import Column, String
from scheduler.database import Base


class CalendarResource(Base):
    """A bookable calendar; bookings on one resource are serialised on its row."""
    __tablename__ = "calendar_resources"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    owner_user_id = Column(String, nullable=False)
