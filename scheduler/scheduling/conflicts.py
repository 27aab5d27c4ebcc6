"""Bookability of a candidate interval against windows and active appointments."""

from datetime import datetime
from typing import Iterable

from sqlalchemy.orm import Session

from scheduler.core import config
from scheduler.models.appointment import ACTIVE_STATUSES, Appointment
from scheduler.models.availability import AvailabilityWindow
from scheduler.scheduling.availability_store import window_bounds, windows_for
from scheduler.scheduling.clock import day_of_week


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    # Half-open intervals: touching endpoints do not overlap.
    return a_start < b_end and b_start < a_end


def is_within_windows(start: datetime, end: datetime, windows: Iterable[AvailabilityWindow]) -> bool:
    """True if some window, placed on the start's calendar date, contains [start, end)."""
    for window in windows:
        window_start, window_end = window_bounds(window, start.date())
        if window_start <= start and end <= window_end:
            return True
    return False


def find_conflicts(
    db: Session,
    start: datetime,
    end: datetime,
    resource_id: str = config.DEFAULT_RESOURCE_ID,
    exclude_id: str | None = None,
) -> list[Appointment]:
    query = db.query(Appointment).filter(
        Appointment.resource_id == resource_id,
        Appointment.status.in_(ACTIVE_STATUSES),
        Appointment.start_time < end,
        Appointment.end_time > start,
    )
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)
    return query.order_by(Appointment.start_time.asc()).all()


def has_conflict(
    db: Session,
    start: datetime,
    end: datetime,
    resource_id: str = config.DEFAULT_RESOURCE_ID,
) -> bool:
    conflict = db.query(Appointment.id).filter(
        Appointment.resource_id == resource_id,
        Appointment.status.in_(ACTIVE_STATUSES),
        Appointment.start_time < end,
        Appointment.end_time > start,
    ).first()
    return conflict is not None


def is_bookable(
    db: Session,
    start: datetime,
    end: datetime,
    resource_id: str = config.DEFAULT_RESOURCE_ID,
) -> bool:
    if start >= end:
        return False

    windows = windows_for(db, day_of_week(start), resource_id)
    if not is_within_windows(start, end, windows):
        return False

    return not has_conflict(db, start, end, resource_id)
