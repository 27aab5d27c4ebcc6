"""First-fit search for an open slot over a bounded horizon."""

import heapq
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Iterator

from sqlalchemy.orm import Session

from scheduler.core import config
from scheduler.models.appointment import ACTIVE_STATUSES, Appointment
from scheduler.models.availability import AvailabilityWindow
from scheduler.scheduling.availability_store import active_windows_by_day, window_bounds
from scheduler.scheduling.clock import day_of_week
from scheduler.scheduling.conflicts import intervals_overlap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Slot:
    start_time: datetime
    end_time: datetime

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)


def get_busy_intervals(
    db: Session,
    range_start: datetime,
    range_end: datetime,
    resource_id: str = config.DEFAULT_RESOURCE_ID,
) -> list[tuple[datetime, datetime]]:
    """Active appointments intersecting the range, fetched in one query."""
    rows = db.query(Appointment.start_time, Appointment.end_time).filter(
        Appointment.resource_id == resource_id,
        Appointment.status.in_(ACTIVE_STATUSES),
        Appointment.start_time < range_end,
        Appointment.end_time > range_start,
    ).order_by(Appointment.start_time.asc()).all()
    return [(start, end) for start, end in rows]


def _window_candidates(
    window: AvailabilityWindow,
    on_date: date,
    duration: timedelta,
    stride: timedelta,
) -> Iterator[Slot]:
    window_start, window_end = window_bounds(window, on_date)
    slot_start = window_start
    while slot_start + duration <= window_end:
        yield Slot(start_time=slot_start, end_time=slot_start + duration)
        slot_start += stride


def _day_candidates(
    windows: Iterable[AvailabilityWindow],
    on_date: date,
    duration: timedelta,
    stride: timedelta,
) -> Iterator[Slot]:
    """Candidates of all windows on one date, by start time, each start once."""
    merged = heapq.merge(
        *(_window_candidates(window, on_date, duration, stride) for window in windows),
        key=lambda slot: slot.start_time,
    )
    previous_start = None
    for slot in merged:
        # Overlapping windows propose the same start more than once.
        if slot.start_time == previous_start:
            continue
        previous_start = slot.start_time
        yield slot


def iter_open_slots(
    db: Session,
    duration_minutes: int,
    now: datetime,
    days: int = config.SLOT_SEARCH_HORIZON_DAYS,
    resource_id: str = config.DEFAULT_RESOURCE_ID,
    stride_minutes: int = config.SLOT_STRIDE_MINUTES,
) -> Iterator[Slot]:
    """Yield bookable slots in chronological order without duplicates.

    Windows and busy intervals are loaded once up front; candidates are then
    checked in memory. Candidates starting before ``now`` are skipped.
    """
    if duration_minutes <= 0:
        return

    horizon_end = now + timedelta(days=days)
    windows_by_day = active_windows_by_day(db, resource_id)
    if not windows_by_day:
        return

    busy = get_busy_intervals(db, now, horizon_end, resource_id)
    duration = timedelta(minutes=duration_minutes)
    stride = timedelta(minutes=stride_minutes)

    for offset in range(days):
        current_day = (now + timedelta(days=offset)).date()
        day_windows = windows_by_day.get(day_of_week(datetime.combine(current_day, datetime.min.time())))
        if not day_windows:
            continue

        for slot in _day_candidates(day_windows, current_day, duration, stride):
            if slot.start_time < now:
                continue
            if any(
                intervals_overlap(slot.start_time, slot.end_time, busy_start, busy_end)
                for busy_start, busy_end in busy
            ):
                continue
            yield slot


def find_first_slot(
    db: Session,
    duration_minutes: int,
    now: datetime,
    resource_id: str = config.DEFAULT_RESOURCE_ID,
) -> Slot | None:
    """Earliest open slot within the search horizon, or None when there is none."""
    slot = next(iter_open_slots(db, duration_minutes, now, resource_id=resource_id), None)
    if slot is None:
        logger.info(
            'No %s-minute slot available on %s in the next %s days',
            duration_minutes, resource_id, config.SLOT_SEARCH_HORIZON_DAYS,
        )
    return slot
