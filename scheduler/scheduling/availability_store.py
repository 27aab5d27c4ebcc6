"""Weekly availability windows: lookups for the scheduler, edits for admins."""

import logging
import re
from datetime import date, datetime, timedelta

from sqlalchemy.orm import Session

from scheduler.core import config
from scheduler.core.errors import AvailabilityWindowNotFoundError, BookingValidationError
from scheduler.models.availability import AvailabilityWindow
from scheduler.scheduling.resources import ensure_calendar_resource

logger = logging.getLogger(__name__)

CLOCK_PATTERN = re.compile(r'^([01]\d|2[0-4]):([0-5]\d)$')
MINUTES_PER_DAY = 24 * 60


def parse_clock(value: str) -> int:
    """Convert a wall-clock "HH:MM" string to minutes after midnight."""
    match = CLOCK_PATTERN.match((value or '').strip())
    if not match:
        raise BookingValidationError(f'Invalid time of day: {value!r}. Expected HH:MM.')

    minutes = int(match.group(1)) * 60 + int(match.group(2))
    if minutes > MINUTES_PER_DAY:
        raise BookingValidationError(f'Invalid time of day: {value!r}. Expected HH:MM.')
    return minutes


def window_bounds(window: AvailabilityWindow, on_date: date) -> tuple[datetime, datetime]:
    """Absolute [start, end) of a weekly window on a given calendar date."""
    midnight = datetime.combine(on_date, datetime.min.time())
    return (
        midnight + timedelta(minutes=parse_clock(window.start_time)),
        midnight + timedelta(minutes=parse_clock(window.end_time)),
    )


def windows_for(
    db: Session,
    day_of_week: int,
    resource_id: str = config.DEFAULT_RESOURCE_ID,
) -> list[AvailabilityWindow]:
    return db.query(AvailabilityWindow).filter(
        AvailabilityWindow.resource_id == resource_id,
        AvailabilityWindow.day_of_week == day_of_week,
        AvailabilityWindow.is_active.is_(True),
    ).order_by(AvailabilityWindow.start_time.asc()).all()


def active_windows_by_day(
    db: Session,
    resource_id: str = config.DEFAULT_RESOURCE_ID,
) -> dict[int, list[AvailabilityWindow]]:
    windows = db.query(AvailabilityWindow).filter(
        AvailabilityWindow.resource_id == resource_id,
        AvailabilityWindow.is_active.is_(True),
    ).order_by(AvailabilityWindow.day_of_week.asc(), AvailabilityWindow.start_time.asc()).all()

    by_day: dict[int, list[AvailabilityWindow]] = {}
    for window in windows:
        by_day.setdefault(window.day_of_week, []).append(window)
    return by_day


def list_windows(db: Session, resource_id: str = config.DEFAULT_RESOURCE_ID) -> list[AvailabilityWindow]:
    return db.query(AvailabilityWindow).filter(
        AvailabilityWindow.resource_id == resource_id,
    ).order_by(AvailabilityWindow.day_of_week.asc(), AvailabilityWindow.start_time.asc()).all()


def create_window(
    db: Session,
    day_of_week: int,
    start_time: str,
    end_time: str,
    timezone: str | None = None,
    resource_id: str = config.DEFAULT_RESOURCE_ID,
) -> AvailabilityWindow:
    if day_of_week not in range(7):
        raise BookingValidationError('dayOfWeek must be between 0 (Sunday) and 6 (Saturday).')

    start_minutes = parse_clock(start_time)
    end_minutes = parse_clock(end_time)
    if start_minutes >= end_minutes:
        raise BookingValidationError('Window start must be before window end.')

    ensure_calendar_resource(db, resource_id)
    window = AvailabilityWindow(
        resource_id=resource_id,
        day_of_week=day_of_week,
        start_time=start_time.strip(),
        end_time=end_time.strip(),
        timezone=(timezone or 'UTC').strip() or 'UTC',
        is_active=True,
    )
    db.add(window)
    db.commit()
    db.refresh(window)

    logger.info(
        'Availability window %s created: day=%s %s-%s',
        window.id, window.day_of_week, window.start_time, window.end_time,
    )
    return window


def _get_window(db: Session, window_id: int, resource_id: str) -> AvailabilityWindow:
    window = db.query(AvailabilityWindow).filter(
        AvailabilityWindow.id == window_id,
        AvailabilityWindow.resource_id == resource_id,
    ).first()
    if window is None:
        raise AvailabilityWindowNotFoundError(window_id)
    return window


def set_window_active(
    db: Session,
    window_id: int,
    is_active: bool,
    resource_id: str = config.DEFAULT_RESOURCE_ID,
) -> AvailabilityWindow:
    window = _get_window(db, window_id, resource_id)
    window.is_active = is_active
    db.commit()
    db.refresh(window)
    return window


def delete_window(db: Session, window_id: int, resource_id: str = config.DEFAULT_RESOURCE_ID) -> None:
    window = _get_window(db, window_id, resource_id)
    db.delete(window)
    db.commit()
    logger.info('Availability window %s deleted', window_id)
