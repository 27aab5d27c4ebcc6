"""Auto-booking of a consultation when a paid order contains one."""

import logging
from datetime import datetime
from typing import Iterable, Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from scheduler.core import config
from scheduler.core.errors import NoAvailabilityError, SlotConflictError
from scheduler.models.appointment import Appointment
from scheduler.scheduling.bookings import create_appointment, find_by_order_reference
from scheduler.scheduling.clock import utc_now
from scheduler.scheduling.slot_finder import find_first_slot
from scheduler.services.notifications import AppointmentNotifier

logger = logging.getLogger(__name__)

CONSULTATION_CATEGORY = 'consultation'
AUTO_BOOKING_NOTE = 'Auto-created from paid consultation order'
MAX_BOOKING_ATTEMPTS = 3


class OrderLine(Protocol):
    category: str | None
    is_consult: bool


def has_consultation_item(items: Iterable[OrderLine]) -> bool:
    return any(
        (item.category or '').strip().lower() == CONSULTATION_CATEGORY or item.is_consult
        for item in items
    )


def book_consultation_for_order(
    db: Session,
    order_id: str,
    customer_email: str,
    customer_name: str | None,
    items: Iterable[OrderLine],
    *,
    now: datetime | None = None,
    resource_id: str = config.DEFAULT_RESOURCE_ID,
    notifier: AppointmentNotifier | None = None,
) -> Appointment | None:
    """Book the earliest open consultation slot for a paid order.

    Returns None when the order has no consultation line. Re-running for the
    same order returns the appointment booked the first time. Raises
    NoAvailabilityError when the search horizon has no open slot; no fallback
    time is ever invented.
    """
    if not has_consultation_item(items):
        return None

    existing = find_by_order_reference(db, order_id)
    if existing is not None:
        logger.info('Order %s already has appointment %s', order_id, existing.id)
        return existing

    current_time = now or utc_now()
    client_name = (customer_name or '').strip() or customer_email or 'Consultation Client'

    for attempt in range(1, MAX_BOOKING_ATTEMPTS + 1):
        slot = find_first_slot(db, config.CONSULTATION_DURATION_MINUTES, current_time, resource_id)
        if slot is None:
            raise NoAvailabilityError()

        try:
            return create_appointment(
                db,
                client_name,
                customer_email,
                slot.start_time,
                slot.end_time,
                notes=AUTO_BOOKING_NOTE,
                approval_required=False,
                resource_id=resource_id,
                consultation_type='paid',
                consultation_source='checkout',
                order_reference=order_id,
                now=current_time,
                notifier=notifier,
            )
        except SlotConflictError:
            logger.info(
                'Slot %s for order %s was taken concurrently (attempt %s/%s)',
                slot.start_time, order_id, attempt, MAX_BOOKING_ATTEMPTS,
            )
        except IntegrityError:
            # A concurrent delivery of the same order committed first.
            existing = find_by_order_reference(db, order_id)
            if existing is None:
                raise
            logger.info('Order %s was booked concurrently as %s', order_id, existing.id)
            return existing

        # The slot may have gone to another delivery of this same order.
        existing = find_by_order_reference(db, order_id)
        if existing is not None:
            logger.info('Order %s was booked concurrently as %s', order_id, existing.id)
            return existing

    raise NoAvailabilityError('Could not reserve a consultation slot. Please try again.')
