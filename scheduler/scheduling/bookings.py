"""Appointment creation, lookup and administrative status transitions."""

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scheduler.core import config
from scheduler.core.errors import (
    AppointmentNotFoundError,
    BookingValidationError,
    InvalidTransitionError,
    SlotConflictError,
)
from scheduler.models.appointment import Appointment, AppointmentStatus
from scheduler.scheduling.clock import to_utc_naive, utc_now
from scheduler.scheduling.conflicts import find_conflicts, is_bookable
from scheduler.scheduling.resources import lock_calendar_resource, resource_lock
from scheduler.services.notifications import AppointmentNotifier, default_notifier

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    AppointmentStatus.PENDING_APPROVAL.value: frozenset(
        {AppointmentStatus.CONFIRMED.value, AppointmentStatus.CANCELLED.value}
    ),
    AppointmentStatus.PENDING.value: frozenset(
        {AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value, AppointmentStatus.CANCELLED.value}
    ),
    AppointmentStatus.SCHEDULED.value: frozenset(
        {AppointmentStatus.CONFIRMED.value, AppointmentStatus.COMPLETED.value, AppointmentStatus.CANCELLED.value}
    ),
    AppointmentStatus.CONFIRMED.value: frozenset(
        {AppointmentStatus.COMPLETED.value, AppointmentStatus.CANCELLED.value}
    ),
    AppointmentStatus.COMPLETED.value: frozenset(),
    AppointmentStatus.CANCELLED.value: frozenset(),
}


def can_transition(current: str, requested: str) -> bool:
    return requested in ALLOWED_TRANSITIONS.get(current, frozenset())


def meeting_link_for(appointment_id: str) -> str:
    return f'{config.MEETING_BASE_URL}/{config.MEETING_ROOM_PREFIX}-{appointment_id}'


def _normalize_text(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    if len(normalized) > config.MAX_NOTES_LENGTH:
        raise BookingValidationError(f'Notes must be {config.MAX_NOTES_LENGTH} characters or fewer.')
    return normalized


def _notify(action, *args) -> None:
    # Email is best effort; a booking that committed stays committed.
    try:
        action(*args)
    except Exception:
        logger.exception('Appointment notification failed')


def create_appointment(
    db: Session,
    client_name: str | None,
    client_email: str | None,
    start: datetime,
    end: datetime,
    notes: str | None = None,
    approval_required: bool = True,
    *,
    resource_id: str = config.DEFAULT_RESOURCE_ID,
    consultation_type: str | None = None,
    consultation_source: str | None = None,
    order_reference: str | None = None,
    now: datetime | None = None,
    notifier: AppointmentNotifier | None = None,
) -> Appointment:
    """Validate, conflict-check and persist a new appointment.

    Public bookings (``approval_required``) start as ``pending_approval`` and
    must lie in the future. System bookings start as ``pending`` and occupy
    their slot straight away. The availability check and the insert run under
    the calendar's lock inside one transaction, so two requests racing for the
    same slot cannot both pass the check.
    """
    client_name = (client_name or '').strip()
    client_email = (client_email or '').strip().lower()
    if not client_name or not client_email:
        raise BookingValidationError('Missing required fields')
    if '@' not in client_email:
        raise BookingValidationError('A valid email address is required.')

    start = to_utc_naive(start)
    end = to_utc_naive(end)
    if start >= end:
        raise BookingValidationError('Appointment start must be before its end.')

    duration = end - start
    duration_minutes = int(duration.total_seconds() // 60)
    if duration != timedelta(minutes=duration_minutes):
        raise BookingValidationError('Appointment length must be a whole number of minutes.')
    if duration_minutes > config.MAX_BOOKING_DURATION_MINUTES:
        raise BookingValidationError(
            f'Appointments can be at most {config.MAX_BOOKING_DURATION_MINUTES} minutes long.'
        )

    notes = _normalize_text(notes)
    current_time = now or utc_now()
    if approval_required and start <= current_time:
        raise BookingValidationError('Appointments must be scheduled in the future.')

    if approval_required:
        status = AppointmentStatus.PENDING_APPROVAL.value
    else:
        status = AppointmentStatus.PENDING.value

    with resource_lock(resource_id):
        try:
            resource = lock_calendar_resource(db, resource_id)
            if not is_bookable(db, start, end, resource_id):
                logger.info('Rejected booking %s-%s on %s: slot unavailable', start, end, resource_id)
                raise SlotConflictError()

            appointment = Appointment(
                id=str(uuid.uuid4()),
                resource_id=resource_id,
                user_id=resource.owner_user_id,
                client_name=client_name,
                client_email=client_email,
                start_time=start,
                end_time=end,
                duration_minutes=duration_minutes,
                status=status,
                requires_approval=approval_required,
                is_approved=not approval_required,
                session_token=str(uuid.uuid4()),
                notes=notes,
                billable_hours=duration_minutes / 60,
                consultation_type=(consultation_type or 'free').strip().lower(),
                consultation_source=consultation_source,
                order_reference=order_reference,
            )
            db.add(appointment)
            db.commit()
        except Exception:
            # Release the resource row lock whatever went wrong.
            db.rollback()
            raise

    db.refresh(appointment)
    logger.info(
        'Appointment %s booked %s-%s on %s (%s)',
        appointment.id, start, end, resource_id, appointment.status,
    )

    _notify((notifier or default_notifier).appointment_requested, appointment)
    return appointment


def find_appointment(db: Session, appointment_id: str) -> Appointment | None:
    return db.query(Appointment).filter(Appointment.id == appointment_id).first()


def get_appointment(db: Session, appointment_id: str) -> Appointment:
    appointment = find_appointment(db, appointment_id)
    if appointment is None:
        raise AppointmentNotFoundError(appointment_id)
    return appointment


def find_by_order_reference(db: Session, order_reference: str) -> Appointment | None:
    return db.query(Appointment).filter(Appointment.order_reference == order_reference).first()


def list_appointments(
    db: Session,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    status: str | None = None,
) -> list[Appointment]:
    query = db.query(Appointment)
    if start_date is not None:
        query = query.filter(Appointment.start_time >= to_utc_naive(start_date))
    if end_date is not None:
        query = query.filter(Appointment.start_time <= to_utc_naive(end_date))
    if status:
        query = query.filter(Appointment.status == status)
    return query.order_by(Appointment.start_time.asc()).all()


def _parse_status(value: str) -> str:
    try:
        return AppointmentStatus(value.strip().lower()).value
    except ValueError as exc:
        raise BookingValidationError(f'Unknown appointment status: {value}.') from exc


def update_appointment(
    db: Session,
    appointment_id: str,
    status: str | None = None,
    billable_hours: float | None = None,
    work_notes: str | None = None,
    notes: str | None = None,
    rejection_reason: str | None = None,
    *,
    now: datetime | None = None,
    notifier: AppointmentNotifier | None = None,
) -> Appointment:
    """Administrative edit of status and bookkeeping fields.

    Times are never changed here and the conflict check is not re-run.
    """
    appointment = get_appointment(db, appointment_id)
    old_status = appointment.status
    new_status = old_status

    if status is not None:
        requested = _parse_status(status)
        if requested != old_status and not can_transition(old_status, requested):
            raise InvalidTransitionError(old_status, requested)
        new_status = requested

    if billable_hours is not None:
        if billable_hours < 0:
            raise BookingValidationError('billableHours cannot be negative.')
        appointment.billable_hours = billable_hours
    if work_notes is not None:
        appointment.work_notes = _normalize_text(work_notes)
    if notes is not None:
        appointment.notes = _normalize_text(notes)

    if new_status != old_status:
        current_time = now or utc_now()
        appointment.status = new_status
        if old_status == AppointmentStatus.PENDING_APPROVAL.value:
            if new_status == AppointmentStatus.CONFIRMED.value:
                appointment.is_approved = True
                appointment.approved_at = current_time
                appointment.meeting_link = meeting_link_for(appointment.id)
                clashes = find_conflicts(
                    db,
                    appointment.start_time,
                    appointment.end_time,
                    appointment.resource_id,
                    exclude_id=appointment.id,
                )
                if clashes:
                    logger.warning(
                        'Approved appointment %s overlaps active appointments %s',
                        appointment.id, [clash.id for clash in clashes],
                    )
            elif new_status == AppointmentStatus.CANCELLED.value:
                appointment.rejected_at = current_time

    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(appointment)

    if new_status != old_status:
        logger.info('Appointment %s moved %s -> %s', appointment.id, old_status, new_status)

    if old_status == AppointmentStatus.PENDING_APPROVAL.value and new_status != old_status:
        active_notifier = notifier or default_notifier
        if new_status == AppointmentStatus.CONFIRMED.value:
            _notify(active_notifier.appointment_approved, appointment)
        elif new_status == AppointmentStatus.CANCELLED.value:
            _notify(active_notifier.appointment_rejected, appointment, rejection_reason)

    return appointment
