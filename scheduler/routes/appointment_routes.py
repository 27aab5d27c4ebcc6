import logging
from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scheduler.auth.dependencies import Principal, optional_admin, require_admin
from scheduler.core import config
from scheduler.core.errors import SchedulingError, internal_error, to_http_exception
from scheduler.database import ensure_appointment_schema, ensure_availability_schema, get_db
from scheduler.models.appointment import AppointmentStatus
from scheduler.scheduling import bookings
from scheduler.scheduling.clock import to_utc_naive, utc_now
from scheduler.scheduling.slot_finder import Slot, find_first_slot, iter_open_slots
from scheduler.services.rate_limit import rate_limited

router = APIRouter(tags=['appointments'])

logger = logging.getLogger(__name__)

HONEYPOT_RESPONSE = {'appointment': {'id': 'blocked'}}


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class CreateAppointmentRequest(CamelModel):
    booking_date: date | None = Field(default=None, alias='date')
    booking_time: str | None = Field(default=None, alias='time')
    start_time: datetime | None = None
    duration_minutes: int = config.DEFAULT_BOOKING_DURATION_MINUTES
    name: str | None = None
    email: str | None = None
    notes: str | None = None
    consultation_type: str | None = None
    consultation_source: str | None = None
    website: str | None = None

    @field_validator('duration_minutes')
    @classmethod
    def validate_duration_minutes(cls, value: int) -> int:
        if value <= 0 or value > config.MAX_BOOKING_DURATION_MINUTES:
            raise ValueError(f'durationMinutes must be between 1 and {config.MAX_BOOKING_DURATION_MINUTES}.')
        return value

    @field_validator('name', 'email', 'notes', 'consultation_type', 'consultation_source', 'website')
    @classmethod
    def strip_blank(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None


class UpdateAppointmentRequest(CamelModel):
    id: str | None = None
    status: AppointmentStatus | None = None
    billable_hours: float | None = None
    work_notes: str | None = None
    notes: str | None = None
    rejection_reason: str | None = None


class AppointmentResponse(CamelModel):
    id: str
    resource_id: str
    client_name: str
    client_email: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    status: str
    requires_approval: bool
    is_approved: bool
    session_token: str
    notes: str | None = None
    work_notes: str | None = None
    billable_hours: float | None = None
    consultation_type: str | None = None
    consultation_source: str | None = None
    meeting_link: str | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    created_at: datetime


class AppointmentEnvelope(CamelModel):
    appointment: AppointmentResponse | None = None


class AppointmentListResponse(CamelModel):
    appointments: list[AppointmentResponse]


class PublicAppointmentResponse(CamelModel):
    """What an anonymous caller may see of a booking looked up by id."""

    id: str
    client_name: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    status: str
    requires_approval: bool
    is_approved: bool
    consultation_type: str | None = None
    meeting_link: str | None = None
    created_at: datetime


class PublicAppointmentEnvelope(CamelModel):
    appointment: PublicAppointmentResponse | None = None


class SlotResponse(CamelModel):
    start_time: datetime
    end_time: datetime
    duration_minutes: int

    @classmethod
    def from_slot(cls, slot: Slot) -> 'SlotResponse':
        return cls(start_time=slot.start_time, end_time=slot.end_time, duration_minutes=slot.duration_minutes)


class SlotListResponse(CamelModel):
    slots: list[SlotResponse]


class NextSlotResponse(CamelModel):
    slot: SlotResponse | None = None


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        logger.exception('Database schema check failed')
        raise internal_error() from exc


def parse_query_datetime(value: str | None, field_name: str, end_of_day: bool = False) -> datetime | None:
    """Parse an ISO date or datetime query value; a bare date may stand for the whole day."""
    if value is None or not value.strip():
        return None

    raw = value.strip()
    try:
        if len(raw) == 10:
            parsed_date = date.fromisoformat(raw)
            if end_of_day:
                return datetime.combine(parsed_date, time.max)
            return datetime.combine(parsed_date, time.min)
        return to_utc_naive(datetime.fromisoformat(raw.replace('Z', '+00:00')))
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'{field_name} must be an ISO 8601 date or datetime.',
        ) from exc


def resolve_requested_interval(data: CreateAppointmentRequest) -> tuple[datetime, datetime]:
    """Start and end of a booking request, from startTime or from date + time (UTC)."""
    if data.start_time is not None:
        start = to_utc_naive(data.start_time)
    else:
        try:
            clock = datetime.strptime(data.booking_time.strip(), '%H:%M').time()
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='time must be in HH:MM format.',
            ) from exc
        start = datetime.combine(data.booking_date, clock)

    return start, start + timedelta(minutes=data.duration_minutes)


def validate_duration_query(duration_minutes: int) -> None:
    if duration_minutes <= 0 or duration_minutes > config.MAX_BOOKING_DURATION_MINUTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'durationMinutes must be between 1 and {config.MAX_BOOKING_DURATION_MINUTES}.',
        )


@router.get('')
def get_appointments(
    start_date: str | None = Query(default=None, alias='startDate'),
    end_date: str | None = Query(default=None, alias='endDate'),
    appointment_status: str | None = Query(default=None, alias='status'),
    session_id: str | None = Query(default=None, alias='sessionId'),
    admin: Principal | None = Depends(optional_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    # sessionId carries an appointment id, not the session token.
    if session_id:
        try:
            appointment = bookings.find_appointment(db, session_id.strip())
        except SQLAlchemyError as exc:
            logger.exception('Failed to fetch appointment %s', session_id)
            raise internal_error() from exc
        if appointment is None:
            return PublicAppointmentEnvelope(appointment=None)
        if admin is not None:
            return AppointmentEnvelope(appointment=AppointmentResponse.model_validate(appointment))
        return PublicAppointmentEnvelope(appointment=PublicAppointmentResponse.model_validate(appointment))

    if admin is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Not authenticated',
            headers={'WWW-Authenticate': 'Bearer'},
        )

    range_start = parse_query_datetime(start_date, 'startDate')
    range_end = parse_query_datetime(end_date, 'endDate', end_of_day=True)

    normalized_status = None
    if appointment_status:
        try:
            normalized_status = AppointmentStatus(appointment_status.strip().lower()).value
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Invalid appointment status.',
            ) from exc

    try:
        appointments = bookings.list_appointments(db, range_start, range_end, normalized_status)
    except SQLAlchemyError as exc:
        logger.exception('Failed to fetch appointments')
        raise internal_error() from exc

    return AppointmentListResponse(
        appointments=[AppointmentResponse.model_validate(appointment) for appointment in appointments]
    )


@router.post(
    '',
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limited('appointments:create'))],
)
def create_appointment(data: CreateAppointmentRequest, db: Session = Depends(get_db)):
    if data.website:
        # Bots fill the hidden field; answer as if the booking went through.
        logger.info('Honeypot field filled; booking request dropped')
        return JSONResponse(status_code=status.HTTP_201_CREATED, content=HONEYPOT_RESPONSE)

    has_start = data.start_time is not None or (data.booking_date is not None and data.booking_time)
    if not has_start or not data.name or not data.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Missing required fields',
        )

    start_time, end_time = resolve_requested_interval(data)

    ensure_database_ready()

    try:
        appointment = bookings.create_appointment(
            db,
            data.name,
            data.email,
            start_time,
            end_time,
            notes=data.notes,
            approval_required=True,
            consultation_type=data.consultation_type,
            consultation_source=data.consultation_source or 'landing',
            now=utc_now(),
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception('Failed to create appointment')
        raise internal_error() from exc

    return AppointmentEnvelope(appointment=AppointmentResponse.model_validate(appointment))


@router.patch('', dependencies=[Depends(rate_limited('appointments:update'))])
def update_appointment(
    data: UpdateAppointmentRequest,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if not data.id or not data.id.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Missing appointment id',
        )

    ensure_database_ready()

    try:
        appointment = bookings.update_appointment(
            db,
            data.id.strip(),
            status=data.status.value if data.status else None,
            billable_hours=data.billable_hours,
            work_notes=data.work_notes,
            notes=data.notes,
            rejection_reason=data.rejection_reason,
            now=utc_now(),
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception('Failed to update appointment %s', data.id)
        raise internal_error() from exc

    logger.info('Appointment %s updated by %s', appointment.id, admin.email)
    return AppointmentEnvelope(appointment=AppointmentResponse.model_validate(appointment))


@router.get('/slots', response_model=SlotListResponse)
def list_open_slots(
    duration_minutes: int = Query(default=config.DEFAULT_BOOKING_DURATION_MINUTES, alias='durationMinutes'),
    days: int = Query(default=config.SLOT_SEARCH_HORIZON_DAYS, ge=1, le=config.SLOT_SEARCH_HORIZON_DAYS),
    db: Session = Depends(get_db),
):
    validate_duration_query(duration_minutes)
    ensure_database_ready()

    try:
        slots = list(iter_open_slots(db, duration_minutes, utc_now(), days=days))
    except SQLAlchemyError as exc:
        logger.exception('Failed to compute open slots')
        raise internal_error() from exc

    return SlotListResponse(slots=[SlotResponse.from_slot(slot) for slot in slots])


@router.get('/next-slot', response_model=NextSlotResponse)
def get_next_slot(
    duration_minutes: int = Query(default=config.CONSULTATION_DURATION_MINUTES, alias='durationMinutes'),
    db: Session = Depends(get_db),
):
    validate_duration_query(duration_minutes)
    ensure_database_ready()

    try:
        slot = find_first_slot(db, duration_minutes, utc_now())
    except SQLAlchemyError as exc:
        logger.exception('Failed to search for the next open slot')
        raise internal_error() from exc

    return NextSlotResponse(slot=SlotResponse.from_slot(slot) if slot else None)
