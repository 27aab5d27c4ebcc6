import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scheduler.auth.dependencies import Principal, require_admin
from scheduler.core.errors import SchedulingError, internal_error, to_http_exception
from scheduler.database import get_db
from scheduler.routes.appointment_routes import CamelModel, ensure_database_ready
from scheduler.scheduling import availability_store

router = APIRouter(tags=['availability'])

logger = logging.getLogger(__name__)


class CreateWindowRequest(CamelModel):
    day_of_week: int | None = None
    start_time: str | None = None
    end_time: str | None = None
    timezone: str | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def strip_clock(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class UpdateWindowRequest(CamelModel):
    is_active: bool


class AvailabilityWindowResponse(CamelModel):
    id: int
    resource_id: str
    day_of_week: int
    start_time: str
    end_time: str
    timezone: str
    is_active: bool


class AvailabilityEnvelope(CamelModel):
    availability: AvailabilityWindowResponse


class AvailabilityListResponse(CamelModel):
    availability: list[AvailabilityWindowResponse]


@router.get('', response_model=AvailabilityListResponse)
def list_availability(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        windows = availability_store.list_windows(db)
    except SQLAlchemyError as exc:
        logger.exception('Failed to fetch availability')
        raise internal_error() from exc

    return AvailabilityListResponse(
        availability=[AvailabilityWindowResponse.model_validate(window) for window in windows]
    )


@router.post('', response_model=AvailabilityEnvelope, status_code=status.HTTP_201_CREATED)
def create_availability(
    data: CreateWindowRequest,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if data.day_of_week is None or not data.start_time or not data.end_time:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Missing required fields',
        )

    ensure_database_ready()

    try:
        window = availability_store.create_window(
            db,
            day_of_week=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
            timezone=data.timezone,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to create availability window')
        raise internal_error() from exc

    logger.info('Availability window %s added by %s', window.id, admin.email)
    return AvailabilityEnvelope(availability=AvailabilityWindowResponse.model_validate(window))


@router.patch('/{window_id}', response_model=AvailabilityEnvelope)
def update_availability(
    window_id: int,
    data: UpdateWindowRequest,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        window = availability_store.set_window_active(db, window_id, data.is_active)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to update availability window %s', window_id)
        raise internal_error() from exc

    logger.info('Availability window %s set active=%s by %s', window_id, data.is_active, admin.email)
    return AvailabilityEnvelope(availability=AvailabilityWindowResponse.model_validate(window))


@router.delete('/{window_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_availability(
    window_id: int,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        availability_store.delete_window(db, window_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to delete availability window %s', window_id)
        raise internal_error() from exc

    logger.info('Availability window %s removed by %s', window_id, admin.email)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
