import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scheduler.auth.dependencies import Principal, require_checkout_service
from scheduler.core.errors import SchedulingError, internal_error, to_http_exception
from scheduler.database import get_db
from scheduler.routes.appointment_routes import (
    AppointmentEnvelope,
    AppointmentResponse,
    CamelModel,
    ensure_database_ready,
)
from scheduler.scheduling.clock import utc_now
from scheduler.services.consultations import book_consultation_for_order
from scheduler.services.rate_limit import rate_limited

router = APIRouter(tags=['orders'])

logger = logging.getLogger(__name__)


class OrderItemRequest(CamelModel):
    product_id: str | None = None
    category: str | None = None
    is_consult: bool = False


class ConsultationBookingRequest(CamelModel):
    order_id: str | None = None
    email: str | None = None
    customer_name: str | None = None
    items: list[OrderItemRequest] = []


@router.post(
    '/consultation-bookings',
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limited('orders:consultation'))],
)
def create_consultation_booking(
    data: ConsultationBookingRequest,
    caller: Principal = Depends(require_checkout_service),
    db: Session = Depends(get_db),
):
    order_id = (data.order_id or '').strip()
    email = (data.email or '').strip()
    if not order_id or not email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Missing required fields',
        )

    ensure_database_ready()

    try:
        appointment = book_consultation_for_order(
            db,
            order_id,
            email,
            data.customer_name,
            data.items,
            now=utc_now(),
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        logger.exception('Failed to book consultation for order %s', order_id)
        raise internal_error() from exc

    logger.info('Order %s delivered by %s', order_id, caller.email)
    if appointment is None:
        return JSONResponse(status_code=status.HTTP_200_OK, content={'appointment': None})

    return AppointmentEnvelope(appointment=AppointmentResponse.model_validate(appointment))
