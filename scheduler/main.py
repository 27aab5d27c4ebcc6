import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from scheduler.core import config
from scheduler.database import SessionLocal, engine, ensure_appointment_schema, ensure_availability_schema
from scheduler.models import appointment, availability, calendar_resource
from scheduler.routes import appointment_routes, availability_routes, order_routes
from scheduler.scheduling.resources import ensure_calendar_resource

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

config.validate_runtime_config()

app = FastAPI(title='Appointment Scheduler')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed request bodies are client errors and reported as 400.
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={'detail': jsonable_encoder(exc.errors())},
    )


@app.on_event('startup')
def initialize_database() -> None:
    try:
        calendar_resource.Base.metadata.create_all(bind=engine)
        availability.Base.metadata.create_all(bind=engine)
        appointment.Base.metadata.create_all(bind=engine)
        ensure_availability_schema()
        ensure_appointment_schema()

        db = SessionLocal()
        try:
            ensure_calendar_resource(db, config.DEFAULT_RESOURCE_ID)
            db.commit()
        finally:
            db.close()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Scheduler API Running'}


app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(availability_routes.router, prefix='/availability')
app.include_router(order_routes.router, prefix='/orders')
