import os
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from scheduler.database import Base  # noqa: E402
from scheduler.models.appointment import Appointment  # noqa: E402
from scheduler.models.availability import AvailabilityWindow  # noqa: E402
from scheduler.models.calendar_resource import CalendarResource  # noqa: E402
from scheduler.services.notifications import AppointmentNotifier  # noqa: E402
from scheduler.services.rate_limit import general_rate_limiter  # noqa: E402

SCHEDULER_TABLES = [CalendarResource.__table__, AvailabilityWindow.__table__, Appointment.__table__]

# Sunday noon UTC; the following day (2030-01-07) is a Monday.
NOW = datetime(2030, 1, 6, 12, 0)
MONDAY = 1


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=SCHEDULER_TABLES)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(SCHEDULER_TABLES)))


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('scheduler.routes.appointment_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('scheduler.routes.availability_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('scheduler.routes.order_routes.ensure_database_ready', lambda: None)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    general_rate_limiter.reset()
    yield
    general_rate_limiter.reset()


class RecordingSender:
    def __init__(self, result: bool = True):
        self.result = result
        self.sent: list[tuple[str, str, str]] = []

    def __call__(self, to_email: str, subject: str, body: str) -> bool:
        self.sent.append((to_email, subject, body))
        return self.result


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def notifier(sender: RecordingSender) -> AppointmentNotifier:
    return AppointmentNotifier(sender=sender, admin_email='owner@example.com')


@pytest.fixture(autouse=True)
def quiet_default_notifier(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        'scheduler.scheduling.bookings.default_notifier',
        AppointmentNotifier(sender=RecordingSender(), admin_email=''),
    )


def add_window(db, day_of_week: int, start_time: str, end_time: str, is_active: bool = True,
               resource_id: str = 'default') -> AvailabilityWindow:
    if db.get(CalendarResource, resource_id) is None:
        db.add(CalendarResource(id=resource_id, name='Consultations', owner_user_id='default-owner'))
    window = AvailabilityWindow(
        resource_id=resource_id,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        timezone='UTC',
        is_active=is_active,
    )
    db.add(window)
    db.commit()
    db.refresh(window)
    return window


def add_appointment(db, start: datetime, end: datetime, status: str = 'confirmed',
                    resource_id: str = 'default', client_email: str = 'existing@example.com') -> Appointment:
    count = db.query(Appointment).count()
    appointment = Appointment(
        id=f'existing-{count + 1}',
        resource_id=resource_id,
        user_id='default-owner',
        client_name='Existing Client',
        client_email=client_email,
        start_time=start,
        end_time=end,
        duration_minutes=int((end - start).total_seconds() // 60),
        status=status,
        requires_approval=False,
        is_approved=True,
        session_token=f'token-{count + 1}',
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment
