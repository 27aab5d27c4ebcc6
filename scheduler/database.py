from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from scheduler.core import config


def build_engine(database_url: str):
    connect_args = {}
    if database_url.startswith('sqlite'):
        connect_args['check_same_thread'] = False
    return create_engine(database_url, echo=config.DATABASE_ECHO, connect_args=connect_args)


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_checked_tables: set[str] = set()

# Columns added after the first release, and the indexes the scheduler queries rely on.
AVAILABILITY_COLUMNS = [
    ('resource_id', "VARCHAR DEFAULT 'default'"),
    ('timezone', "VARCHAR DEFAULT 'UTC'"),
]
AVAILABILITY_INDEXES = [
    'CREATE INDEX IF NOT EXISTS idx_availability_windows_resource_day '
    'ON availability_windows(resource_id, day_of_week, is_active)',
]

APPOINTMENT_COLUMNS = [
    ('resource_id', "VARCHAR DEFAULT 'default'"),
    ('consultation_type', "VARCHAR DEFAULT 'free'"),
    ('consultation_source', 'VARCHAR'),
    ('order_reference', 'VARCHAR'),
    ('meeting_link', 'VARCHAR'),
    ('approved_at', 'TIMESTAMP'),
    ('rejected_at', 'TIMESTAMP'),
]
APPOINTMENT_INDEXES = [
    'CREATE INDEX IF NOT EXISTS idx_appointments_resource_status_range '
    'ON appointments(resource_id, status, start_time, end_time)',
    'CREATE INDEX IF NOT EXISTS idx_appointments_start ON appointments(start_time)',
]


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _upgrade_table(table_name: str, columns: list[tuple[str, str]], indexes: list[str]) -> None:
    """Add missing columns and indexes to an existing table, once per process."""
    if table_name in _checked_tables:
        return

    with _schema_lock:
        if table_name in _checked_tables:
            return

        inspector = inspect(engine)
        if table_name not in inspector.get_table_names():
            _checked_tables.add(table_name)
            return

        existing_columns = {column['name'] for column in inspector.get_columns(table_name)}
        with engine.begin() as connection:
            for column_name, column_type in columns:
                if column_name not in existing_columns:
                    connection.execute(text(f'ALTER TABLE {table_name} ADD COLUMN {column_name} {column_type}'))
            for statement in indexes:
                connection.execute(text(statement))

        _checked_tables.add(table_name)


def ensure_availability_schema() -> None:
    _upgrade_table('availability_windows', AVAILABILITY_COLUMNS, AVAILABILITY_INDEXES)


def ensure_appointment_schema() -> None:
    _upgrade_table('appointments', APPOINTMENT_COLUMNS, APPOINTMENT_INDEXES)
