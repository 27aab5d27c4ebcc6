import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./scheduler.db")
DATABASE_ECHO = _get_bool(os.getenv("DATABASE_ECHO"), default=False)

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

# Single-operator calendar. Every window and appointment is keyed by a
# resource id so more providers can be added without a schema change.
DEFAULT_RESOURCE_ID = os.getenv("DEFAULT_RESOURCE_ID", "default")
DEFAULT_RESOURCE_NAME = os.getenv("DEFAULT_RESOURCE_NAME", "Consultations")
OPERATOR_USER_ID = os.getenv("OPERATOR_USER_ID", "default-owner")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "")

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = _get_int(os.getenv("JWT_EXPIRES_MINUTES"), 60)

SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = _get_int(os.getenv("SMTP_PORT"), 587)
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
NOTIFY_FROM = os.getenv("NOTIFY_FROM", "")

MEETING_BASE_URL = os.getenv("MEETING_BASE_URL", "https://meet.jit.si").rstrip("/")
MEETING_ROOM_PREFIX = os.getenv("MEETING_ROOM_PREFIX", "consult")

SLOT_SEARCH_HORIZON_DAYS = _get_int(os.getenv("SLOT_SEARCH_HORIZON_DAYS"), 14)
SLOT_STRIDE_MINUTES = _get_int(os.getenv("SLOT_STRIDE_MINUTES"), 60)
DEFAULT_BOOKING_DURATION_MINUTES = _get_int(os.getenv("DEFAULT_BOOKING_DURATION_MINUTES"), 30)
CONSULTATION_DURATION_MINUTES = _get_int(os.getenv("CONSULTATION_DURATION_MINUTES"), 60)
MAX_BOOKING_DURATION_MINUTES = _get_int(os.getenv("MAX_BOOKING_DURATION_MINUTES"), 480)
MAX_NOTES_LENGTH = _get_int(os.getenv("MAX_NOTES_LENGTH"), 2000)

RATE_LIMIT_WINDOW_SECONDS = _get_int(os.getenv("RATE_LIMIT_WINDOW_SECONDS"), 60)
RATE_LIMIT_MAX_REQUESTS = _get_int(os.getenv("RATE_LIMIT_MAX_REQUESTS"), 20)


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if SLOT_STRIDE_MINUTES <= 0:
        raise RuntimeError("SLOT_STRIDE_MINUTES must be positive.")
    if SLOT_SEARCH_HORIZON_DAYS <= 0:
        raise RuntimeError("SLOT_SEARCH_HORIZON_DAYS must be positive.")
