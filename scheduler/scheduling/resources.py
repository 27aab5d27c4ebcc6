from threading import Lock

from sqlalchemy.orm import Session

from scheduler.core import config
from scheduler.models.calendar_resource import CalendarResource

_resource_locks: dict[str, Lock] = {}
_resource_locks_guard = Lock()


def resource_lock(resource_id: str) -> Lock:
    """Process-wide lock serialising check-and-insert on one calendar."""
    with _resource_locks_guard:
        return _resource_locks.setdefault(resource_id, Lock())


def ensure_calendar_resource(db: Session, resource_id: str = config.DEFAULT_RESOURCE_ID) -> CalendarResource:
    resource = db.get(CalendarResource, resource_id)
    if resource is None:
        resource = CalendarResource(
            id=resource_id,
            name=config.DEFAULT_RESOURCE_NAME,
            owner_user_id=config.OPERATOR_USER_ID,
        )
        db.add(resource)
        db.flush()
    return resource


def lock_calendar_resource(db: Session, resource_id: str = config.DEFAULT_RESOURCE_ID) -> CalendarResource:
    """Row-lock the resource for the rest of the transaction (no-op on SQLite)."""
    resource = db.query(CalendarResource).filter(
        CalendarResource.id == resource_id,
    ).with_for_update().first()
    if resource is None:
        resource = ensure_calendar_resource(db, resource_id)
    return resource
