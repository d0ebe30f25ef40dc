import uuid
import json
from datetime import datetime, timezone
from base import Base
from db import engine
from schema import ActivityLog


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value):
    """
    SQLite drops tzinfo on DateTime columns; treat naive values as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def write_activity(db, actor, action, entity_type, entity_id=None, details=None):
    """
    Appends a new record to the administrative activity log.

    Args:
        db: SQLAlchemy database session.
        actor: User id performing the action, or 'system'.
        action: Verb describing the change (e.g., 'coupon.create', 'coupon.redeem').
        entity_type: Kind of record touched (e.g., 'coupon').
        entity_id: Identifier of the touched record, if any.
        details: Optional dictionary of additional contextual attributes.

    Returns:
        The newly created ActivityLog instance. The caller owns the commit.
    """
    entry = ActivityLog(
        log_id=new_id(),
        timestamp=utcnow(),
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=json.dumps(details, default=str) if details else None,
    )
    db.add(entry)
    return entry


def clear_database():
    """
    Wipes all coupon, cart, wishlist and catalog data and recreates the schema.
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
