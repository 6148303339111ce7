"""Shared utility functions for services and blueprints.

get_or_raise:        NotFoundError-raising lookup for services
parse_date:          returns None on bad input
parse_positive_int:  seat counts and other whole-number inputs
db_commit_or_raise:  commit with rollback + logging, re-raising typed errors
"""
import logging
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError

from coursedesk.core.exceptions import ConflictError, NotFoundError
from coursedesk.models import db

logger = logging.getLogger(__name__)


def get_or_raise(model, pk, label=None):
    """Fetch a model instance by primary key or raise NotFoundError.

    Keys that are not scalars (lists, objects, booleans) never match.
    """
    valid = isinstance(pk, (int, str)) and not isinstance(pk, bool)
    obj = db.session.get(model, pk) if valid else None
    if obj is None:
        raise NotFoundError(resource=label or model.__name__, resource_id=pk)
    return obj


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_positive_int(value):
    """Return ``value`` as an int > 0, or None when it is not one.

    Booleans and non-integral floats are rejected.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    try:
        number = int(str(value).strip())
    except (ValueError, TypeError):
        return None
    return number if number > 0 else None


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_raise(resource: str = "record"):
    """Commit the current session, rolling back on failure.

    IntegrityError → ConflictError (409 in blueprints)
    Other          → re-raised after rollback (500 in blueprints)
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit (%s): %s", resource, exc.orig)
        raise ConflictError(resource=resource, field="constraint") from exc
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected database error on commit (%s)", resource)
        raise
