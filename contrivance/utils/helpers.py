"""Shared utility functions used by service modules.

parse_date:       lenient ISO / DD.MM.YYYY parsing, None on bad input
parse_date_input: same formats, raises ValidationError on bad input
commit_or_raise:  commit the session, translating driver errors into
                  ConflictError / StorageUnavailableError
"""
import logging
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError, OperationalError

from contrivance.core.exceptions import (
    ConflictError,
    StorageUnavailableError,
    ValidationError,
)
from contrivance.models import db

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY (European format)
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
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value, field="date"):
    """Parse a date, raising ValidationError naming *field* on bad input.

    Empty input returns None.
    """
    if value is None or value == "":
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(
            f"Invalid {field}. Use YYYY-MM-DD or DD.MM.YYYY.",
            details={field: "invalid date"},
        )
    return parsed


# ── Database commit helper ───────────────────────────────────────────────────

def commit_or_raise(context: str = "commit"):
    """Commit the current SQLAlchemy session or raise a service exception.

    IntegrityError   → ConflictError (duplicate / constraint violation)
    OperationalError → StorageUnavailableError (connection / lock issues)

    The session is rolled back on every failure path. No retry.

    Usage::

        db.session.add(row)
        commit_or_raise("create_row")
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on %s: %s", context, exc.orig)
        raise ConflictError(context, "constraint", str(exc.orig)) from exc
    except OperationalError as exc:
        db.session.rollback()
        logger.exception("Database operational error on %s", context)
        raise StorageUnavailableError(f"Database unavailable during {context}") from exc
