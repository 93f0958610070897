"""Shared service utilities.

parse_date_input:  raises ValueError on bad input (blueprints turn it into 400)
clean_reason:      strip + length-check free-text justifications
commit_or_raise:   commit the session; infrastructure failures → StorageError
"""
import logging
from datetime import date, datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from promotion_engine.core.exceptions import EmptyReason, StorageError, ValidationError
from promotion_engine.models import db

logger = logging.getLogger(__name__)

DEFAULT_REASON_MAX_LENGTH = 2000


def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Supports: YYYY-MM-DD, DD.MM.YYYY, date objects. Empty input → None.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        try:
            return datetime.strptime(str(value), "%d.%m.%Y").date()
        except ValueError as exc:
            raise ValueError(
                "Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY."
            ) from exc


def clean_reason(value, field: str, *, required: bool = False):
    """Normalise a free-text justification.

    Returns the stripped text, or None when blank and not required.
    Raises EmptyReason when required and blank, ValidationError when not a
    string or longer than REASON_MAX_LENGTH.
    """
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"'{field}' must be a string", details={field: "must be a string"})
    text = (value or "").strip()
    if not text:
        if required:
            raise EmptyReason(field)
        return None
    max_len = current_app.config.get("REASON_MAX_LENGTH", DEFAULT_REASON_MAX_LENGTH)
    if len(text) > max_len:
        raise ValidationError(
            f"'{field}' must not exceed {max_len} characters",
            details={field: f"max {max_len} characters"},
        )
    return text


# ── Database commit helper ───────────────────────────────────────────────────

def commit_or_raise(operation: str, **context):
    """Commit the current SQLAlchemy session or raise StorageError.

    The session is rolled back before raising so no partial state survives.
    ``context`` is attached to the log record for diagnosis.

    Usage::

        commit_or_raise("promotion.submit", promotion_id=promo.id)
    """
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception(
            "Database error on commit during %s", operation,
            extra={"event_type": "storage.failure", **context},
        )
        raise StorageError(operation) from exc
