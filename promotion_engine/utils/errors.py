"""Standardised API error responses.

Usage
-----
    from promotion_engine.utils.errors import api_error, E, register_service_error_handlers

    return api_error(E.VALIDATION_REQUIRED, "creator_id is required")
    register_service_error_handlers(promotion_bp)
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from promotion_engine.core.exceptions import (
    EmptyReason,
    ForbiddenError,
    InvalidBadgeApplication,
    InvalidStatusTransition,
    NotFoundError,
    ReservationConflict,
    StorageError,
    ValidationError,
    ValidationFailed,
)
from promotion_engine.models import db

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_CONSTRAINT = "ERR_VALIDATION_CONSTRAINT"
    INVALID_BADGE_APPLICATION = "ERR_INVALID_BADGE_APPLICATION"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Conflict – HTTP 409
    INVALID_STATUS = "ERR_INVALID_STATUS"
    VALIDATION_FAILED = "ERR_VALIDATION_FAILED"
    RESERVATION_CONFLICT = "ERR_RESERVATION_CONFLICT"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_CONSTRAINT: 422,
    E.INVALID_BADGE_APPLICATION: 400,
    E.NOT_FOUND: 404,
    E.FORBIDDEN: 403,
    E.INVALID_STATUS: 409,
    E.VALIDATION_FAILED: 409,
    E.RESERVATION_CONFLICT: 409,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (conflict owner, gap report, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


# ── Service exception → response mapping ──────────────────────────────


def register_service_error_handlers(bp):
    """Attach handlers for the engine's exception hierarchy to a blueprint.

    Expected business outcomes are traced at DEBUG only; storage failures and
    unexpected exceptions are logged with full context and returned opaque.
    """

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        logger.debug("Not found: %s", error)
        return api_error(E.NOT_FOUND, str(error), details={
            "resource": error.resource, "resource_id": error.resource_id,
        })

    @bp.errorhandler(ForbiddenError)
    def _handle_forbidden(error: ForbiddenError):
        logger.debug("Forbidden: %s", error)
        return api_error(E.FORBIDDEN, str(error), details={"action": error.action})

    @bp.errorhandler(InvalidStatusTransition)
    def _handle_invalid_status(error: InvalidStatusTransition):
        logger.debug("Invalid transition: %s", error)
        return api_error(E.INVALID_STATUS, str(error), details={
            "action": error.action,
            "current_status": error.current_status,
            "allowed_from": error.allowed_from,
        })

    @bp.errorhandler(InvalidBadgeApplication)
    def _handle_invalid_badge_application(error: InvalidBadgeApplication):
        logger.debug("Invalid badge application: %s", error)
        return api_error(E.INVALID_BADGE_APPLICATION, str(error), details=error.details)

    @bp.errorhandler(EmptyReason)
    def _handle_empty_reason(error: EmptyReason):
        logger.debug("Empty reason: %s", error)
        return api_error(E.VALIDATION_REQUIRED, str(error), details=error.details)

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        logger.debug("Validation error: %s", error)
        return api_error(E.VALIDATION_CONSTRAINT, str(error), details=error.details)

    @bp.errorhandler(ValidationFailed)
    def _handle_validation_failed(error: ValidationFailed):
        logger.debug("Promotion %s failed eligibility", error.promotion_id)
        return api_error(E.VALIDATION_FAILED, str(error), details={
            "promotion_id": error.promotion_id, "missing": error.missing,
        })

    @bp.errorhandler(ReservationConflict)
    def _handle_reservation_conflict(error: ReservationConflict):
        return api_error(E.RESERVATION_CONFLICT, str(error), details={
            "conflict_type": "badge_already_reserved",
            "badge_application_id": error.badge_application_id,
            "owning_promotion_id": error.owning_promotion_id,
        })

    @bp.errorhandler(StorageError)
    def _handle_storage(error: StorageError):
        # Already logged with context where it was raised.
        return api_error(E.DATABASE, "Database error")

    @bp.errorhandler(HTTPException)
    def _handle_http(error: HTTPException):
        return jsonify({"error": error.description, "code": error.name}), error.code

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        db.session.rollback()
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
