"""
Badge Application Lifecycle Service

Manages badge application drafts and status transitions with:
  - Transition validation (BADGE_APPLICATION_TRANSITIONS)
  - Ownership checks (applicant edits / submits own drafts)
  - Catalog checks (referenced badge must be active at create and submit)
  - Audit events via audit_trail

Public transitions:
  submit, accept, reject

Reservation-only transitions (reserve, release) are exposed to the
reservation ledger as ``_mark_used_in_promotion`` / ``_release_from_promotion``
and have no HTTP route.

Usage:
    from promotion_engine.services import badge_application_lifecycle as bal

    app = bal.submit_badge_application(app_id, requester_id=user_id)
"""

import logging
from datetime import datetime, timezone

from promotion_engine.core.exceptions import (
    ForbiddenError,
    InvalidReference,
    InvalidStatusTransition,
    NotFoundError,
    ValidationError,
)
from promotion_engine.models import db
from promotion_engine.models.badge_application import (
    BADGE_APPLICATION_TRANSITIONS,
    EDITABLE_FIELDS,
    BadgeApplication,
)
from promotion_engine.services.audit_trail import record_event
from promotion_engine.services.catalog_service import get_catalog_badge
from promotion_engine.utils.helpers import clean_reason, commit_or_raise, parse_date_input

logger = logging.getLogger(__name__)


# ── Transition guard ─────────────────────────────────────────────────────────


def validate_transition(application: BadgeApplication, action: str) -> dict:
    """
    Validate whether an action is valid for the application's current state.

    Returns:
        {"valid": bool, "from": str, "to": str|None, "reason": str|None}
    """
    rule = BADGE_APPLICATION_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": application.status, "to": None,
                "reason": f"Unknown action: {action}"}

    if application.status not in rule["from"]:
        return {"valid": False, "from": application.status, "to": rule["to"],
                "reason": f"Cannot '{action}' from status '{application.status}'"}

    return {"valid": True, "from": application.status, "to": rule["to"], "reason": None}


def _check_transition(application: BadgeApplication, action: str) -> str:
    """Raise InvalidStatusTransition unless ``action`` is legal now. Returns the target status."""
    validation = validate_transition(application, action)
    if not validation["valid"]:
        raise InvalidStatusTransition(
            resource="BadgeApplication",
            resource_id=application.id,
            action=action,
            current_status=application.status,
            allowed_from=BADGE_APPLICATION_TRANSITIONS.get(action, {}).get("from"),
        )
    return validation["to"]


def _transition(application: BadgeApplication, action: str) -> str:
    """Apply ``action`` to the application. Returns the previous status."""
    target = _check_transition(application, action)
    previous = application.status
    application.status = target
    return previous


def _check_dates(date_of_application, date_of_fulfillment):
    if date_of_application is None:
        raise ValidationError("date_of_application is required",
                              details={"date_of_application": "required"})
    if date_of_fulfillment is not None and date_of_fulfillment < date_of_application:
        raise ValidationError(
            "date_of_fulfillment must not be earlier than date_of_application",
            details={"date_of_fulfillment": "before date_of_application"},
        )


def _require_applicant(application: BadgeApplication, requester_id: str, action: str):
    if application.applicant_id != requester_id:
        raise ForbiddenError(action, "BadgeApplication", application.id, requester_id)


def _require_draft(application: BadgeApplication, action: str):
    if application.status != "draft":
        raise InvalidStatusTransition(
            resource="BadgeApplication",
            resource_id=application.id,
            action=action,
            current_status=application.status,
            allowed_from=["draft"],
        )


# ── Queries ──────────────────────────────────────────────────────────────────


def get_badge_application(application_id: str) -> BadgeApplication:
    application = db.session.get(BadgeApplication, application_id)
    if application is None:
        raise NotFoundError(resource="BadgeApplication", resource_id=application_id)
    return application


# ── Draft management ─────────────────────────────────────────────────────────


def create_badge_application(
    applicant_id: str,
    catalog_badge_id: str,
    date_of_application,
    date_of_fulfillment=None,
    reason: str | None = None,
) -> BadgeApplication:
    """
    Create a draft claim against an active catalog badge.

    The catalog badge version is snapshotted here and never changes.

    Raises:
        NotFoundError, InvalidReference, ValidationError, StorageError
    """
    badge = get_catalog_badge(catalog_badge_id)
    if not badge.is_active:
        raise InvalidReference("CatalogBadge", catalog_badge_id, "is not active")

    applied_on = parse_date_input(date_of_application)
    fulfilled_on = parse_date_input(date_of_fulfillment)
    _check_dates(applied_on, fulfilled_on)

    application = BadgeApplication(
        applicant_id=applicant_id,
        catalog_badge_id=badge.id,
        catalog_badge_version=badge.version,
        date_of_application=applied_on,
        date_of_fulfillment=fulfilled_on,
        reason=clean_reason(reason, "reason"),
        status="draft",
    )
    db.session.add(application)
    commit_or_raise("badge_application.create", applicant_id=applicant_id)

    record_event("badge_application.created", actor_id=applicant_id, entity_id=application.id,
                 catalog_badge_id=badge.id, catalog_badge_version=badge.version)
    return application


def update_badge_application(application_id: str, requester_id: str, changes: dict) -> BadgeApplication:
    """Edit a draft's dates / justification. Unknown keys are ignored."""
    application = get_badge_application(application_id)
    _require_applicant(application, requester_id, "update")
    _require_draft(application, "update")

    fields = {k: changes[k] for k in EDITABLE_FIELDS if k in changes}
    applied_on = (parse_date_input(fields["date_of_application"])
                  if "date_of_application" in fields else application.date_of_application)
    fulfilled_on = (parse_date_input(fields["date_of_fulfillment"])
                    if "date_of_fulfillment" in fields else application.date_of_fulfillment)
    _check_dates(applied_on, fulfilled_on)

    application.date_of_application = applied_on
    application.date_of_fulfillment = fulfilled_on
    if "reason" in fields:
        application.reason = clean_reason(fields["reason"], "reason")

    commit_or_raise("badge_application.update", badge_application_id=application.id)
    return application


def delete_badge_application(application_id: str, requester_id: str) -> None:
    application = get_badge_application(application_id)
    _require_applicant(application, requester_id, "delete")
    _require_draft(application, "delete")

    db.session.delete(application)
    commit_or_raise("badge_application.delete", badge_application_id=application_id)


# ── Public transitions ───────────────────────────────────────────────────────


def submit_badge_application(application_id: str, requester_id: str) -> BadgeApplication:
    """
    draft → submitted. Only the applicant may submit, and the catalog badge
    must still be active.

    Raises:
        NotFoundError, ForbiddenError, InvalidStatusTransition, InvalidReference
    """
    application = get_badge_application(application_id)
    _require_applicant(application, requester_id, "submit")
    _check_transition(application, "submit")

    badge = get_catalog_badge(application.catalog_badge_id)
    if not badge.is_active:
        raise InvalidReference("CatalogBadge", badge.id, "is not active")

    _transition(application, "submit")
    application.submitted_at = datetime.now(timezone.utc)
    commit_or_raise("badge_application.submit", badge_application_id=application.id)

    record_event("badge_application.submitted", actor_id=requester_id, entity_id=application.id)
    return application


def accept_badge_application(application_id: str, reviewer_id: str, note: str | None = None) -> BadgeApplication:
    """submitted → accepted, stamping reviewer metadata."""
    application = get_badge_application(application_id)
    _check_transition(application, "accept")
    review_reason = clean_reason(note, "review_reason")

    _transition(application, "accept")
    application.reviewed_by = reviewer_id
    application.reviewed_at = datetime.now(timezone.utc)
    application.review_reason = review_reason
    commit_or_raise("badge_application.accept", badge_application_id=application.id)

    record_event("badge_application.accepted", actor_id=reviewer_id, entity_id=application.id)
    return application


def reject_badge_application(application_id: str, reviewer_id: str, note: str | None) -> BadgeApplication:
    """submitted → rejected. A non-empty note is mandatory."""
    application = get_badge_application(application_id)
    _check_transition(application, "reject")
    review_reason = clean_reason(note, "review_reason", required=True)

    _transition(application, "reject")
    application.reviewed_by = reviewer_id
    application.reviewed_at = datetime.now(timezone.utc)
    application.review_reason = review_reason
    commit_or_raise("badge_application.reject", badge_application_id=application.id)

    record_event("badge_application.rejected", actor_id=reviewer_id, entity_id=application.id,
                 review_reason=review_reason)
    return application


# ── Reservation-driven transitions (reservation_ledger only) ─────────────────
#
# Callers own the transaction; these only mutate the instance.


def _mark_used_in_promotion(application: BadgeApplication) -> None:
    _transition(application, "reserve")


def _release_from_promotion(application: BadgeApplication) -> None:
    if application.status == "used_in_promotion":
        _transition(application, "release")
