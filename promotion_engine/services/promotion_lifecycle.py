"""
Promotion Lifecycle Service

Manages promotion creation, deletion and status transitions with:
  - Transition validation (PROMOTION_TRANSITIONS)
  - Ownership checks (creator deletes / submits own drafts)
  - Eligibility gate on submit (eligibility_validator, template as of now)
  - Reservation side effects through the reservation ledger
  - Audit events via audit_trail

3 valid transitions:
  submit   draft → submitted       reserved badges → used_in_promotion
  approve  submitted → approved    reservations consumed, executed = true
  reject   submitted → rejected    reservations released, badges → accepted

Delete (draft only) releases reservations through the same
``release_reservations`` call as reject.

Usage:
    from promotion_engine.services import promotion_lifecycle as pl

    promotion = pl.create_promotion(template_id, creator_id=user_id)
    pl.submit_promotion(promotion.id, requester_id=user_id)
"""

import logging
from datetime import datetime, timezone

from promotion_engine.core.exceptions import (
    ForbiddenError,
    InvalidStatusTransition,
    ValidationFailed,
)
from promotion_engine.models import db
from promotion_engine.models.promotion import PROMOTION_TRANSITIONS, Promotion
from promotion_engine.services import catalog_service, reservation_ledger
from promotion_engine.services.audit_trail import record_event
from promotion_engine.services.eligibility_validator import evaluate_promotion
from promotion_engine.utils.helpers import clean_reason, commit_or_raise

logger = logging.getLogger(__name__)


# ── Transition guard ─────────────────────────────────────────────────────────


def validate_transition(promotion: Promotion, action: str) -> dict:
    """
    Validate whether an action is valid for the promotion's current state.

    Returns:
        {"valid": bool, "from": str, "to": str|None, "reason": str|None}
    """
    rule = PROMOTION_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": promotion.status, "to": None,
                "reason": f"Unknown action: {action}"}

    if promotion.status not in rule["from"]:
        return {"valid": False, "from": promotion.status, "to": rule["to"],
                "reason": f"Cannot '{action}' from status '{promotion.status}'"}

    return {"valid": True, "from": promotion.status, "to": rule["to"], "reason": None}


def _check_transition(promotion: Promotion, action: str) -> str:
    validation = validate_transition(promotion, action)
    if not validation["valid"]:
        raise InvalidStatusTransition(
            resource="Promotion",
            resource_id=promotion.id,
            action=action,
            current_status=promotion.status,
            allowed_from=PROMOTION_TRANSITIONS.get(action, {}).get("from"),
        )
    return validation["to"]


def _require_creator(promotion: Promotion, requester_id: str, action: str):
    if promotion.created_by != requester_id:
        raise ForbiddenError(action, "Promotion", promotion.id, requester_id)


# ── Queries ──────────────────────────────────────────────────────────────────


def get_promotion_detail(promotion_id: str) -> dict:
    """Promotion with template summary and reserved badge applications."""
    promotion = reservation_ledger.get_promotion(promotion_id)
    result = promotion.to_dict()
    result["template"] = promotion.template.to_dict() if promotion.template else None
    result["reservations"] = [r.to_dict() for r in promotion.reservations]
    result["badge_applications"] = [
        app.to_dict() for app in reservation_ledger.reserved_badge_applications(promotion.id)
    ]
    return result


# ── Create / delete ──────────────────────────────────────────────────────────


def create_promotion(template_id: str, creator_id: str) -> Promotion:
    """
    Open a draft promotion against an active template.

    path / from_level / to_level are copied from the template now.

    Raises:
        TemplateNotFound, TemplateInactive, StorageError
    """
    template = catalog_service.get_active_template(template_id)

    promotion = Promotion(
        template_id=template.id,
        created_by=creator_id,
        path=template.path,
        from_level=template.from_level,
        to_level=template.to_level,
        status="draft",
        executed=False,
    )
    db.session.add(promotion)
    commit_or_raise("promotion.create", template_id=template_id)

    record_event("promotion.created", actor_id=creator_id, entity_id=promotion.id,
                 template_id=template.id)
    return promotion


def delete_promotion(promotion_id: str, requester_id: str) -> dict:
    """
    Delete a draft promotion owned by the requester, releasing its reservations.

    Raises:
        NotFoundError, ForbiddenError, InvalidStatusTransition, StorageError
    """
    promotion = reservation_ledger.get_promotion(promotion_id)
    _require_creator(promotion, requester_id, "delete")
    if promotion.status != "draft":
        raise InvalidStatusTransition(
            resource="Promotion",
            resource_id=promotion.id,
            action="delete",
            current_status=promotion.status,
            allowed_from=["draft"],
        )

    released = reservation_ledger.release_reservations(promotion)
    db.session.delete(promotion)
    commit_or_raise("promotion.delete", promotion_id=promotion_id)

    record_event("promotion.deleted", actor_id=requester_id, entity_id=promotion_id,
                 released_badge_application_ids=released)
    return {"deleted": True, "promotion_id": promotion_id, "released_count": len(released)}


# ── Transitions ──────────────────────────────────────────────────────────────


def submit_promotion(promotion_id: str, requester_id: str) -> Promotion:
    """
    draft → submitted, gated by the eligibility validator.

    An unsatisfied template is a normal outcome: ValidationFailed carries the
    gap report and nothing is changed.

    Raises:
        NotFoundError, ForbiddenError, InvalidStatusTransition,
        ValidationFailed, StorageError
    """
    promotion = reservation_ledger.get_promotion(promotion_id)
    _require_creator(promotion, requester_id, "submit")
    target = _check_transition(promotion, "submit")

    report = evaluate_promotion(promotion)
    if not report.is_valid:
        logger.info("Promotion %s not eligible: %d unmet requirement(s)",
                    promotion.id, len(report.missing))
        raise ValidationFailed(promotion_id=promotion.id, missing=report.missing)

    try:
        reservation_ledger.mark_reserved_badges_used(promotion)
    except InvalidStatusTransition:
        db.session.rollback()
        raise

    promotion.status = target
    promotion.submitted_at = datetime.now(timezone.utc)
    commit_or_raise("promotion.submit", promotion_id=promotion.id)

    record_event("promotion.submitted", actor_id=requester_id, entity_id=promotion.id,
                 badge_count=len(promotion.reservations))
    return promotion


def approve_promotion(promotion_id: str, approver_id: str) -> Promotion:
    """
    submitted → approved. Every reservation becomes consumed; those badge
    applications can never be reserved again.

    Raises:
        NotFoundError, InvalidStatusTransition, StorageError
    """
    promotion = reservation_ledger.get_promotion(promotion_id)
    target = _check_transition(promotion, "approve")

    now = datetime.now(timezone.utc)
    promotion.status = target
    promotion.executed = True
    promotion.approved_by = approver_id
    promotion.approved_at = now
    consumed = reservation_ledger.consume_reservations(promotion)
    commit_or_raise("promotion.approve", promotion_id=promotion.id)

    record_event("promotion.approved", actor_id=approver_id, entity_id=promotion.id,
                 consumed_count=consumed)
    return promotion


def reject_promotion(promotion_id: str, rejecter_id: str, reason: str | None) -> Promotion:
    """
    submitted → rejected with a mandatory reason. Reservations are released
    and their badge applications return to ``accepted``.

    Raises:
        NotFoundError, InvalidStatusTransition, EmptyReason, ValidationError,
        StorageError
    """
    promotion = reservation_ledger.get_promotion(promotion_id)
    target = _check_transition(promotion, "reject")
    reject_reason = clean_reason(reason, "reject_reason", required=True)

    promotion.status = target
    promotion.rejected_by = rejecter_id
    promotion.rejected_at = datetime.now(timezone.utc)
    promotion.reject_reason = reject_reason
    released = reservation_ledger.release_reservations(promotion)
    commit_or_raise("promotion.reject", promotion_id=promotion.id)

    record_event("promotion.rejected", actor_id=rejecter_id, entity_id=promotion.id,
                 released_badge_application_ids=released)
    return promotion
