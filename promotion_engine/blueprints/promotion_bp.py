"""
Promotion Blueprint.

HTTP endpoints for the promotion lifecycle, the reservation ledger and the
eligibility preview.

Endpoints:
    POST   /api/v1/promotions                       Body: { template_id, creator_id }
    GET    /api/v1/promotions/<id>
    DELETE /api/v1/promotions/<id>                  Body: { requester_id }
    POST   /api/v1/promotions/<id>/badges           Body: { requester_id, badge_application_ids }
    DELETE /api/v1/promotions/<id>/badges           Body: { requester_id, badge_application_ids }
    GET    /api/v1/promotions/<id>/validation
    POST   /api/v1/promotions/<id>/submit           Body: { requester_id }
    POST   /api/v1/promotions/<id>/approve          Body: { approver_id }
    POST   /api/v1/promotions/<id>/reject           Body: { rejecter_id, reject_reason }

Layer contract:
    - Blueprint: parse + validate input shape, call service, return JSON.
    - NO db.session calls here — all writes owned by the services.
    - Business outcomes are raised by services and mapped to responses by
      utils.errors.register_service_error_handlers.
"""

import logging
import uuid

from flask import Blueprint, current_app, jsonify, request

from promotion_engine.services import (
    eligibility_validator,
    promotion_lifecycle,
    reservation_ledger,
)
from promotion_engine.utils.errors import E, api_error, register_service_error_handlers

logger = logging.getLogger(__name__)

promotion_bp = Blueprint("promotion", __name__, url_prefix="/api/v1")

register_service_error_handlers(promotion_bp)


# ── Input helpers ─────────────────────────────────────────────────────────────


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _required_id(data: dict, field: str):
    """Return (value, None) or (None, error_response) for a required id field."""
    value = data.get(field)
    if value is None or not str(value).strip():
        return None, api_error(E.VALIDATION_REQUIRED, f"Field '{field}' is required.")
    return str(value).strip(), None


def _badge_application_ids(data: dict):
    """Validate ``badge_application_ids``: 1..MAX_BADGES_PER_REQUEST UUID strings."""
    ids = data.get("badge_application_ids")
    if not isinstance(ids, list) or not ids:
        return None, api_error(
            E.VALIDATION_REQUIRED,
            "Field 'badge_application_ids' must be a non-empty list.",
        )
    max_ids = current_app.config.get("MAX_BADGES_PER_REQUEST", 100)
    if len(ids) > max_ids:
        return None, api_error(
            E.VALIDATION_INVALID,
            f"Cannot process more than {max_ids} badge applications at once.",
            details={"max": max_ids, "received": len(ids)},
        )
    invalid = []
    for value in ids:
        try:
            uuid.UUID(str(value))
        except ValueError:
            invalid.append(value)
    if invalid:
        return None, api_error(
            E.VALIDATION_INVALID,
            "Invalid badge application ID format.",
            details={"invalid_ids": invalid},
        )
    return [str(v) for v in ids], None


# ── Routes ────────────────────────────────────────────────────────────────────


@promotion_bp.route("/promotions", methods=["POST"])
def create_promotion():
    """Open a draft promotion from an active template. Returns 201."""
    data = _body()
    template_id, err = _required_id(data, "template_id")
    if err:
        return err
    creator_id, err = _required_id(data, "creator_id")
    if err:
        return err

    promotion = promotion_lifecycle.create_promotion(template_id, creator_id)
    return jsonify(promotion.to_dict()), 201


@promotion_bp.route("/promotions/<promotion_id>", methods=["GET"])
def get_promotion(promotion_id):
    return jsonify(promotion_lifecycle.get_promotion_detail(promotion_id)), 200


@promotion_bp.route("/promotions/<promotion_id>", methods=["DELETE"])
def delete_promotion(promotion_id):
    """Delete a draft promotion; its reservations are released."""
    requester_id, err = _required_id(_body(), "requester_id")
    if err:
        return err

    result = promotion_lifecycle.delete_promotion(promotion_id, requester_id)
    return jsonify(result), 200


@promotion_bp.route("/promotions/<promotion_id>/badges", methods=["POST"])
def add_badges(promotion_id):
    """Reserve accepted badge applications for a draft promotion (all or nothing).

    409 with owning_promotion_id when another promotion already holds a badge.
    """
    data = _body()
    requester_id, err = _required_id(data, "requester_id")
    if err:
        return err
    ids, err = _badge_application_ids(data)
    if err:
        return err

    result = reservation_ledger.add_badges(promotion_id, requester_id, ids)
    result["message"] = f"{result['added_count']} badge(s) added successfully"
    return jsonify(result), 200


@promotion_bp.route("/promotions/<promotion_id>/badges", methods=["DELETE"])
def remove_badges(promotion_id):
    data = _body()
    requester_id, err = _required_id(data, "requester_id")
    if err:
        return err
    ids, err = _badge_application_ids(data)
    if err:
        return err

    result = reservation_ledger.remove_badges(promotion_id, requester_id, ids)
    result["message"] = f"{result['removed_count']} badge(s) removed successfully"
    return jsonify(result), 200


@promotion_bp.route("/promotions/<promotion_id>/validation", methods=["GET"])
def validate_promotion(promotion_id):
    """Live eligibility preview. Read-only; safe to call at any time."""
    return jsonify(eligibility_validator.validate_promotion(promotion_id)), 200


@promotion_bp.route("/promotions/<promotion_id>/submit", methods=["POST"])
def submit_promotion(promotion_id):
    """Submit a draft. 409 ERR_VALIDATION_FAILED carries the missing badges."""
    requester_id, err = _required_id(_body(), "requester_id")
    if err:
        return err

    promotion = promotion_lifecycle.submit_promotion(promotion_id, requester_id)
    return jsonify(promotion.to_dict()), 200


@promotion_bp.route("/promotions/<promotion_id>/approve", methods=["POST"])
def approve_promotion(promotion_id):
    approver_id, err = _required_id(_body(), "approver_id")
    if err:
        return err

    promotion = promotion_lifecycle.approve_promotion(promotion_id, approver_id)
    return jsonify(promotion.to_dict()), 200


@promotion_bp.route("/promotions/<promotion_id>/reject", methods=["POST"])
def reject_promotion(promotion_id):
    """Reject a submitted promotion. An empty reject_reason is refused by the service."""
    data = _body()
    rejecter_id, err = _required_id(data, "rejecter_id")
    if err:
        return err
    reason = data.get("reject_reason")
    if reason is not None and not isinstance(reason, str):
        return api_error(E.VALIDATION_INVALID, "Field 'reject_reason' must be a string.",
                         details={"reject_reason": "must be a string"})

    promotion = promotion_lifecycle.reject_promotion(
        promotion_id, rejecter_id, reason,
    )
    return jsonify(promotion.to_dict()), 200
