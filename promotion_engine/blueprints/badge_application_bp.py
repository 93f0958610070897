"""
Badge Application Blueprint.

Endpoints:
    POST   /api/v1/badge-applications              Body: { applicant_id, catalog_badge_id,
                                                           date_of_application, date_of_fulfillment?,
                                                           reason? }
    GET    /api/v1/badge-applications/<id>
    PUT    /api/v1/badge-applications/<id>         Body: { requester_id, date_of_application?,
                                                           date_of_fulfillment?, reason? }
    DELETE /api/v1/badge-applications/<id>         Body: { requester_id }
    POST   /api/v1/badge-applications/<id>/submit  Body: { requester_id }
    POST   /api/v1/badge-applications/<id>/accept  Body: { reviewer_id, review_reason? }
    POST   /api/v1/badge-applications/<id>/reject  Body: { reviewer_id, review_reason }

There is deliberately no route for used_in_promotion flips; those belong to
the reservation ledger.
"""

import logging

from flask import Blueprint, jsonify, request

from promotion_engine.services import badge_application_lifecycle as bal
from promotion_engine.utils.errors import E, api_error, register_service_error_handlers
from promotion_engine.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

badge_application_bp = Blueprint("badge_application", __name__, url_prefix="/api/v1")

register_service_error_handlers(badge_application_bp)


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _required(data: dict, field: str):
    value = data.get(field)
    if value is None or not str(value).strip():
        return None, api_error(E.VALIDATION_REQUIRED, f"Field '{field}' is required.")
    return str(value).strip(), None


def _text_errors(data: dict, *fields) -> tuple | None:
    """Free-text fields, when present, must be strings."""
    for field in fields:
        value = data.get(field)
        if value is not None and not isinstance(value, str):
            return api_error(E.VALIDATION_INVALID, f"Field '{field}' must be a string.",
                             details={field: "must be a string"})
    return None


def _date_errors(data: dict) -> tuple | None:
    """Reject malformed dates with 400 before they reach the service."""
    for field in ("date_of_application", "date_of_fulfillment"):
        if field in data:
            try:
                parse_date_input(data[field])
            except ValueError as exc:
                return api_error(E.VALIDATION_INVALID, str(exc), details={field: "invalid date"})
    return None


@badge_application_bp.route("/badge-applications", methods=["POST"])
def create_badge_application():
    """Create a draft claim. Returns 201."""
    data = _body()
    applicant_id, err = _required(data, "applicant_id")
    if err:
        return err
    catalog_badge_id, err = _required(data, "catalog_badge_id")
    if err:
        return err
    if not data.get("date_of_application"):
        return api_error(E.VALIDATION_REQUIRED, "Field 'date_of_application' is required.")
    err = _date_errors(data) or _text_errors(data, "reason")
    if err:
        return err

    application = bal.create_badge_application(
        applicant_id=applicant_id,
        catalog_badge_id=catalog_badge_id,
        date_of_application=data.get("date_of_application"),
        date_of_fulfillment=data.get("date_of_fulfillment"),
        reason=data.get("reason"),
    )
    return jsonify(application.to_dict()), 201


@badge_application_bp.route("/badge-applications/<application_id>", methods=["GET"])
def get_badge_application(application_id):
    return jsonify(bal.get_badge_application(application_id).to_dict()), 200


@badge_application_bp.route("/badge-applications/<application_id>", methods=["PUT"])
def update_badge_application(application_id):
    data = _body()
    requester_id, err = _required(data, "requester_id")
    if err:
        return err
    err = _date_errors(data) or _text_errors(data, "reason")
    if err:
        return err

    application = bal.update_badge_application(application_id, requester_id, data)
    return jsonify(application.to_dict()), 200


@badge_application_bp.route("/badge-applications/<application_id>", methods=["DELETE"])
def delete_badge_application(application_id):
    requester_id, err = _required(_body(), "requester_id")
    if err:
        return err

    bal.delete_badge_application(application_id, requester_id)
    return jsonify({"deleted": True, "id": application_id}), 200


@badge_application_bp.route("/badge-applications/<application_id>/submit", methods=["POST"])
def submit_badge_application(application_id):
    requester_id, err = _required(_body(), "requester_id")
    if err:
        return err

    application = bal.submit_badge_application(application_id, requester_id)
    return jsonify(application.to_dict()), 200


@badge_application_bp.route("/badge-applications/<application_id>/accept", methods=["POST"])
def accept_badge_application(application_id):
    data = _body()
    reviewer_id, err = _required(data, "reviewer_id")
    if err:
        return err
    err = _text_errors(data, "review_reason")
    if err:
        return err

    application = bal.accept_badge_application(application_id, reviewer_id, data.get("review_reason"))
    return jsonify(application.to_dict()), 200


@badge_application_bp.route("/badge-applications/<application_id>/reject", methods=["POST"])
def reject_badge_application(application_id):
    data = _body()
    reviewer_id, err = _required(data, "reviewer_id")
    if err:
        return err
    err = _text_errors(data, "review_reason")
    if err:
        return err

    application = bal.reject_badge_application(application_id, reviewer_id, data.get("review_reason"))
    return jsonify(application.to_dict()), 200
