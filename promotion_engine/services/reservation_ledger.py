"""
Reservation Ledger — exclusive claims of badge applications by promotions.

Invariant: at any instant a badge application has at most one unconsumed
reservation, and at most one consumed reservation across its lifetime.

Both halves are enforced by partial unique indexes on ``promotion_badges``
(see models.promotion). The read performed before inserting only exists to
report a friendly conflict early; the insert itself is the arbiter. When two
requests race for the same badge, whichever commits first wins and the loser's
flush fails on the index, is rolled back as a whole batch, and is reported as
ReservationConflict naming the winner (looked up, never guessed).
If the only holder turns out to be the same promotion (two concurrent adds of
one id), those ids are dropped from the batch instead.

Transaction policy:
    add_badges / remove_badges commit.
    release_reservations / mark_reserved_badges_used / consume_reservations
    only mutate; the promotion lifecycle owns the commit.
"""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from promotion_engine.core.exceptions import (
    ForbiddenError,
    InvalidBadgeApplication,
    InvalidStatusTransition,
    NotFoundError,
    ReservationConflict,
    StorageError,
    ValidationError,
)
from promotion_engine.models import db
from promotion_engine.models.badge_application import BadgeApplication
from promotion_engine.models.promotion import Promotion, PromotionBadge
from promotion_engine.services.audit_trail import record_event
from promotion_engine.services.badge_application_lifecycle import (
    _mark_used_in_promotion,
    _release_from_promotion,
)
from promotion_engine.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)


# ── Lookups ──────────────────────────────────────────────────────────────────


def get_promotion(promotion_id: str) -> Promotion:
    promotion = db.session.get(Promotion, promotion_id)
    if promotion is None:
        raise NotFoundError(resource="Promotion", resource_id=promotion_id)
    return promotion


def find_owning_promotion_id(badge_application_id: str, exclude_promotion_id: str | None = None) -> str | None:
    """Return the id of the promotion currently holding ``badge_application_id``.

    A consumed reservation is the permanent owner and wins over a live one.
    """
    query = PromotionBadge.query.filter(PromotionBadge.badge_application_id == badge_application_id)
    if exclude_promotion_id is not None:
        query = query.filter(PromotionBadge.promotion_id != exclude_promotion_id)
    row = query.order_by(PromotionBadge.consumed.desc(), PromotionBadge.assigned_at).first()
    return row.promotion_id if row else None


def reserved_badge_applications(promotion_id: str) -> list[BadgeApplication]:
    """Badge applications linked to the promotion, in reservation order."""
    return (
        BadgeApplication.query
        .join(PromotionBadge, PromotionBadge.badge_application_id == BadgeApplication.id)
        .filter(PromotionBadge.promotion_id == promotion_id)
        .order_by(PromotionBadge.assigned_at, PromotionBadge.id)
        .all()
    )


# ── Guards ───────────────────────────────────────────────────────────────────


def _require_editable_draft(promotion: Promotion, requester_id: str, action: str):
    if promotion.created_by != requester_id:
        raise ForbiddenError(action, "Promotion", promotion.id, requester_id)
    if promotion.status != "draft":
        raise InvalidStatusTransition(
            resource="Promotion",
            resource_id=promotion.id,
            action=action,
            current_status=promotion.status,
            allowed_from=["draft"],
        )


def _claimed_elsewhere(badge_application_id: str, promotion_id: str) -> str | None:
    return find_owning_promotion_id(badge_application_id, exclude_promotion_id=promotion_id)


def _reserved_by(promotion: Promotion) -> set[str]:
    return {r.badge_application_id for r in promotion.reservations}


def _held_by(promotion_id: str, badge_application_ids: list[str]) -> set[str]:
    rows = (
        PromotionBadge.query
        .filter(
            PromotionBadge.promotion_id == promotion_id,
            PromotionBadge.badge_application_id.in_(badge_application_ids),
        )
        .all()
    )
    return {r.badge_application_id for r in rows}


def _conflict(badge_application_id: str, owning_promotion_id: str | None,
              promotion_id: str, requester_id: str) -> ReservationConflict:
    logger.debug("Reservation conflict: badge=%s owner=%s requested_by=%s",
                 badge_application_id, owning_promotion_id, promotion_id)
    record_event("reservation.conflict", actor_id=requester_id, entity_id=badge_application_id,
                 promotion_id=promotion_id, owning_promotion_id=owning_promotion_id)
    return ReservationConflict(badge_application_id=badge_application_id,
                               owning_promotion_id=owning_promotion_id)


# ── Public API ───────────────────────────────────────────────────────────────


def add_badges(promotion_id: str, requester_id: str, badge_application_ids: list[str]) -> dict:
    """
    Reserve accepted badge applications for a draft promotion, all or nothing.

    Per id, in request order: the application must exist, must not be held by
    another promotion, and must be ``accepted``. Ids already reserved by this
    promotion are skipped.

    Returns:
        {"promotion_id", "added_count", "badge_application_ids"}

    Raises:
        NotFoundError, ForbiddenError, InvalidStatusTransition,
        InvalidBadgeApplication, ReservationConflict, StorageError
    """
    promotion = get_promotion(promotion_id)
    _require_editable_draft(promotion, requester_id, "add_badges")

    requested = list(dict.fromkeys(badge_application_ids or []))
    if not requested:
        raise ValidationError("At least one badge application id is required",
                              details={"badge_application_ids": "required"})

    already_reserved = _reserved_by(promotion)
    to_reserve = []
    for app_id in requested:
        application = db.session.get(BadgeApplication, app_id)
        if application is None:
            raise InvalidBadgeApplication(app_id, "not_found")
        if app_id in already_reserved:
            continue
        owner = _claimed_elsewhere(app_id, promotion.id)
        if owner is not None:
            raise _conflict(app_id, owner, promotion.id, requester_id)
        if application.status != "accepted":
            raise InvalidBadgeApplication(app_id, "not_accepted", application.status)
        to_reserve.append(app_id)

    added = []
    if to_reserve:
        # Snapshot before any rollback expires the instance.
        pid = promotion.id
        added = _insert_reservations(pid, requester_id, to_reserve)
        if added:
            commit_or_raise("promotion.add_badges", promotion_id=pid)
            record_event("promotion.badges_added", actor_id=requester_id, entity_id=pid,
                         badge_application_ids=added)

    return {
        "promotion_id": promotion_id,
        "added_count": len(added),
        "badge_application_ids": added,
    }


def _insert_reservations(promotion_id: str, requester_id: str, badge_application_ids: list[str],
                         attempts: int = 2) -> list[str]:
    """Flush ledger rows for ``badge_application_ids``; return the ids inserted.

    A unique-index violation is resolved by reading the ledger back after the
    rollback. A badge held by another promotion raises ReservationConflict. A
    badge already held by this promotion (a concurrent add of the same id) is
    dropped from the batch and the remainder is flushed again.
    """
    pending = list(badge_application_ids)
    last_exc = None
    for _ in range(attempts):
        try:
            db.session.add_all([
                PromotionBadge(promotion_id=promotion_id, badge_application_id=app_id,
                               assigned_by=requester_id)
                for app_id in pending
            ])
            db.session.flush()
            return pending
        except IntegrityError as exc:
            db.session.rollback()
            for app_id in pending:
                owner = find_owning_promotion_id(app_id, exclude_promotion_id=promotion_id)
                if owner is not None:
                    raise _conflict(app_id, owner, promotion_id, requester_id) from exc
            held = _held_by(promotion_id, pending)
            if not held:
                logger.exception("Reservation insert rejected without an owning promotion",
                                 extra={"promotion_id": promotion_id, "event_type": "storage.failure"})
                raise StorageError("promotion.add_badges") from exc
            logger.debug("Concurrent add already reserved %s for promotion %s",
                         sorted(held), promotion_id)
            pending = [app_id for app_id in pending if app_id not in held]
            if not pending:
                return []
            last_exc = exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Database error while reserving badges",
                             extra={"promotion_id": promotion_id, "event_type": "storage.failure"})
            raise StorageError("promotion.add_badges") from exc

    logger.error("Reservation insert kept colliding for promotion %s", promotion_id,
                 exc_info=last_exc, extra={"event_type": "storage.failure"})
    raise StorageError("promotion.add_badges") from last_exc


def remove_badges(promotion_id: str, requester_id: str, badge_application_ids: list[str]) -> dict:
    """
    Drop live reservations from a draft promotion.

    Badge statuses are untouched: drafts never flip them, only submit does.
    Ids this promotion does not hold are reported in ``not_reserved``.
    """
    promotion = get_promotion(promotion_id)
    _require_editable_draft(promotion, requester_id, "remove_badges")

    requested = list(dict.fromkeys(badge_application_ids or []))
    rows = (
        PromotionBadge.query
        .filter(
            PromotionBadge.promotion_id == promotion.id,
            PromotionBadge.badge_application_id.in_(requested),
            PromotionBadge.consumed.is_(False),
        )
        .all()
    )
    removed = [r.badge_application_id for r in rows]
    for row in rows:
        db.session.delete(row)

    if rows:
        commit_or_raise("promotion.remove_badges", promotion_id=promotion_id)
        record_event("promotion.badges_removed", actor_id=requester_id, entity_id=promotion_id,
                     badge_application_ids=removed)

    return {
        "promotion_id": promotion_id,
        "removed_count": len(removed),
        "not_reserved": [i for i in requested if i not in removed],
    }


# ── Lifecycle hooks (promotion_lifecycle only) ───────────────────────────────


def release_reservations(promotion: Promotion) -> list[str]:
    """
    Delete every live reservation of ``promotion`` and return each badge
    application to ``accepted``. Shared by promotion delete and reject.

    Returns the released badge application ids.
    """
    released = []
    for reservation in list(promotion.reservations):
        if reservation.consumed:
            continue
        _release_from_promotion(reservation.badge_application)
        released.append(reservation.badge_application_id)
        promotion.reservations.remove(reservation)
    return released


def mark_reserved_badges_used(promotion: Promotion) -> None:
    """Flip every reserved badge application to ``used_in_promotion`` (submit)."""
    for reservation in promotion.reservations:
        _mark_used_in_promotion(reservation.badge_application)


def consume_reservations(promotion: Promotion) -> int:
    """Mark every reservation consumed (approve). Never reverted."""
    for reservation in promotion.reservations:
        reservation.consumed = True
    return len(promotion.reservations)
