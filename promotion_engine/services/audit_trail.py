"""
Domain audit events.

Lifecycle and ledger services call ``record_event`` after each state change.
Events are emitted as structured log records on the
``promotion_engine.audit`` logger; the JSON formatter in production turns
the extras into top-level fields for the log aggregator.

Event types:
    badge_application.created / .submitted / .accepted / .rejected
    promotion.created / .deleted / .submitted / .approved / .rejected
    promotion.badges_added / .badges_removed
    reservation.conflict
"""

import logging

logger = logging.getLogger("promotion_engine.audit")

AUDIT_EVENT_TYPES = frozenset({
    "badge_application.created",
    "badge_application.submitted",
    "badge_application.accepted",
    "badge_application.rejected",
    "promotion.created",
    "promotion.deleted",
    "promotion.submitted",
    "promotion.approved",
    "promotion.rejected",
    "promotion.badges_added",
    "promotion.badges_removed",
    "reservation.conflict",
})


def record_event(event_type: str, *, actor_id: str | None, entity_id: str, **payload) -> dict:
    """Emit one audit event and return it as a dict.

    Raises ValueError for an unknown event type so typos fail loudly in tests.
    """
    if event_type not in AUDIT_EVENT_TYPES:
        raise ValueError(f"Unknown audit event type: {event_type}")

    event = {
        "event_type": event_type,
        "actor_id": actor_id,
        "entity_id": entity_id,
        "payload": payload,
    }
    logger.info("%s entity=%s actor=%s", event_type, entity_id, actor_id, extra=event)
    return event
