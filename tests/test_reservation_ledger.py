"""
Tests: Reservation ledger.

Covers the single-claim guarantee (pre-check and unique-index paths),
all-or-nothing batches, permanent consumption, ownership / draft guards and
storage failure handling.

Concurrent requests are simulated by disabling the pre-insert ownership read
(``_claimed_elsewhere``) so the second insert reaches the partial unique index
exactly as a request that lost the race would.
A stale read of the promotion's own reservations (``_reserved_by``) stands in
for two adds by the same promotion. One test races two real threads against a
file-backed SQLite database.
"""

import threading

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from promotion_engine import create_app
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
from promotion_engine.models.promotion import PromotionBadge
from promotion_engine.services import promotion_lifecycle, reservation_ledger
from tests.conftest import ADMIN, APPLICANT, OTHER_USER


def _live_reservations(badge_application_id):
    return PromotionBadge.query.filter_by(
        badge_application_id=badge_application_id, consumed=False,
    ).count()


# ── add_badges: happy path ───────────────────────────────────────────────────


def test_add_badges_reserves_accepted_applications(make_promotion, make_badge_application):
    promotion = make_promotion()
    a = make_badge_application()
    b = make_badge_application()

    result = reservation_ledger.add_badges(promotion.id, APPLICANT, [a.id, b.id])

    assert result == {
        "promotion_id": promotion.id,
        "added_count": 2,
        "badge_application_ids": [a.id, b.id],
    }
    assert [r.badge_application_id for r in promotion.reservations] == [a.id, b.id]


def test_add_badges_keeps_status_accepted_while_draft(make_promotion, make_badge_application):
    promotion = make_promotion()
    application = make_badge_application()

    reservation_ledger.add_badges(promotion.id, APPLICANT, [application.id])

    assert application.status == "accepted"


def test_add_badges_is_idempotent_for_own_reservations(make_promotion, make_badge_application):
    promotion = make_promotion()
    application = make_badge_application()
    reservation_ledger.add_badges(promotion.id, APPLICANT, [application.id])

    again = reservation_ledger.add_badges(promotion.id, APPLICANT, [application.id])

    assert again["added_count"] == 0
    assert _live_reservations(application.id) == 1


def test_duplicate_ids_in_one_request_are_collapsed(make_promotion, make_badge_application):
    promotion = make_promotion()
    application = make_badge_application()

    result = reservation_ledger.add_badges(
        promotion.id, APPLICANT, [application.id, application.id],
    )

    assert result["added_count"] == 1


def test_empty_id_list_is_rejected(make_promotion):
    promotion = make_promotion()
    with pytest.raises(ValidationError):
        reservation_ledger.add_badges(promotion.id, APPLICANT, [])


# ── add_badges: guards ───────────────────────────────────────────────────────


def test_add_badges_unknown_promotion():
    with pytest.raises(NotFoundError):
        reservation_ledger.add_badges("missing", APPLICANT, ["x"])


def test_only_creator_may_add_badges(make_promotion, make_badge_application):
    promotion = make_promotion()
    application = make_badge_application()

    with pytest.raises(ForbiddenError):
        reservation_ledger.add_badges(promotion.id, OTHER_USER, [application.id])


def test_add_badges_requires_draft(make_promotion, make_badge_application):
    promotion = make_promotion(status="submitted")
    application = make_badge_application()

    with pytest.raises(InvalidStatusTransition) as exc_info:
        reservation_ledger.add_badges(promotion.id, APPLICANT, [application.id])
    assert exc_info.value.current_status == "submitted"


def test_unknown_badge_application_is_reported(make_promotion):
    promotion = make_promotion()

    with pytest.raises(InvalidBadgeApplication) as exc_info:
        reservation_ledger.add_badges(promotion.id, APPLICANT, ["no-such-badge"])

    assert exc_info.value.badge_application_id == "no-such-badge"
    assert exc_info.value.reason == "not_found"


@pytest.mark.parametrize("status", ["draft", "submitted", "rejected"])
def test_non_accepted_application_cannot_be_reserved(make_promotion, make_badge_application, status):
    promotion = make_promotion()
    application = make_badge_application(status=status)

    with pytest.raises(InvalidBadgeApplication) as exc_info:
        reservation_ledger.add_badges(promotion.id, APPLICANT, [application.id])

    assert exc_info.value.reason == "not_accepted"
    assert exc_info.value.current_status == status


def test_failed_batch_reserves_nothing(make_promotion, make_badge_application):
    promotion = make_promotion()
    good = make_badge_application()
    bad = make_badge_application(status="submitted")

    with pytest.raises(InvalidBadgeApplication):
        reservation_ledger.add_badges(promotion.id, APPLICANT, [good.id, bad.id])

    assert _live_reservations(good.id) == 0


# ── Single claim ─────────────────────────────────────────────────────────────


def test_second_promotion_gets_conflict_with_owner(make_promotion, make_template, make_badge_application):
    template = make_template()
    first = make_promotion(template=template, created_by=APPLICANT)
    second = make_promotion(template=template, created_by=OTHER_USER)
    application = make_badge_application()
    reservation_ledger.add_badges(first.id, APPLICANT, [application.id])

    with pytest.raises(ReservationConflict) as exc_info:
        reservation_ledger.add_badges(second.id, OTHER_USER, [application.id])

    assert exc_info.value.badge_application_id == application.id
    assert exc_info.value.owning_promotion_id == first.id
    assert _live_reservations(application.id) == 1


def test_concurrent_loser_hits_unique_index(monkeypatch, make_promotion, make_template, make_badge_application):
    template = make_template()
    winner = make_promotion(template=template, created_by=APPLICANT)
    loser = make_promotion(template=template, created_by=OTHER_USER)
    application = make_badge_application()
    winner_id, loser_id, app_id = winner.id, loser.id, application.id

    reservation_ledger.add_badges(winner_id, APPLICANT, [app_id])
    # Loser read the ledger before the winner committed.
    monkeypatch.setattr(reservation_ledger, "_claimed_elsewhere", lambda *args: None)

    with pytest.raises(ReservationConflict) as exc_info:
        reservation_ledger.add_badges(loser_id, OTHER_USER, [app_id])

    assert exc_info.value.owning_promotion_id == winner_id
    assert _live_reservations(app_id) == 1
    assert PromotionBadge.query.filter_by(promotion_id=loser_id).count() == 0


def test_concurrent_loser_batch_is_rolled_back_entirely(
    monkeypatch, make_promotion, make_template, make_badge_application,
):
    template = make_template()
    winner = make_promotion(template=template, created_by=APPLICANT)
    loser = make_promotion(template=template, created_by=OTHER_USER)
    contested = make_badge_application()
    free = make_badge_application()
    winner_id, loser_id = winner.id, loser.id
    contested_id, free_id = contested.id, free.id

    reservation_ledger.add_badges(winner_id, APPLICANT, [contested_id])
    monkeypatch.setattr(reservation_ledger, "_claimed_elsewhere", lambda *args: None)

    with pytest.raises(ReservationConflict) as exc_info:
        reservation_ledger.add_badges(loser_id, OTHER_USER, [free_id, contested_id])

    assert exc_info.value.badge_application_id == contested_id
    assert _live_reservations(free_id) == 0


def test_concurrent_add_by_same_promotion_is_idempotent(monkeypatch, make_promotion, make_badge_application):
    promotion = make_promotion()
    application = make_badge_application()
    promotion_id, app_id = promotion.id, application.id

    reservation_ledger.add_badges(promotion_id, APPLICANT, [app_id])
    # Second request read the promotion before the first one committed.
    monkeypatch.setattr(reservation_ledger, "_reserved_by", lambda promotion: set())

    result = reservation_ledger.add_badges(promotion_id, APPLICANT, [app_id])

    assert result["added_count"] == 0
    assert result["badge_application_ids"] == []
    assert _live_reservations(app_id) == 1


def test_concurrent_add_by_same_promotion_still_reserves_the_rest(
    monkeypatch, make_promotion, make_badge_application,
):
    promotion = make_promotion()
    held = make_badge_application()
    fresh = make_badge_application()
    promotion_id, held_id, fresh_id = promotion.id, held.id, fresh.id

    reservation_ledger.add_badges(promotion_id, APPLICANT, [held_id])
    monkeypatch.setattr(reservation_ledger, "_reserved_by", lambda promotion: set())

    result = reservation_ledger.add_badges(promotion_id, APPLICANT, [held_id, fresh_id])

    assert result["added_count"] == 1
    assert result["badge_application_ids"] == [fresh_id]
    assert _live_reservations(held_id) == 1
    assert PromotionBadge.query.filter_by(promotion_id=promotion_id).count() == 2


def test_conflict_in_batch_reserves_nothing(make_promotion, make_template, make_badge_application):
    template = make_template()
    owner = make_promotion(template=template, created_by=APPLICANT)
    other = make_promotion(template=template, created_by=OTHER_USER)
    taken = make_badge_application()
    free = make_badge_application()
    reservation_ledger.add_badges(owner.id, APPLICANT, [taken.id])

    with pytest.raises(ReservationConflict):
        reservation_ledger.add_badges(other.id, OTHER_USER, [free.id, taken.id])

    assert _live_reservations(free.id) == 0


@pytest.fixture()
def file_app(tmp_path):
    """App on a file-backed SQLite database so each thread gets its own connection."""
    race_app = create_app("testing", config_overrides={
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'race.db'}",
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
    })
    yield race_app
    with race_app.app_context():
        db.engine.dispose()


def test_threads_racing_for_one_badge(file_app, make_promotion, make_template, make_badge_application):
    with file_app.app_context():
        template = make_template()
        first = make_promotion(template=template, created_by=APPLICANT)
        second = make_promotion(template=template, created_by=OTHER_USER)
        application = make_badge_application()
        requests = [(first.id, APPLICANT), (second.id, OTHER_USER)]
        app_id = application.id

    barrier = threading.Barrier(len(requests))
    outcomes = {}

    def _add(promotion_id, requester_id):
        with file_app.app_context():
            barrier.wait()
            try:
                reservation_ledger.add_badges(promotion_id, requester_id, [app_id])
                outcomes[promotion_id] = "reserved"
            except ReservationConflict as exc:
                outcomes[promotion_id] = ("conflict", exc.owning_promotion_id)
            except Exception as exc:
                outcomes[promotion_id] = ("error", repr(exc))

    threads = [threading.Thread(target=_add, args=args) for args in requests]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    winners = [pid for pid, outcome in outcomes.items() if outcome == "reserved"]
    assert len(winners) == 1, outcomes
    loser = next(pid for pid, _ in requests if pid != winners[0])
    assert outcomes[loser] == ("conflict", winners[0])
    with file_app.app_context():
        rows = PromotionBadge.query.filter_by(badge_application_id=app_id).all()
        assert [(r.promotion_id, r.consumed) for r in rows] == [(winners[0], False)]


# ── Consumption is permanent ─────────────────────────────────────────────────


def test_consumed_badge_can_never_be_reserved_again(make_promotion, make_template, eligible_badges):
    template = make_template()
    approved = make_promotion(template=template, created_by=APPLICANT)
    later = make_promotion(template=template, created_by=APPLICANT)
    ids = [b.id for b in eligible_badges]

    reservation_ledger.add_badges(approved.id, APPLICANT, ids)
    promotion_lifecycle.submit_promotion(approved.id, APPLICANT)
    promotion_lifecycle.approve_promotion(approved.id, ADMIN)

    with pytest.raises(ReservationConflict) as exc_info:
        reservation_ledger.add_badges(later.id, APPLICANT, [ids[0]])

    assert exc_info.value.owning_promotion_id == approved.id


def test_find_owner_prefers_consumed_reservation(make_promotion, make_template, make_badge_application):
    template = make_template()
    promotion = make_promotion(template=template)
    application = make_badge_application(status="used_in_promotion")
    db.session.add(PromotionBadge(
        promotion_id=promotion.id, badge_application_id=application.id,
        assigned_by=APPLICANT, consumed=True,
    ))
    db.session.commit()

    assert reservation_ledger.find_owning_promotion_id(application.id) == promotion.id
    assert reservation_ledger.find_owning_promotion_id(
        application.id, exclude_promotion_id=promotion.id,
    ) is None


# ── remove_badges ────────────────────────────────────────────────────────────


def test_remove_badges_drops_live_reservations(make_promotion, make_badge_application):
    promotion = make_promotion()
    kept = make_badge_application()
    dropped = make_badge_application()
    reservation_ledger.add_badges(promotion.id, APPLICANT, [kept.id, dropped.id])

    result = reservation_ledger.remove_badges(promotion.id, APPLICANT, [dropped.id, "unknown"])

    assert result["removed_count"] == 1
    assert result["not_reserved"] == ["unknown"]
    assert _live_reservations(dropped.id) == 0
    assert _live_reservations(kept.id) == 1
    assert dropped.status == "accepted"


def test_removed_badge_can_be_claimed_elsewhere(make_promotion, make_template, make_badge_application):
    template = make_template()
    first = make_promotion(template=template, created_by=APPLICANT)
    second = make_promotion(template=template, created_by=OTHER_USER)
    application = make_badge_application()
    reservation_ledger.add_badges(first.id, APPLICANT, [application.id])
    reservation_ledger.remove_badges(first.id, APPLICANT, [application.id])

    result = reservation_ledger.add_badges(second.id, OTHER_USER, [application.id])

    assert result["added_count"] == 1


def test_only_creator_may_remove_badges(make_promotion, make_badge_application):
    promotion = make_promotion()
    application = make_badge_application()
    reservation_ledger.add_badges(promotion.id, APPLICANT, [application.id])

    with pytest.raises(ForbiddenError):
        reservation_ledger.remove_badges(promotion.id, OTHER_USER, [application.id])


# ── Storage failure ──────────────────────────────────────────────────────────


def test_storage_failure_rolls_back_and_raises(monkeypatch, make_promotion, make_badge_application):
    promotion = make_promotion()
    a = make_badge_application()
    b = make_badge_application()
    promotion_id, ids = promotion.id, [a.id, b.id]

    original_flush = Session.flush

    def failing_flush(self, objects=None):
        if any(isinstance(obj, PromotionBadge) for obj in self.new):
            raise OperationalError("INSERT INTO promotion_badges", {}, Exception("disk I/O error"))
        return original_flush(self, objects)

    monkeypatch.setattr(Session, "flush", failing_flush)

    with pytest.raises(StorageError) as exc_info:
        reservation_ledger.add_badges(promotion_id, APPLICANT, ids)

    monkeypatch.undo()
    assert exc_info.value.operation == "promotion.add_badges"
    assert PromotionBadge.query.filter_by(promotion_id=promotion_id).count() == 0
