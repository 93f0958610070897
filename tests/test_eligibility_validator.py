"""
Tests: Eligibility validator.

evaluate_rules is pure, so most cases run without the database; the
validate_promotion tests go through the reservation ledger.
"""

import pytest

from promotion_engine.core.exceptions import NotFoundError
from promotion_engine.services import eligibility_validator as ev
from promotion_engine.services import reservation_ledger
from tests.conftest import APPLICANT, S1_TO_S2_RULES


def _pairs(*spec):
    """_pairs(("technical", "silver", 4), ...) → flat list of (category, level)."""
    out = []
    for category, level, n in spec:
        out.extend([(category, level)] * n)
    return out


# ── evaluate_rules ───────────────────────────────────────────────────────────


def test_four_silver_no_gold_reports_both_gaps():
    report = ev.evaluate_rules(_pairs(("technical", "silver", 4)), S1_TO_S2_RULES)

    assert report.is_valid is False
    assert report.missing == [
        {"category": "technical", "level": "silver", "count": 2},
        {"category": "any", "level": "gold", "count": 1},
    ]


def test_exact_counts_satisfy_template():
    badges = _pairs(("technical", "silver", 6), ("softskilled", "gold", 1))
    report = ev.evaluate_rules(badges, S1_TO_S2_RULES)

    assert report.is_valid is True
    assert report.missing == []
    assert [r.current for r in report.requirements] == [6, 1]


def test_gold_never_substitutes_for_silver():
    badges = _pairs(("technical", "silver", 5), ("technical", "gold", 3))
    report = ev.evaluate_rules(badges, S1_TO_S2_RULES)

    silver_rule = report.requirements[0]
    assert silver_rule.current == 5
    assert silver_rule.satisfied is False
    assert report.missing == [{"category": "technical", "level": "silver", "count": 1}]


def test_gold_does_not_count_toward_bronze():
    rules = [{"category": "any", "level": "bronze", "count": 1}]
    report = ev.evaluate_rules(_pairs(("technical", "gold", 2)), rules)

    assert report.is_valid is False
    assert report.requirements[0].current == 0


def test_badge_counts_toward_every_matching_rule():
    rules = [
        {"category": "any", "level": "gold", "count": 1},
        {"category": "technical", "level": "gold", "count": 1},
    ]
    report = ev.evaluate_rules([("technical", "gold")], rules)

    assert report.is_valid is True
    assert [r.current for r in report.requirements] == [1, 1]


def test_any_category_pools_all_categories_at_level():
    rules = [{"category": "any", "level": "silver", "count": 3}]
    badges = [("technical", "silver"), ("organizational", "silver"), ("softskilled", "silver")]

    report = ev.evaluate_rules(badges, rules)

    assert report.requirements[0].current == 3
    assert report.is_valid is True


def test_surplus_badges_do_not_fail_validation():
    badges = _pairs(("technical", "silver", 10), ("technical", "gold", 4))
    assert ev.evaluate_rules(badges, S1_TO_S2_RULES).is_valid is True


def test_result_is_independent_of_badge_order():
    badges = _pairs(("technical", "silver", 3), ("organizational", "gold", 1), ("technical", "bronze", 2))
    forward = ev.evaluate_rules(badges, S1_TO_S2_RULES).to_dict()
    backward = ev.evaluate_rules(list(reversed(badges)), S1_TO_S2_RULES).to_dict()

    assert forward == backward


def test_empty_rules_are_trivially_valid():
    report = ev.evaluate_rules([], [])
    assert report.is_valid is True
    assert report.to_dict() == {"is_valid": True, "requirements": [], "missing": []}


def test_requirement_to_dict_shape():
    report = ev.evaluate_rules([("technical", "silver")], S1_TO_S2_RULES)
    assert report.requirements[0].to_dict() == {
        "category": "technical",
        "level": "silver",
        "required": 6,
        "current": 1,
        "satisfied": False,
    }


# ── validate_promotion ───────────────────────────────────────────────────────


def test_validate_promotion_counts_reserved_badges(make_promotion, make_badge_application):
    promotion = make_promotion()
    ids = [make_badge_application("technical", "silver").id for _ in range(4)]
    reservation_ledger.add_badges(promotion.id, APPLICANT, ids)

    result = ev.validate_promotion(promotion.id)

    assert result["promotion_id"] == promotion.id
    assert result["is_valid"] is False
    assert result["missing"] == [
        {"category": "technical", "level": "silver", "count": 2},
        {"category": "any", "level": "gold", "count": 1},
    ]


def test_validate_promotion_is_idempotent(make_promotion, eligible_badges):
    promotion = make_promotion()
    reservation_ledger.add_badges(promotion.id, APPLICANT, [b.id for b in eligible_badges])

    first = ev.validate_promotion(promotion.id)
    second = ev.validate_promotion(promotion.id)

    assert first == second
    assert first["is_valid"] is True


def test_validate_promotion_uses_inactive_template(make_template, make_promotion):
    template = make_template()
    promotion = make_promotion(template=template)
    template.is_active = False

    result = ev.validate_promotion(promotion.id)
    assert result["is_valid"] is False


def test_validate_missing_promotion_raises():
    with pytest.raises(NotFoundError):
        ev.validate_promotion("00000000-0000-0000-0000-000000000000")
