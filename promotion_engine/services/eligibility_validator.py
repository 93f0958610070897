"""
Eligibility Validator — does a promotion's reserved badge set satisfy its
template?

Exact-match counting, no level substitution (a gold badge never counts toward
a silver or bronze rule):

    1. Partition reserved badges by (category, level) of their catalog badge.
    2. Rule pool:  category "any"  → every badge at the rule's level
                   otherwise       → badges matching category AND level
    3. current = |pool|; satisfied iff current >= required.
    4. Rules are independent: one badge may count toward several rules.
    5. is_valid iff every rule is satisfied; missing lists the shortfall of
       each unsatisfied rule in template order.

``evaluate_rules`` is a pure function of its inputs and is used both for the
live preview endpoint and as the mandatory gate inside promotion submit.
"""

from collections import Counter
from dataclasses import dataclass, field

from promotion_engine.models.catalog import RULE_CATEGORY_ANY
from promotion_engine.services import catalog_service, reservation_ledger


@dataclass(frozen=True)
class RequirementStatus:
    category: str
    level: str
    required: int
    current: int

    @property
    def satisfied(self) -> bool:
        return self.current >= self.required

    @property
    def missing(self) -> int:
        return max(self.required - self.current, 0)

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "level": self.level,
            "required": self.required,
            "current": self.current,
            "satisfied": self.satisfied,
        }


@dataclass(frozen=True)
class EligibilityReport:
    requirements: list[RequirementStatus] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return all(r.satisfied for r in self.requirements)

    @property
    def missing(self) -> list[dict]:
        return [
            {"category": r.category, "level": r.level, "count": r.missing}
            for r in self.requirements
            if not r.satisfied
        ]

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "requirements": [r.to_dict() for r in self.requirements],
            "missing": self.missing,
        }


def evaluate_rules(badges, rules) -> EligibilityReport:
    """
    Count ``badges`` against ``rules``.

    Args:
        badges: iterable of (category, level) pairs, one per reserved badge.
        rules:  template rules, ``[{"category", "level", "count"}]``.
    """
    by_pair = Counter((category, level) for category, level in badges)
    by_level = Counter()
    for (_, level), n in by_pair.items():
        by_level[level] += n

    requirements = []
    for rule in rules or []:
        category, level, required = rule["category"], rule["level"], int(rule["count"])
        if category == RULE_CATEGORY_ANY:
            current = by_level[level]
        else:
            current = by_pair[(category, level)]
        requirements.append(RequirementStatus(category, level, required, current))
    return EligibilityReport(requirements=requirements)


def _badge_pairs(applications):
    return [
        (app.catalog_badge.category, app.catalog_badge.level)
        for app in applications
    ]


def evaluate_promotion(promotion) -> EligibilityReport:
    """Evaluate a loaded promotion against its template as it stands now."""
    template = catalog_service.get_template(promotion.template_id)
    applications = reservation_ledger.reserved_badge_applications(promotion.id)
    return evaluate_rules(_badge_pairs(applications), template.rules)


def validate_promotion(promotion_id: str) -> dict:
    """
    Live eligibility preview for a stored promotion.

    Returns:
        {"promotion_id", "is_valid", "requirements": [...], "missing": [...]}

    Raises:
        NotFoundError when the promotion does not exist.
    """
    promotion = reservation_ledger.get_promotion(promotion_id)
    report = evaluate_promotion(promotion)
    return {"promotion_id": promotion.id, **report.to_dict()}
