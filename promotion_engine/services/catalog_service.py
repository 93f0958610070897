"""
Catalog read service — the engine's view of the badge catalog and the
promotion template catalog.

Both catalogs are administered elsewhere; the engine only reads them:
    get_catalog_badge(id)       → CatalogBadge (category / level / status / version)
    get_template(id)            → PromotionTemplate, active or not
    get_active_template(id)     → PromotionTemplate, must be active

Transaction policy: lookups never write. ``seed_default_catalog`` uses
flush(); the CLI command owns the commit.
"""

import logging

from promotion_engine.core.exceptions import NotFoundError, TemplateInactive, TemplateNotFound
from promotion_engine.models import db
from promotion_engine.models.catalog import CatalogBadge, PromotionTemplate

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
# LOOKUPS
# ═══════════════════════════════════════════════════════════════════

def get_catalog_badge(catalog_badge_id: str) -> CatalogBadge:
    badge = db.session.get(CatalogBadge, catalog_badge_id)
    if badge is None:
        raise NotFoundError(resource="CatalogBadge", resource_id=catalog_badge_id)
    return badge


def get_template(template_id: str) -> PromotionTemplate:
    """Return a template regardless of its active flag.

    Existing promotions keep validating against their template even after it
    is deactivated; only creation requires an active one.
    """
    template = db.session.get(PromotionTemplate, template_id)
    if template is None:
        raise TemplateNotFound(template_id)
    return template


def get_active_template(template_id: str) -> PromotionTemplate:
    template = get_template(template_id)
    if not template.is_active:
        raise TemplateInactive(template_id)
    return template


# ═══════════════════════════════════════════════════════════════════
# SEED DATA
# ═══════════════════════════════════════════════════════════════════

_DEFAULT_BADGE_THEMES = [
    ("System Architecture", "technical"),
    ("Database Optimization", "technical"),
    ("API Design Excellence", "technical"),
    ("Security Champion", "technical"),
    ("Project Leadership", "organizational"),
    ("Process Improvement", "organizational"),
    ("Mentoring", "softskilled"),
    ("Communication", "softskilled"),
]

_DEFAULT_TEMPLATES = [
    {
        "name": "Technical J2 → S1",
        "path": "technical",
        "from_level": "J2",
        "to_level": "S1",
        "rules": [
            {"category": "technical", "level": "bronze", "count": 4},
            {"category": "any", "level": "silver", "count": 1},
        ],
    },
    {
        "name": "Technical S1 → S2",
        "path": "technical",
        "from_level": "S1",
        "to_level": "S2",
        "rules": [
            {"category": "technical", "level": "silver", "count": 6},
            {"category": "any", "level": "gold", "count": 1},
        ],
    },
    {
        "name": "Management M1 → M2",
        "path": "management",
        "from_level": "M1",
        "to_level": "M2",
        "rules": [
            {"category": "organizational", "level": "silver", "count": 3},
            {"category": "softskilled", "level": "silver", "count": 2},
            {"category": "any", "level": "gold", "count": 1},
        ],
    },
]


def seed_default_catalog() -> dict:
    """
    Insert the default catalog badges (every theme × gold/silver/bronze) and
    promotion templates. Safe to run multiple times — existing titles/names
    are skipped.

    Returns:
        {"badges": <created>, "templates": <created>}
    """
    badges_created = 0
    for theme, category in _DEFAULT_BADGE_THEMES:
        for level in ("gold", "silver", "bronze"):
            title = f"{theme} - {level.capitalize()}"
            if CatalogBadge.query.filter_by(title=title).first():
                continue
            db.session.add(CatalogBadge(title=title, category=category, level=level))
            badges_created += 1

    templates_created = 0
    for tpl in _DEFAULT_TEMPLATES:
        if PromotionTemplate.query.filter_by(name=tpl["name"]).first():
            continue
        db.session.add(PromotionTemplate(**tpl))
        templates_created += 1

    if badges_created or templates_created:
        db.session.flush()
        logger.info("Seeded %d catalog badges and %d promotion templates",
                    badges_created, templates_created)

    return {"badges": badges_created, "templates": templates_created}
