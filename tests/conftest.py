"""
Shared pytest fixtures for the Promotion Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_catalog_badge / make_template / make_badge_application /
      make_promotion: ORM factories for self-contained tests
"""

from datetime import date

import pytest

from promotion_engine import create_app
from promotion_engine.models import db as _db
from promotion_engine.models.badge_application import BadgeApplication
from promotion_engine.models.catalog import CatalogBadge, PromotionTemplate
from promotion_engine.models.promotion import Promotion

APPLICANT = "user-applicant"
OTHER_USER = "user-other"
REVIEWER = "user-reviewer"
ADMIN = "user-admin"

S1_TO_S2_RULES = [
    {"category": "technical", "level": "silver", "count": 6},
    {"category": "any", "level": "gold", "count": 1},
]


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_catalog_badge():
    def _make(category="technical", level="silver", status="active", title=None, version=1):
        badge = CatalogBadge(
            title=title or f"{category.capitalize()} {level.capitalize()}",
            category=category,
            level=level,
            status=status,
            version=version,
        )
        _db.session.add(badge)
        _db.session.commit()
        return badge

    return _make


@pytest.fixture()
def make_template():
    def _make(rules=None, is_active=True, name="Technical S1 → S2",
              path="technical", from_level="S1", to_level="S2"):
        template = PromotionTemplate(
            name=name,
            path=path,
            from_level=from_level,
            to_level=to_level,
            rules=S1_TO_S2_RULES if rules is None else rules,
            is_active=is_active,
        )
        _db.session.add(template)
        _db.session.commit()
        return template

    return _make


@pytest.fixture()
def make_badge_application(make_catalog_badge):
    """Badge application in a given status (``accepted`` by default), bypassing the lifecycle."""

    def _make(category="technical", level="silver", status="accepted",
              applicant_id=APPLICANT, catalog_badge=None):
        badge = catalog_badge or make_catalog_badge(category=category, level=level)
        application = BadgeApplication(
            applicant_id=applicant_id,
            catalog_badge_id=badge.id,
            catalog_badge_version=badge.version,
            date_of_application=date(2026, 1, 15),
            status=status,
        )
        _db.session.add(application)
        _db.session.commit()
        return application

    return _make


@pytest.fixture()
def make_promotion(make_template):
    def _make(template=None, created_by=APPLICANT, status="draft"):
        template = template or make_template()
        promotion = Promotion(
            template_id=template.id,
            created_by=created_by,
            path=template.path,
            from_level=template.from_level,
            to_level=template.to_level,
            status=status,
        )
        _db.session.add(promotion)
        _db.session.commit()
        return promotion

    return _make


@pytest.fixture()
def template(make_template):
    return make_template()


@pytest.fixture()
def eligible_badges(make_badge_application):
    """Six technical/silver plus one gold badge: satisfies S1_TO_S2_RULES."""
    silver = [make_badge_application("technical", "silver") for _ in range(6)]
    gold = make_badge_application("organizational", "gold")
    return silver + [gold]
