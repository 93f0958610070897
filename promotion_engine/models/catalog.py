"""
Promotion Engine
Catalog domain models — read-only collaborators of the promotion engine.

Models:
    - CatalogBadge:       an achievement employees can claim (versioned)
    - PromotionTemplate:  immutable rule-set for one level transition on one path

Both tables are maintained by the catalog administration surface, which lives
outside this service. The engine only reads them (see catalog_service).
"""

from promotion_engine.models import _iso, _utcnow, _uuid, db

# ── Constants ────────────────────────────────────────────────────────────────

BADGE_CATEGORIES = ("technical", "organizational", "softskilled")

# Template rules may also target every category at a given level.
RULE_CATEGORY_ANY = "any"
RULE_CATEGORIES = BADGE_CATEGORIES + (RULE_CATEGORY_ANY,)

BADGE_LEVELS = ("gold", "silver", "bronze")

CATALOG_BADGE_STATUSES = {"active", "inactive"}

PROMOTION_PATHS = {"technical", "financial", "management"}


class CatalogBadge(db.Model):
    """
    Catalog achievement.

    ``version`` is bumped by the catalog surface on every content edit.
    Badge applications snapshot the version they were created against.
    """

    __tablename__ = "catalog_badges"
    __table_args__ = (
        db.CheckConstraint("version >= 1", name="ck_catalog_badges_version"),
        db.Index("ix_catalog_badges_category_level", "category", "level"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(
        db.String(20), nullable=False,
        comment="technical | organizational | softskilled",
    )
    level = db.Column(db.String(10), nullable=False, comment="gold | silver | bronze")
    status = db.Column(db.String(10), nullable=False, default="active", comment="active | inactive")
    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    @property
    def is_active(self):
        return self.status == "active"

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "level": self.level,
            "status": self.status,
            "version": self.version,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<CatalogBadge {self.title} {self.category}/{self.level} v{self.version}>"


class PromotionTemplate(db.Model):
    """
    Rule-set for one (path, from_level, to_level) transition.

    ``rules`` is a JSON list of ``{"category", "level", "count"}`` objects
    evaluated in list order by the eligibility validator.
    """

    __tablename__ = "promotion_templates"
    __table_args__ = (
        db.Index("ix_promotion_templates_path_levels", "path", "from_level", "to_level"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    path = db.Column(db.String(20), nullable=False, comment="technical | financial | management")
    from_level = db.Column(db.String(20), nullable=False)
    to_level = db.Column(db.String(20), nullable=False)
    rules = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def summary(self):
        return {"id": self.id, "name": self.name}

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "from_level": self.from_level,
            "to_level": self.to_level,
            "rules": list(self.rules or []),
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<PromotionTemplate {self.path}:{self.from_level}→{self.to_level}>"
