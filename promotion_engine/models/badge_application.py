"""
Promotion Engine
Badge application domain model.

Models:
    - BadgeApplication: one employee's claim to a catalog achievement

Lifecycle:
    draft → submitted → accepted | rejected
    accepted → used_in_promotion → accepted   (reservation ledger only)
"""

from promotion_engine.models import _iso, _utcnow, _uuid, db

# ── Constants ────────────────────────────────────────────────────────────────

BADGE_APPLICATION_STATUSES = {
    "draft", "submitted", "accepted", "rejected", "used_in_promotion",
}

# ── Lifecycle Transition Guards ──────────────────────────────────────────────
#
# ``reserve`` / ``release`` are driven by the reservation ledger when a
# promotion is submitted, rejected or deleted; nothing else may apply them.

BADGE_APPLICATION_TRANSITIONS = {
    "submit":  {"from": ["draft"], "to": "submitted"},
    "accept":  {"from": ["submitted"], "to": "accepted"},
    "reject":  {"from": ["submitted"], "to": "rejected"},
    "reserve": {"from": ["accepted"], "to": "used_in_promotion"},
    "release": {"from": ["used_in_promotion"], "to": "accepted"},
}

EDITABLE_FIELDS = ("date_of_application", "date_of_fulfillment", "reason")


class BadgeApplication(db.Model):
    """
    An applicant's claim to one catalog badge.

    Business rules:
    - catalog_badge_version is captured at creation and never changes.
    - date_of_fulfillment, when set, is never before date_of_application.
    - Only drafts are editable; every later change goes through a transition.
    """

    __tablename__ = "badge_applications"
    __table_args__ = (
        db.CheckConstraint(
            "date_of_fulfillment IS NULL OR date_of_fulfillment >= date_of_application",
            name="ck_badge_applications_fulfillment_date",
        ),
        db.Index("ix_badge_applications_applicant_status", "applicant_id", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    applicant_id = db.Column(db.String(36), nullable=False, index=True, comment="FK → user")
    catalog_badge_id = db.Column(
        db.String(36),
        db.ForeignKey("catalog_badges.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    catalog_badge_version = db.Column(
        db.Integer, nullable=False,
        comment="Catalog badge version at creation time — historical integrity",
    )
    date_of_application = db.Column(db.Date, nullable=False)
    date_of_fulfillment = db.Column(db.Date, nullable=True)
    reason = db.Column(db.Text, nullable=True, comment="Applicant justification")
    status = db.Column(
        db.String(20), nullable=False, default="draft",
        comment="draft | submitted | accepted | rejected | used_in_promotion",
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reviewed_by = db.Column(db.String(36), nullable=True, comment="FK → user")
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    review_reason = db.Column(db.Text, nullable=True)

    catalog_badge = db.relationship("CatalogBadge", uselist=False, lazy="joined")

    def to_dict(self, include_badge=True):
        result = {
            "id": self.id,
            "applicant_id": self.applicant_id,
            "catalog_badge_id": self.catalog_badge_id,
            "catalog_badge_version": self.catalog_badge_version,
            "date_of_application": _iso(self.date_of_application),
            "date_of_fulfillment": _iso(self.date_of_fulfillment),
            "reason": self.reason,
            "status": self.status,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "submitted_at": _iso(self.submitted_at),
            "reviewed_by": self.reviewed_by,
            "reviewed_at": _iso(self.reviewed_at),
            "review_reason": self.review_reason,
        }
        if include_badge and self.catalog_badge is not None:
            badge = self.catalog_badge
            result["catalog_badge"] = {
                "id": badge.id,
                "title": badge.title,
                "category": badge.category,
                "level": badge.level,
            }
        return result

    def __repr__(self):
        return f"<BadgeApplication {self.id[:8]} [{self.status}]>"
