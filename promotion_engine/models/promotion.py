"""
Promotion Engine
Promotion domain models.

Models:
    - Promotion:       an employee's application for one level transition
    - PromotionBadge:  reservation binding one badge application to one promotion

Architecture:
    PromotionTemplate ──1:N──▶ Promotion ──1:N──▶ PromotionBadge ◀──N:1── BadgeApplication

Lifecycle states:
    Promotion:       draft → submitted → approved | rejected
    PromotionBadge:  live (consumed=false) → consumed (approve) | deleted (remove/delete/reject)

Reservation uniqueness is enforced by the database, not by a prior read:
    ux_promotion_badges_unconsumed  one live reservation per badge application
    ux_promotion_badges_consumed    one consumed reservation per badge application, ever
"""

from promotion_engine.models import _iso, _utcnow, _uuid, db

# ── Constants ────────────────────────────────────────────────────────────────

PROMOTION_STATUSES = {"draft", "submitted", "approved", "rejected"}

# ── Lifecycle Transition Guards ──────────────────────────────────────────────

PROMOTION_TRANSITIONS = {
    "submit":  {"from": ["draft"], "to": "submitted"},
    "approve": {"from": ["submitted"], "to": "approved"},
    "reject":  {"from": ["submitted"], "to": "rejected"},
}


class Promotion(db.Model):
    """
    Promotion application.

    path / from_level / to_level are copied from the template at creation so
    later template edits never change an existing promotion's basis.
    ``executed`` is true only for approved promotions.
    """

    __tablename__ = "promotions"
    __table_args__ = (
        db.CheckConstraint(
            "NOT executed OR status = 'approved'",
            name="ck_promotions_executed_approved",
        ),
        db.Index("ix_promotions_creator_status", "created_by", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    template_id = db.Column(
        db.String(36),
        db.ForeignKey("promotion_templates.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    created_by = db.Column(db.String(36), nullable=False, comment="FK → user")
    path = db.Column(db.String(20), nullable=False)
    from_level = db.Column(db.String(20), nullable=False)
    to_level = db.Column(db.String(20), nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default="draft",
        comment="draft | submitted | approved | rejected",
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by = db.Column(db.String(36), nullable=True, comment="FK → user")
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by = db.Column(db.String(36), nullable=True, comment="FK → user")
    reject_reason = db.Column(db.Text, nullable=True)
    executed = db.Column(db.Boolean, nullable=False, default=False)

    # ── Relationships ────────────────────────────────────────────────────
    template = db.relationship("PromotionTemplate", uselist=False)
    reservations = db.relationship(
        "PromotionBadge",
        back_populates="promotion",
        cascade="all, delete-orphan",
        order_by="PromotionBadge.assigned_at",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "template_id": self.template_id,
            "created_by": self.created_by,
            "path": self.path,
            "from_level": self.from_level,
            "to_level": self.to_level,
            "status": self.status,
            "created_at": _iso(self.created_at),
            "submitted_at": _iso(self.submitted_at),
            "approved_at": _iso(self.approved_at),
            "approved_by": self.approved_by,
            "rejected_at": _iso(self.rejected_at),
            "rejected_by": self.rejected_by,
            "reject_reason": self.reject_reason,
            "executed": self.executed,
        }

    def __repr__(self):
        return f"<Promotion {self.id[:8]} {self.path}:{self.from_level}→{self.to_level} [{self.status}]>"


class PromotionBadge(db.Model):
    """
    Reservation of a badge application by a promotion.

    Rows are deleted when released; ``consumed`` flips to true on approval and
    is never reverted.
    """

    __tablename__ = "promotion_badges"
    __table_args__ = (
        db.UniqueConstraint(
            "promotion_id", "badge_application_id",
            name="uq_promotion_badges_promotion_application",
        ),
        db.Index(
            "ux_promotion_badges_unconsumed",
            "badge_application_id",
            unique=True,
            sqlite_where=db.text("consumed = 0"),
            postgresql_where=db.text("consumed = false"),
        ),
        db.Index(
            "ux_promotion_badges_consumed",
            "badge_application_id",
            unique=True,
            sqlite_where=db.text("consumed = 1"),
            postgresql_where=db.text("consumed = true"),
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    promotion_id = db.Column(
        db.String(36),
        db.ForeignKey("promotions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    badge_application_id = db.Column(
        db.String(36),
        db.ForeignKey("badge_applications.id", ondelete="RESTRICT"),
        nullable=False,
    )
    assigned_by = db.Column(db.String(36), nullable=False, comment="FK → user")
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    consumed = db.Column(db.Boolean, nullable=False, default=False)

    promotion = db.relationship("Promotion", back_populates="reservations")
    badge_application = db.relationship("BadgeApplication", uselist=False, lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "promotion_id": self.promotion_id,
            "badge_application_id": self.badge_application_id,
            "assigned_by": self.assigned_by,
            "assigned_at": _iso(self.assigned_at),
            "consumed": self.consumed,
        }

    def __repr__(self):
        state = "consumed" if self.consumed else "live"
        return f"<PromotionBadge {self.badge_application_id[:8]} → {self.promotion_id[:8]} [{state}]>"
