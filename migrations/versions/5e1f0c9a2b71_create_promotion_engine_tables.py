"""create_promotion_engine_tables

Create catalog, badge application, promotion and reservation ledger tables.
The two partial unique indexes on promotion_badges.badge_application_id hold
the single-claim guarantee at the database level.

Revision ID: 5e1f0c9a2b71
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5e1f0c9a2b71"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "catalog_badges" not in existing_tables:
        op.create_table(
            "catalog_badges",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=20), nullable=False),
            sa.Column("level", sa.String(length=10), nullable=False),
            sa.Column("status", sa.String(length=10), nullable=False, server_default="active"),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.CheckConstraint("version >= 1", name="ck_catalog_badges_version"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_catalog_badges_category_level", "catalog_badges", ["category", "level"])

    if "promotion_templates" not in existing_tables:
        op.create_table(
            "promotion_templates",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("path", sa.String(length=20), nullable=False),
            sa.Column("from_level", sa.String(length=20), nullable=False),
            sa.Column("to_level", sa.String(length=20), nullable=False),
            sa.Column("rules", sa.JSON(), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_promotion_templates_path_levels",
            "promotion_templates",
            ["path", "from_level", "to_level"],
        )

    if "badge_applications" not in existing_tables:
        op.create_table(
            "badge_applications",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("applicant_id", sa.String(length=36), nullable=False),
            sa.Column("catalog_badge_id", sa.String(length=36), nullable=False),
            sa.Column("catalog_badge_version", sa.Integer(), nullable=False),
            sa.Column("date_of_application", sa.Date(), nullable=False),
            sa.Column("date_of_fulfillment", sa.Date(), nullable=True),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("reviewed_by", sa.String(length=36), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("review_reason", sa.Text(), nullable=True),
            sa.CheckConstraint(
                "date_of_fulfillment IS NULL OR date_of_fulfillment >= date_of_application",
                name="ck_badge_applications_fulfillment_date",
            ),
            sa.ForeignKeyConstraint(["catalog_badge_id"], ["catalog_badges.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_badge_applications_applicant_id", "badge_applications", ["applicant_id"])
        op.create_index("ix_badge_applications_catalog_badge_id", "badge_applications", ["catalog_badge_id"])
        op.create_index(
            "ix_badge_applications_applicant_status",
            "badge_applications",
            ["applicant_id", "status"],
        )

    if "promotions" not in existing_tables:
        op.create_table(
            "promotions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("template_id", sa.String(length=36), nullable=False),
            sa.Column("created_by", sa.String(length=36), nullable=False),
            sa.Column("path", sa.String(length=20), nullable=False),
            sa.Column("from_level", sa.String(length=20), nullable=False),
            sa.Column("to_level", sa.String(length=20), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("approved_by", sa.String(length=36), nullable=True),
            sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("rejected_by", sa.String(length=36), nullable=True),
            sa.Column("reject_reason", sa.Text(), nullable=True),
            sa.Column("executed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.CheckConstraint("NOT executed OR status = 'approved'", name="ck_promotions_executed_approved"),
            sa.ForeignKeyConstraint(["template_id"], ["promotion_templates.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_promotions_template_id", "promotions", ["template_id"])
        op.create_index("ix_promotions_creator_status", "promotions", ["created_by", "status"])

    if "promotion_badges" not in existing_tables:
        op.create_table(
            "promotion_badges",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("promotion_id", sa.String(length=36), nullable=False),
            sa.Column("badge_application_id", sa.String(length=36), nullable=False),
            sa.Column("assigned_by", sa.String(length=36), nullable=False),
            sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("consumed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.ForeignKeyConstraint(["promotion_id"], ["promotions.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(
                ["badge_application_id"], ["badge_applications.id"], ondelete="RESTRICT",
            ),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "promotion_id", "badge_application_id",
                name="uq_promotion_badges_promotion_application",
            ),
        )
        op.create_index("ix_promotion_badges_promotion_id", "promotion_badges", ["promotion_id"])
        op.create_index(
            "ux_promotion_badges_unconsumed",
            "promotion_badges",
            ["badge_application_id"],
            unique=True,
            postgresql_where=sa.text("consumed = false"),
            sqlite_where=sa.text("consumed = 0"),
        )
        op.create_index(
            "ux_promotion_badges_consumed",
            "promotion_badges",
            ["badge_application_id"],
            unique=True,
            postgresql_where=sa.text("consumed = true"),
            sqlite_where=sa.text("consumed = 1"),
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "promotion_badges" in existing_tables:
        op.drop_index("ux_promotion_badges_consumed", table_name="promotion_badges")
        op.drop_index("ux_promotion_badges_unconsumed", table_name="promotion_badges")
        op.drop_index("ix_promotion_badges_promotion_id", table_name="promotion_badges")
        op.drop_table("promotion_badges")

    if "promotions" in existing_tables:
        op.drop_index("ix_promotions_creator_status", table_name="promotions")
        op.drop_index("ix_promotions_template_id", table_name="promotions")
        op.drop_table("promotions")

    if "badge_applications" in existing_tables:
        op.drop_index("ix_badge_applications_applicant_status", table_name="badge_applications")
        op.drop_index("ix_badge_applications_catalog_badge_id", table_name="badge_applications")
        op.drop_index("ix_badge_applications_applicant_id", table_name="badge_applications")
        op.drop_table("badge_applications")

    if "promotion_templates" in existing_tables:
        op.drop_index("ix_promotion_templates_path_levels", table_name="promotion_templates")
        op.drop_table("promotion_templates")

    if "catalog_badges" in existing_tables:
        op.drop_index("ix_catalog_badges_category_level", table_name="catalog_badges")
        op.drop_table("catalog_badges")
