"""create billing tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "resources",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("owner_id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_resources_owner_id"), "resources", ["owner_id"], unique=False)

    op.create_table(
        "plans",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("resource_id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("base_price", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("billing_unit", sa.String(length=50), nullable=False, server_default="request"),
        sa.Column("period_unit", sa.String(length=20), nullable=False, server_default="month"),
        sa.Column("requests_per_minute", sa.Integer(), nullable=True),
        sa.Column("requests_per_month", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(["resource_id"], ["resources.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_plans_resource_id"), "plans", ["resource_id"], unique=False)

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("caller_id", sa.String(length=255), nullable=False),
        sa.Column("resource_id", sa.String(length=255), nullable=False),
        sa.Column("plan_id", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("settlement_ref", sa.String(length=255), nullable=True),
        sa.Column("payment_method", sa.String(length=30), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["resource_id"], ["resources.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["plan_id"], ["plans.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("settlement_ref"),
    )
    op.create_index(op.f("ix_subscriptions_caller_id"), "subscriptions", ["caller_id"], unique=False)
    op.create_index(
        op.f("ix_subscriptions_resource_id"), "subscriptions", ["resource_id"], unique=False
    )
    op.create_index(op.f("ix_subscriptions_plan_id"), "subscriptions", ["plan_id"], unique=False)
    op.create_index(op.f("ix_subscriptions_status"), "subscriptions", ["status"], unique=False)
    op.create_index(
        op.f("ix_subscriptions_period_end"), "subscriptions", ["period_end"], unique=False
    )
    op.create_index(
        "ix_subscriptions_caller_resource",
        "subscriptions",
        ["caller_id", "resource_id"],
        unique=False,
    )
    op.create_index(
        "uq_subscriptions_active_caller_resource",
        "subscriptions",
        ["caller_id", "resource_id"],
        unique=True,
        sqlite_where=sa.text("status = 'active'"),
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "usage_events",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("caller_id", sa.String(length=255), nullable=False),
        sa.Column("resource_id", sa.String(length=255), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("latency_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cost", sa.Numeric(precision=12, scale=5), nullable=False, server_default="0"),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error_kind", sa.String(length=50), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.CheckConstraint("quantity >= 0", name="ck_usage_events_quantity_non_negative"),
        sa.CheckConstraint("cost >= 0", name="ck_usage_events_cost_non_negative"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_usage_events_resource_id"), "usage_events", ["resource_id"], unique=False
    )
    op.create_index(
        "ix_usage_events_caller_resource_timestamp",
        "usage_events",
        ["caller_id", "resource_id", "timestamp"],
        unique=False,
    )
    op.create_index(
        "ix_usage_events_caller_timestamp",
        "usage_events",
        ["caller_id", "timestamp"],
        unique=False,
    )

    op.create_table(
        "earnings_ledgers",
        sa.Column("owner_id", sa.String(length=255), nullable=False),
        sa.Column(
            "lifetime_earnings", sa.Numeric(precision=14, scale=5), nullable=False, server_default="0"
        ),
        sa.Column(
            "current_period_earnings",
            sa.Numeric(precision=14, scale=5),
            nullable=False,
            server_default="0",
        ),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("owner_id"),
    )

    op.create_table(
        "earnings_credits",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("owner_id", sa.String(length=255), nullable=False),
        sa.Column("resource_id", sa.String(length=255), nullable=False),
        sa.Column("source", sa.String(length=20), nullable=False),
        sa.Column("usage_event_id", sa.String(length=36), nullable=True),
        sa.Column("settlement_ref", sa.String(length=255), nullable=True),
        sa.Column("gross_amount", sa.Numeric(precision=14, scale=5), nullable=False),
        sa.Column("amount", sa.Numeric(precision=14, scale=5), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(["owner_id"], ["earnings_ledgers.owner_id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("usage_event_id"),
        sa.UniqueConstraint("settlement_ref"),
    )
    op.create_index(
        op.f("ix_earnings_credits_owner_id"), "earnings_credits", ["owner_id"], unique=False
    )
    op.create_index(
        op.f("ix_earnings_credits_resource_id"), "earnings_credits", ["resource_id"], unique=False
    )

    op.create_table(
        "settled_payment_records",
        sa.Column("settlement_ref", sa.String(length=255), nullable=False),
        sa.Column("event_kind", sa.String(length=20), nullable=False),
        sa.Column("state", sa.String(length=20), nullable=False, server_default="processing"),
        sa.Column("subscription_id", sa.String(length=36), nullable=True),
        sa.Column("amount", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("currency", sa.String(length=10), nullable=True),
        sa.Column("error_code", sa.String(length=50), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("settlement_ref"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("resource_type", sa.String(length=50), nullable=False),
        sa.Column("resource_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("changes", sa.JSON(), nullable=False),
        sa.Column("actor_type", sa.String(length=50), nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_audit_logs_resource_type"), "audit_logs", ["resource_type"], unique=False
    )
    op.create_index(op.f("ix_audit_logs_resource_id"), "audit_logs", ["resource_id"], unique=False)
    op.create_index(op.f("ix_audit_logs_action"), "audit_logs", ["action"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_audit_logs_action"), table_name="audit_logs")
    op.drop_index(op.f("ix_audit_logs_resource_id"), table_name="audit_logs")
    op.drop_index(op.f("ix_audit_logs_resource_type"), table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("settled_payment_records")
    op.drop_index(op.f("ix_earnings_credits_resource_id"), table_name="earnings_credits")
    op.drop_index(op.f("ix_earnings_credits_owner_id"), table_name="earnings_credits")
    op.drop_table("earnings_credits")
    op.drop_table("earnings_ledgers")
    op.drop_index("ix_usage_events_caller_timestamp", table_name="usage_events")
    op.drop_index("ix_usage_events_caller_resource_timestamp", table_name="usage_events")
    op.drop_index(op.f("ix_usage_events_resource_id"), table_name="usage_events")
    op.drop_table("usage_events")
    op.drop_index("uq_subscriptions_active_caller_resource", table_name="subscriptions")
    op.drop_index("ix_subscriptions_caller_resource", table_name="subscriptions")
    op.drop_index(op.f("ix_subscriptions_period_end"), table_name="subscriptions")
    op.drop_index(op.f("ix_subscriptions_status"), table_name="subscriptions")
    op.drop_index(op.f("ix_subscriptions_plan_id"), table_name="subscriptions")
    op.drop_index(op.f("ix_subscriptions_resource_id"), table_name="subscriptions")
    op.drop_index(op.f("ix_subscriptions_caller_id"), table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_index(op.f("ix_plans_resource_id"), table_name="plans")
    op.drop_table("plans")
    op.drop_index(op.f("ix_resources_owner_id"), table_name="resources")
    op.drop_table("resources")
