"""create subscription, payment and local admin billing tables

Revision ID: 3f1a9c2d7b44
Revises:
Create Date: 2025-12-24 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f1a9c2d7b44"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("tier", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="trial"),
        sa.Column("billing_cycle", sa.String(length=16), nullable=False, server_default="monthly"),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("trial_ends_at", sa.DateTime(), nullable=True),
        sa.Column("current_period_start", sa.DateTime(), nullable=True),
        sa.Column("current_period_end", sa.DateTime(), nullable=True),
        sa.Column("next_billing_date", sa.DateTime(), nullable=True),
        sa.Column("grace_period_start", sa.DateTime(), nullable=True),
        sa.Column("grace_period_end", sa.DateTime(), nullable=True),
        sa.Column("failed_payment_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_failed_at", sa.DateTime(), nullable=True),
        sa.Column("soft_locked_at", sa.DateTime(), nullable=True),
        sa.Column("soft_lock_reason", sa.String(length=64), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("billing_contact_name", sa.String(length=255), nullable=True),
        sa.Column("billing_email", sa.String(length=255), nullable=True),
        sa.Column("billing_phone", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_subscriptions_id"), "subscriptions", ["id"], unique=False)
    op.create_index(op.f("ix_subscriptions_tenant_id"), "subscriptions", ["tenant_id"], unique=False)
    op.create_index(
        "uq_subscriptions_tenant_open",
        "subscriptions",
        ["tenant_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled'"),
    )
    op.create_index(
        "ix_subscriptions_status_period_end", "subscriptions", ["status", "current_period_end"], unique=False
    )
    op.create_index(
        "ix_subscriptions_status_grace_end", "subscriptions", ["status", "grace_period_end"], unique=False
    )

    op.create_table(
        "local_admins",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("whatsapp_number", sa.String(length=32), nullable=True),
        sa.Column("max_capacity", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("active_assignment_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("availability_status", sa.String(length=16), nullable=False, server_default="available"),
        sa.Column("total_earnings", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("current_month", sa.String(length=7), nullable=True),
        sa.Column("current_month_earnings", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("pending_transfers", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("last_payment_date", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("active_assignment_count >= 0", name="ck_local_admins_count_non_negative"),
        sa.CheckConstraint("active_assignment_count <= max_capacity", name="ck_local_admins_within_capacity"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id"),
    )
    op.create_index(op.f("ix_local_admins_id"), "local_admins", ["id"], unique=False)

    op.create_table(
        "local_admin_monthly_earnings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("local_admin_id", sa.Integer(), nullable=False),
        sa.Column("month", sa.String(length=7), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["local_admin_id"], ["local_admins.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("local_admin_id", "month", name="uq_local_admin_monthly_earnings_month"),
    )
    op.create_index(
        op.f("ix_local_admin_monthly_earnings_id"), "local_admin_monthly_earnings", ["id"], unique=False
    )
    op.create_index(
        op.f("ix_local_admin_monthly_earnings_local_admin_id"),
        "local_admin_monthly_earnings",
        ["local_admin_id"],
        unique=False,
    )

    op.create_table(
        "local_admin_assignments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("local_admin_id", sa.Integer(), nullable=False),
        sa.Column("assigned_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.Column("unassigned_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["local_admin_id"], ["local_admins.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_local_admin_assignments_id"), "local_admin_assignments", ["id"], unique=False)
    op.create_index(
        "uq_local_admin_assignments_tenant_active",
        "local_admin_assignments",
        ["tenant_id"],
        unique=True,
        postgresql_where=sa.text("unassigned_at IS NULL"),
    )
    op.create_index(
        "ix_local_admin_assignments_admin_active",
        "local_admin_assignments",
        ["local_admin_id", "unassigned_at"],
        unique=False,
    )

    op.create_table(
        "payment_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("subscription_id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("payment_method", sa.String(length=16), nullable=False, server_default="toyyibpay"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("external_transaction_id", sa.String(length=128), nullable=True),
        sa.Column("gateway_reference", sa.String(length=128), nullable=True),
        sa.Column("split_billing_details", sa.JSON(), nullable=True),
        sa.Column("credited_local_admin_id", sa.Integer(), nullable=True),
        sa.Column("credited_at", sa.DateTime(), nullable=True),
        sa.Column("billing_period_start", sa.DateTime(), nullable=True),
        sa.Column("billing_period_end", sa.DateTime(), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("failed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["subscription_id"], ["subscriptions.id"]),
        sa.ForeignKeyConstraint(["credited_local_admin_id"], ["local_admins.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("external_transaction_id"),
    )
    op.create_index(op.f("ix_payment_transactions_id"), "payment_transactions", ["id"], unique=False)
    op.create_index(
        op.f("ix_payment_transactions_subscription_id"), "payment_transactions", ["subscription_id"], unique=False
    )
    op.create_index(op.f("ix_payment_transactions_tenant_id"), "payment_transactions", ["tenant_id"], unique=False)
    op.create_index(
        op.f("ix_payment_transactions_gateway_reference"), "payment_transactions", ["gateway_reference"], unique=False
    )
    op.create_index(
        op.f("ix_payment_transactions_credited_local_admin_id"),
        "payment_transactions",
        ["credited_local_admin_id"],
        unique=False,
    )
    op.create_index(
        "ix_payment_transactions_subscription_status",
        "payment_transactions",
        ["subscription_id", "status"],
        unique=False,
    )
    op.create_index(
        "ix_payment_transactions_tenant_created", "payment_transactions", ["tenant_id", "created_at"], unique=False
    )

    op.create_table(
        "billing_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("actor_id", sa.String(length=64), nullable=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=True),
        sa.Column("category", sa.String(length=64), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_billing_events_id"), "billing_events", ["id"], unique=False)
    op.create_index("ix_billing_events_tenant_category", "billing_events", ["tenant_id", "category"], unique=False)
    op.create_index("ix_billing_events_tenant_timestamp", "billing_events", ["tenant_id", "timestamp"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_billing_events_tenant_timestamp", table_name="billing_events")
    op.drop_index("ix_billing_events_tenant_category", table_name="billing_events")
    op.drop_index(op.f("ix_billing_events_id"), table_name="billing_events")
    op.drop_table("billing_events")

    op.drop_index("ix_payment_transactions_tenant_created", table_name="payment_transactions")
    op.drop_index("ix_payment_transactions_subscription_status", table_name="payment_transactions")
    op.drop_index(op.f("ix_payment_transactions_credited_local_admin_id"), table_name="payment_transactions")
    op.drop_index(op.f("ix_payment_transactions_gateway_reference"), table_name="payment_transactions")
    op.drop_index(op.f("ix_payment_transactions_tenant_id"), table_name="payment_transactions")
    op.drop_index(op.f("ix_payment_transactions_subscription_id"), table_name="payment_transactions")
    op.drop_index(op.f("ix_payment_transactions_id"), table_name="payment_transactions")
    op.drop_table("payment_transactions")

    op.drop_index("ix_local_admin_assignments_admin_active", table_name="local_admin_assignments")
    op.drop_index("uq_local_admin_assignments_tenant_active", table_name="local_admin_assignments")
    op.drop_index(op.f("ix_local_admin_assignments_id"), table_name="local_admin_assignments")
    op.drop_table("local_admin_assignments")

    op.drop_index(
        op.f("ix_local_admin_monthly_earnings_local_admin_id"), table_name="local_admin_monthly_earnings"
    )
    op.drop_index(op.f("ix_local_admin_monthly_earnings_id"), table_name="local_admin_monthly_earnings")
    op.drop_table("local_admin_monthly_earnings")

    op.drop_index(op.f("ix_local_admins_id"), table_name="local_admins")
    op.drop_table("local_admins")

    op.drop_index("ix_subscriptions_status_grace_end", table_name="subscriptions")
    op.drop_index("ix_subscriptions_status_period_end", table_name="subscriptions")
    op.drop_index(op.f("ix_subscriptions_tenant_id"), table_name="subscriptions")
    op.drop_index(op.f("ix_subscriptions_id"), table_name="subscriptions")
    op.drop_table("subscriptions")
