"""init schema (offices, contracts, installments, items, payments, notification ledger)

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _insp():
    return inspect(op.get_bind())


def _has_table(name: str) -> bool:
    return name in _insp().get_table_names()


def upgrade() -> None:
    # -----------------------------
    # offices / users / memberships / audit
    # -----------------------------
    if not _has_table("organizations"):
        op.create_table(
            "organizations",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("slug", sa.String(length=80), nullable=False),
            sa.Column("name", sa.String(length=160), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_organizations_slug", "organizations", ["slug"], unique=True)

    if not _has_table("app_users"):
        op.create_table(
            "app_users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("display_name", sa.String(length=160), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_app_users_email", "app_users", ["email"], unique=True)

    if not _has_table("org_memberships"):
        op.create_table(
            "org_memberships",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default=sa.text("'owner'")),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.UniqueConstraint("org_id", "user_id", name="uq_org_memberships_org_user"),
        )
        op.create_index("ix_org_memberships_org_id", "org_memberships", ["org_id"])
        op.create_index("ix_org_memberships_user_id", "org_memberships", ["user_id"])

    if not _has_table("audit_events"):
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
            sa.Column("action", sa.String(length=80), nullable=False),
            sa.Column("entity_type", sa.String(length=80), nullable=False),
            sa.Column("entity_id", sa.String(length=80), nullable=False),
            sa.Column("before_json", sa.Text(), nullable=True),
            sa.Column("after_json", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_audit_events_org_id", "audit_events", ["org_id"])

    # -----------------------------
    # contracts
    # -----------------------------
    if not _has_table("contracts"):
        op.create_table(
            "contracts",
            sa.Column("id", sa.String(length=64), primary_key=True),
            sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
            sa.Column("property_title", sa.String(length=200), nullable=False, server_default=""),
            sa.Column("property_address", sa.String(length=255), nullable=False, server_default=""),
            sa.Column("tenant_json", sa.Text(), nullable=False, server_default=sa.text("'{}'")),
            sa.Column("owner_json", sa.Text(), nullable=False, server_default=sa.text("'{}'")),
            sa.Column("guarantors_json", sa.Text(), nullable=False, server_default=sa.text("'[]'")),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("due_day", sa.Integer(), nullable=True),
            sa.Column("rent_amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("update_rule_type", sa.String(length=20), nullable=False, server_default=sa.text("'MANUAL'")),
            sa.Column("update_rule_period_months", sa.Integer(), nullable=False, server_default="12"),
            sa.Column("deposit_amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("guarantee_type", sa.String(length=40), nullable=False, server_default=sa.text("'OTHER'")),
            sa.Column("pdf_json", sa.Text(), nullable=True),
            sa.Column("notification_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("notification_emails_json", sa.Text(), nullable=False, server_default=sa.text("'[]'")),
            sa.Column("notification_whatsapps_json", sa.Text(), nullable=False, server_default=sa.text("'[]'")),
            sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'active'")),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_contracts_org_id", "contracts", ["org_id"])

    # -----------------------------
    # installments + items
    # -----------------------------
    if not _has_table("installments"):
        op.create_table(
            "installments",
            sa.Column("id", sa.String(length=96), primary_key=True),
            sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
            sa.Column("contract_id", sa.String(length=64), sa.ForeignKey("contracts.id"), nullable=False),
            sa.Column("period", sa.String(length=7), nullable=False),
            sa.Column("due_date", sa.Date(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("total", sa.Float(), nullable=False, server_default="0"),
            sa.Column("paid", sa.Float(), nullable=False, server_default="0"),
            sa.Column("due", sa.Float(), nullable=False, server_default="0"),
            sa.Column("notification_override", sa.Boolean(), nullable=True),
            sa.Column("has_unverified_payments", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("agreement_note", sa.Text(), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.UniqueConstraint("org_id", "contract_id", "period", name="uq_installments_org_contract_period"),
        )
        op.create_index("ix_installments_org_id", "installments", ["org_id"])
        op.create_index("ix_installments_contract_id", "installments", ["contract_id"])
        op.create_index("ix_installments_status", "installments", ["status"])
        op.create_index("ix_installments_org_status_due", "installments", ["org_id", "status", "due_date"])

    if not _has_table("installment_items"):
        op.create_table(
            "installment_items",
            sa.Column("id", sa.String(length=64), primary_key=True),
            sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
            sa.Column(
                "installment_id",
                sa.String(length=96),
                sa.ForeignKey("installments.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("type", sa.String(length=20), nullable=False),
            sa.Column("label", sa.String(length=200), nullable=False),
            sa.Column("amount", sa.Float(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_installment_items_org_id", "installment_items", ["org_id"])
        op.create_index("ix_installment_items_installment_id", "installment_items", ["installment_id"])

    # -----------------------------
    # payments
    # -----------------------------
    if not _has_table("payments"):
        op.create_table(
            "payments",
            sa.Column("id", sa.String(length=64), primary_key=True),
            sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
            sa.Column("contract_id", sa.String(length=64), sa.ForeignKey("contracts.id"), nullable=False),
            sa.Column("installment_id", sa.String(length=96), sa.ForeignKey("installments.id"), nullable=False),
            sa.Column("amount", sa.Float(), nullable=False),
            sa.Column("paid_at", sa.DateTime(), nullable=False),
            sa.Column("method", sa.String(length=20), nullable=False, server_default=sa.text("'other'")),
            sa.Column("collected_by", sa.String(length=200), nullable=True),
            sa.Column("without_receipt", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("receipt_json", sa.Text(), nullable=True),
            sa.Column("note", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_payments_org_id", "payments", ["org_id"])
        op.create_index("ix_payments_installment_id", "payments", ["installment_id"])
        op.create_index("ix_payments_org_contract", "payments", ["org_id", "contract_id"])

    # -----------------------------
    # notification sent ledger
    # -----------------------------
    if not _has_table("notification_logs"):
        op.create_table(
            "notification_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
            sa.Column("installment_id", sa.String(length=96), sa.ForeignKey("installments.id"), nullable=False),
            sa.Column("notification_type", sa.String(length=30), nullable=False),
            sa.Column("channel", sa.String(length=20), nullable=False),
            sa.Column("audience", sa.String(length=20), nullable=False),
            sa.Column("recipient", sa.String(length=200), nullable=False),
            sa.Column("day_key", sa.String(length=10), nullable=False),
            sa.Column("sent_by_user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.UniqueConstraint(
                "installment_id",
                "notification_type",
                "channel",
                "audience",
                "recipient",
                "day_key",
                name="uq_notification_logs_dedupe",
            ),
        )
        op.create_index("ix_notification_logs_org_id", "notification_logs", ["org_id"])
        op.create_index("ix_notification_logs_installment_id", "notification_logs", ["installment_id"])


def downgrade() -> None:
    for name in (
        "notification_logs",
        "payments",
        "installment_items",
        "installments",
        "contracts",
        "audit_events",
        "org_memberships",
        "app_users",
        "organizations",
    ):
        if _has_table(name):
            op.drop_table(name)
