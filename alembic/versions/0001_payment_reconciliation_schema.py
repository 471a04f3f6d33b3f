"""Payment reconciliation and subscription lifecycle schema.

Revision ID: 0001_payment_reconciliation
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_payment_reconciliation"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    invoice_status = sa.Enum("pending", "paid", "cancelled", "refunded", name="invoicestatus")
    provider_type = sa.Enum("mobilepay", "revolut", name="paymentprovidertype")
    transaction_status = sa.Enum("pending", "paid", "failed", "refunded", name="transactionstatus")
    sync_entity = sa.Enum("invoice", "subscription", "sale", name="syncentity")
    sync_step_status = sa.Enum(
        "pending", "applied", "skipped", "failed", "superseded", name="syncstepstatus"
    )
    subscription_status = sa.Enum("active", "expired", "cancelled", "renewed", name="subscriptionstatus")
    sale_status = sa.Enum("pending", "completed", "cancelled", name="salestatus")
    sale_payment_status = sa.Enum("pending", "received", name="salepaymentstatus")
    error_level = sa.Enum("warning", "error", name="errorlevel")

    op.create_table(
        "customers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(160), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_customers_email", "customers", ["email"])

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("product_name", sa.String(160), nullable=False),
        sa.Column("status", subscription_status, nullable=False, server_default="active"),
        sa.Column("price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="DKK"),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reminder_10_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reminder_5_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("provider_agreement_id", sa.String(160), nullable=True),
        sa.Column("payment_method", sa.String(40), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_subscriptions_provider_agreement_id", "subscriptions", ["provider_agreement_id"]
    )

    op.create_table(
        "sales",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("reference", sa.String(160), nullable=False, unique=True),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id"), nullable=True),
        sa.Column("status", sale_status, nullable=False, server_default="pending"),
        sa.Column("payment_status", sale_payment_status, nullable=False, server_default="pending"),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="DKK"),
        *_timestamps(),
    )

    op.create_table(
        "invoices",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("subscription_id", sa.Uuid(), sa.ForeignKey("subscriptions.id"), nullable=True),
        sa.Column("invoice_number", sa.String(80), nullable=True),
        sa.Column("status", invoice_status, nullable=False, server_default="pending"),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="DKK"),
        sa.Column("external_payment_id", sa.String(160), nullable=True),
        sa.Column("due_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_invoices_external_payment_id", "invoices", ["external_payment_id"])

    op.create_table(
        "payment_transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("provider", provider_type, nullable=False),
        sa.Column("transaction_id", sa.String(160), nullable=True),
        sa.Column("event_type", sa.String(120), nullable=False),
        sa.Column("outcome", sa.String(40), nullable=False),
        sa.Column("idempotency_key", sa.String(255), nullable=False),
        sa.Column("status", transaction_status, nullable=False, server_default="pending"),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="DKK"),
        sa.Column("payment_method", sa.String(40), nullable=False),
        sa.Column("invoice_id", sa.Uuid(), sa.ForeignKey("invoices.id"), nullable=True),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id"), nullable=True),
        sa.Column("subscription_id", sa.Uuid(), sa.ForeignKey("subscriptions.id"), nullable=True),
        sa.Column("sale_id", sa.Uuid(), sa.ForeignKey("sales.id"), nullable=True),
        sa.Column("agreement_id", sa.String(160), nullable=True),
        sa.Column("signature_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("provider_response", sa.JSON(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint(
            "provider", "idempotency_key", name="uq_payment_transactions_provider_idempotency"
        ),
    )
    op.create_index(
        "ix_payment_transactions_transaction_id", "payment_transactions", ["transaction_id"]
    )

    op.create_table(
        "payment_sync_steps",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "transaction_id", sa.Uuid(), sa.ForeignKey("payment_transactions.id"), nullable=False
        ),
        sa.Column("entity", sync_entity, nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("status", sync_step_status, nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint(
            "transaction_id", "entity", name="uq_payment_sync_steps_transaction_entity"
        ),
    )
    op.create_index("ix_payment_sync_steps_status", "payment_sync_steps", ["status"])

    op.create_table(
        "email_templates",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("trigger", sa.String(120), nullable=False, unique=True),
        sa.Column("subject", sa.String(200), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("action", sa.String(120), nullable=False),
        sa.Column("entity_type", sa.String(80), nullable=False),
        sa.Column("entity_id", sa.String(120), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_entity_id", "activity_logs", ["entity_id"])

    op.create_table(
        "error_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("level", error_level, nullable=False, server_default="error"),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("function_name", sa.String(120), nullable=False),
        sa.Column("context", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("error_logs")
    op.drop_index("ix_activity_logs_entity_id", table_name="activity_logs")
    op.drop_index("ix_activity_logs_action", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_table("email_templates")
    op.drop_index("ix_payment_sync_steps_status", table_name="payment_sync_steps")
    op.drop_table("payment_sync_steps")
    op.drop_index("ix_payment_transactions_transaction_id", table_name="payment_transactions")
    op.drop_table("payment_transactions")
    op.drop_index("ix_invoices_external_payment_id", table_name="invoices")
    op.drop_table("invoices")
    op.drop_table("sales")
    op.drop_index("ix_subscriptions_provider_agreement_id", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_index("ix_customers_email", table_name="customers")
    op.drop_table("customers")
    bind = op.get_bind()
    for name in (
        "errorlevel",
        "salepaymentstatus",
        "salestatus",
        "subscriptionstatus",
        "syncstepstatus",
        "syncentity",
        "transactionstatus",
        "paymentprovidertype",
        "invoicestatus",
    ):
        sa.Enum(name=name).drop(bind, checkfirst=True)
