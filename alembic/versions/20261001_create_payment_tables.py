"""Create users, orders, payments, api keys, audit and webhook tables.

Revision ID: 20261001_payments
Revises:
Create Date: 2026-10-01 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261001_payments"
down_revision = None
branch_labels = None
depends_on = None

ORDER_STATUS = ("pending", "processing", "shipped", "delivered", "cancelled")
ORDER_PAYMENT_STATUS = ("pending", "paid", "failed", "refunded")
PAYMENT_STATUS = ("created", "authorized", "captured", "failed", "refunded", "partial_refund")
REFUND_STATUS = ("none", "pending", "processed", "failed")
API_SCOPE = ("customer", "admin")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    order_status = sa.Enum(*ORDER_STATUS, name="orderstatus")
    order_payment_status = sa.Enum(*ORDER_PAYMENT_STATUS, name="orderpaymentstatus")
    payment_status = sa.Enum(*PAYMENT_STATUS, name="paymentstatus")
    refund_status = sa.Enum(*REFUND_STATUS, name="refundstatus")
    api_scope = sa.Enum(*API_SCOPE, name="apiscope")

    op.create_table(
        "users",
        *_timestamps(),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "orders",
        *_timestamps(),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("total_amount", sa.Numeric(18, 2, asdecimal=True), nullable=False),
        sa.Column("status", order_status, nullable=False, server_default="pending"),
        sa.Column("payment_status", order_payment_status, nullable=False, server_default="pending"),
        sa.Column("gateway_order_id", sa.String(length=64), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("total_amount >= 0", name="ck_order_non_negative_total"),
    )
    op.create_index("ix_orders_user_id", "orders", ["user_id"], unique=False)
    op.create_index("ix_orders_user_created", "orders", ["user_id", "created_at"], unique=False)
    op.create_index("ix_orders_status", "orders", ["status"], unique=False)

    op.create_table(
        "payments",
        *_timestamps(),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("gateway_order_id", sa.String(length=64), nullable=False),
        sa.Column("gateway_payment_id", sa.String(length=64), nullable=True),
        sa.Column("gateway_signature", sa.String(length=256), nullable=True),
        sa.Column("amount", sa.Numeric(18, 2, asdecimal=True), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="INR"),
        sa.Column("status", payment_status, nullable=False, server_default="created"),
        sa.Column("payment_method", sa.String(length=32), nullable=True),
        sa.Column("payment_email", sa.String(length=255), nullable=True),
        sa.Column("payment_contact", sa.String(length=32), nullable=True),
        sa.Column("refund_id", sa.String(length=64), nullable=True),
        sa.Column("refund_amount", sa.Numeric(18, 2, asdecimal=True), nullable=False, server_default="0"),
        sa.Column("refund_status", refund_status, nullable=False, server_default="none"),
        sa.Column("error_code", sa.String(length=64), nullable=True),
        sa.Column("error_description", sa.String(length=512), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.CheckConstraint("amount >= 0", name="ck_payment_non_negative_amount"),
        sa.CheckConstraint("refund_amount >= 0", name="ck_payment_non_negative_refund"),
        sa.UniqueConstraint("gateway_order_id", name="uq_payments_gateway_order_id"),
    )
    op.create_index("ix_payments_order_id", "payments", ["order_id"], unique=False)
    op.create_index("ix_payments_user_id", "payments", ["user_id"], unique=False)
    op.create_index("ix_payments_gateway_payment_id", "payments", ["gateway_payment_id"], unique=False)
    op.create_index("ix_payments_user_created", "payments", ["user_id", "created_at"], unique=False)
    op.create_index("ix_payments_status_created", "payments", ["status", "created_at"], unique=False)
    op.create_index("ix_payments_order_status", "payments", ["order_id", "status"], unique=False)

    op.create_table(
        "api_keys",
        *_timestamps(),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("prefix", sa.String(length=32), nullable=False),
        sa.Column("key_hash", sa.String(length=128), nullable=False),
        sa.Column("scope", api_scope, nullable=False, server_default="customer"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("name", name="uq_api_keys_name"),
        sa.UniqueConstraint("key_hash", name="uq_api_keys_key_hash"),
    )
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"], unique=False)

    op.create_table(
        "audit_logs",
        *_timestamps(),
        sa.Column("actor", sa.String(length=100), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("data_json", sa.JSON(), nullable=False),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity", "entity_id"], unique=False)

    op.create_table(
        "gateway_webhook_events",
        *_timestamps(),
        sa.Column("event_id", sa.String(length=100), nullable=False),
        sa.Column("event", sa.String(length=50), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("raw_json", sa.JSON(), nullable=False),
        sa.UniqueConstraint("event_id", name="uq_gateway_webhook_events_event_id"),
    )
    op.create_index(
        "ix_gateway_webhook_events_received", "gateway_webhook_events", ["received_at"], unique=False
    )
    op.create_index("ix_gateway_webhook_events_event", "gateway_webhook_events", ["event"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_gateway_webhook_events_event", table_name="gateway_webhook_events")
    op.drop_index("ix_gateway_webhook_events_received", table_name="gateway_webhook_events")
    op.drop_table("gateway_webhook_events")

    op.drop_index("ix_audit_logs_entity", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_api_keys_user_id", table_name="api_keys")
    op.drop_table("api_keys")

    for index in (
        "ix_payments_order_status",
        "ix_payments_status_created",
        "ix_payments_user_created",
        "ix_payments_gateway_payment_id",
        "ix_payments_user_id",
        "ix_payments_order_id",
    ):
        op.drop_index(index, table_name="payments")
    op.drop_table("payments")

    op.drop_index("ix_orders_status", table_name="orders")
    op.drop_index("ix_orders_user_created", table_name="orders")
    op.drop_index("ix_orders_user_id", table_name="orders")
    op.drop_table("orders")

    op.drop_table("users")

    bind = op.get_bind()
    for name, values in (
        ("apiscope", API_SCOPE),
        ("refundstatus", REFUND_STATUS),
        ("paymentstatus", PAYMENT_STATUS),
        ("orderpaymentstatus", ORDER_PAYMENT_STATUS),
        ("orderstatus", ORDER_STATUS),
    ):
        sa.Enum(*values, name=name).drop(bind, checkfirst=True)
