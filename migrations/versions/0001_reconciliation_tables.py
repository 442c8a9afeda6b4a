"""payments reconciliation tables

Revision ID: 0001_reconciliation_tables
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_reconciliation_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    tables = set(inspector.get_table_names())

    # Owned by the auth service; created here only for fresh databases
    if "app_users" not in tables:
        op.create_table(
            "app_users",
            sa.Column("id", sa.BigInteger(), primary_key=True),
            sa.Column("email", sa.String(), nullable=False, unique=True),
            sa.Column("full_name", sa.String(), nullable=True),
            sa.Column("user_type", sa.String(), nullable=True),
            sa.Column("stripe_customer_id", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_app_users_stripe_customer_id", "app_users", ["stripe_customer_id"])

    if "haulers" not in tables:
        op.create_table(
            "haulers",
            sa.Column("id", sa.BigInteger(), primary_key=True),
            sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("app_users.id"), nullable=False, unique=True),
            sa.Column("hauler_type", sa.String(), nullable=False, server_default="COMPANY"),
            sa.Column("subscription_status", sa.String(), nullable=True),
            sa.Column("subscription_current_period_end", sa.DateTime(), nullable=True),
            sa.Column("stripe_customer_id", sa.String(), nullable=True),
            sa.Column("stripe_connected_account_id", sa.String(255), nullable=True, unique=True),
            sa.Column("stripe_charges_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("stripe_payouts_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("stripe_details_submitted", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("stripe_onboarding_complete", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_haulers_stripe_customer_id", "haulers", ["stripe_customer_id"])

    if "pricing_configs" not in tables:
        op.create_table(
            "pricing_configs",
            sa.Column("id", sa.BigInteger(), primary_key=True),
            sa.Column("target_user_type", sa.String(), nullable=False),
            sa.Column("monthly_price", sa.Numeric(10, 2), nullable=True),
            sa.Column("stripe_product_id", sa.String(), nullable=True),
            sa.Column("stripe_price_id_monthly", sa.String(), nullable=True),
            sa.Column("stripe_price_id_yearly", sa.String(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "hauler_subscriptions" not in tables:
        op.create_table(
            "hauler_subscriptions",
            sa.Column("id", sa.BigInteger(), primary_key=True),
            sa.Column("hauler_id", sa.BigInteger(), sa.ForeignKey("haulers.id"), nullable=False),
            sa.Column("plan_type", sa.String(), nullable=False, server_default="INDIVIDUAL"),
            sa.Column("billing_cycle", sa.String(), nullable=False),
            sa.Column("status", sa.String(), nullable=False),
            sa.Column("monthly_price", sa.Numeric(10, 2), nullable=False),
            sa.Column("charged_amount", sa.Numeric(10, 2), nullable=False),
            sa.Column("currency", sa.String(), nullable=False, server_default="USD"),
            sa.Column("stripe_subscription_id", sa.String(), nullable=True, unique=True),
            sa.Column("stripe_checkout_session_id", sa.String(), nullable=True),
            sa.Column("started_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("current_period_end", sa.DateTime(), nullable=True),
            sa.Column("provider_event_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_hauler_subscriptions_hauler_id", "hauler_subscriptions", ["hauler_id"])

    if "hauler_subscription_payments" not in tables:
        op.create_table(
            "hauler_subscription_payments",
            sa.Column("id", sa.BigInteger(), primary_key=True),
            sa.Column(
                "subscription_id",
                sa.BigInteger(),
                sa.ForeignKey("hauler_subscriptions.id"),
                nullable=False,
            ),
            sa.Column("amount", sa.Numeric(10, 2), nullable=False),
            sa.Column("currency", sa.String(), nullable=False),
            sa.Column("provider", sa.String(), nullable=False),
            sa.Column("provider_ref", sa.String(), nullable=True, unique=True),
            sa.Column("billing_cycle", sa.String(), nullable=True),
            sa.Column("status", sa.String(), nullable=False, server_default="PAID"),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index(
            "ix_hauler_subscription_payments_subscription_id",
            "hauler_subscription_payments",
            ["subscription_id"],
        )

    if "payments" not in tables:
        op.create_table(
            "payments",
            sa.Column("id", sa.BigInteger(), primary_key=True),
            sa.Column("trip_id", sa.BigInteger(), nullable=True),
            sa.Column("load_id", sa.BigInteger(), nullable=True),
            sa.Column("payer_user_id", sa.BigInteger(), sa.ForeignKey("app_users.id"), nullable=False),
            sa.Column("payee_user_id", sa.BigInteger(), sa.ForeignKey("app_users.id"), nullable=False),
            sa.Column("amount_minor", sa.BigInteger(), nullable=False),
            sa.Column("platform_fee_minor", sa.BigInteger(), nullable=True),
            sa.Column("processor_fee_minor", sa.BigInteger(), nullable=True),
            sa.Column("total_charged_minor", sa.BigInteger(), nullable=True),
            sa.Column("currency", sa.String(), nullable=False, server_default="usd"),
            sa.Column("status", sa.String(), nullable=False, server_default="pending"),
            sa.Column("stripe_payment_intent_id", sa.String(), nullable=True),
            sa.Column("stripe_charge_id", sa.String(), nullable=True),
            sa.Column("stripe_transfer_id", sa.String(), nullable=True),
            sa.Column("payout_status", sa.String(), nullable=True),
            sa.Column("funded_at", sa.DateTime(), nullable=True),
            sa.Column("released_at", sa.DateTime(), nullable=True),
            sa.Column("payout_completed_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_payments_trip_id", "payments", ["trip_id"])
        op.create_index("ix_payments_stripe_payment_intent_id", "payments", ["stripe_payment_intent_id"])

    if "stripe_webhook_events" not in tables:
        op.create_table(
            "stripe_webhook_events",
            sa.Column("id", sa.BigInteger(), primary_key=True),
            sa.Column("stripe_event_id", sa.String(), nullable=False, unique=True),
            sa.Column("event_type", sa.String(), nullable=False),
            sa.Column("payload", sa.JSON(), nullable=True),
            sa.Column("processed_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "audit_logs" not in tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.BigInteger(), primary_key=True),
            sa.Column("user_id", sa.BigInteger(), nullable=True),
            sa.Column("user_role", sa.String(), nullable=True),
            sa.Column("action", sa.String(), nullable=False),
            sa.Column("event_type", sa.String(), nullable=True),
            sa.Column("resource", sa.String(), nullable=True),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )


def downgrade():
    for table in (
        "audit_logs",
        "stripe_webhook_events",
        "payments",
        "hauler_subscription_payments",
        "hauler_subscriptions",
        "pricing_configs",
        "haulers",
    ):
        op.drop_table(table)
