"""Initial schema — accounts, ledger, loyalty cards, repairs, inventory, ads.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-18
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def _credit_account_columns() -> list[sa.Column]:
    return [
        sa.Column("credit_balance", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="good_standing", index=True),
        sa.Column("credit_warning_threshold", sa.Numeric(12, 2), nullable=False, server_default="50"),
        sa.Column("last_credit_update", sa.DateTime()),
    ]


def upgrade() -> None:
    # ── Accounts ─────────────────────────────────────────────

    op.create_table(
        "centri_assistenza",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("business_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(50)),
        sa.Column("address", sa.Text()),
        sa.Column("logo_url", sa.String(500)),
        sa.Column("is_active", sa.Boolean(), server_default="true"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        *_credit_account_columns(),
    )

    op.create_table(
        "corners",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("business_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(50)),
        sa.Column("address", sa.Text()),
        sa.Column("is_active", sa.Boolean(), server_default="true"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        *_credit_account_columns(),
    )

    op.create_table(
        "customers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("centro_id", sa.String(36), sa.ForeignKey("centri_assistenza.id"), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), index=True),
        sa.Column("phone", sa.String(50)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Credit ledger ────────────────────────────────────────

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("entity_type", sa.String(20), nullable=False, index=True),
        sa.Column("entity_id", sa.String(36), nullable=False, index=True),
        sa.Column("transaction_type", sa.String(40), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("balance_after", sa.Numeric(12, 2), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("external_ref", sa.String(255), unique=True),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), index=True),
    )

    op.create_table(
        "topup_requests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False, index=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("payment_reference", sa.String(255), index=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("notes", sa.Text()),
        sa.Column("processed_at", sa.DateTime()),
        sa.Column("processed_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Repairs & inventory ──────────────────────────────────

    op.create_table(
        "devices",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("customer_id", sa.String(36), sa.ForeignKey("customers.id"), nullable=False, index=True),
        sa.Column("device_type", sa.String(50)),
        sa.Column("brand", sa.String(100), nullable=False),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column("imei", sa.String(50)),
        sa.Column("serial_number", sa.String(100)),
        sa.Column("initial_condition", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "repairs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("device_id", sa.String(36), sa.ForeignKey("devices.id"), nullable=False, index=True),
        sa.Column("status", sa.String(30), nullable=False, server_default="pending", index=True),
        sa.Column("description", sa.Text()),
        sa.Column("final_cost", sa.Numeric(12, 2)),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("delivered_at", sa.DateTime()),
        sa.Column("forfeiture_warning_sent_at", sa.DateTime()),
        sa.Column("forfeited_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "spare_parts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("centro_id", sa.String(36), sa.ForeignKey("centri_assistenza.id"), index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("brand", sa.String(100)),
        sa.Column("model_compatibility", sa.String(255)),
        sa.Column("stock_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("selling_price", sa.Numeric(12, 2)),
        sa.Column("source_repair_id", sa.String(36), sa.ForeignKey("repairs.id"), unique=True),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Loyalty ──────────────────────────────────────────────

    op.create_table(
        "corner_loyalty_invitations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("corner_id", sa.String(36), sa.ForeignKey("corners.id"), nullable=False, index=True),
        sa.Column("centro_id", sa.String(36), sa.ForeignKey("centri_assistenza.id")),
        sa.Column("invitation_token", sa.String(64), nullable=False, unique=True, index=True),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("customer_email", sa.String(255), nullable=False),
        sa.Column("customer_phone", sa.String(50)),
        sa.Column("status", sa.String(20), nullable=False, server_default="sent"),
        sa.Column("clicked_at", sa.DateTime()),
        sa.Column("paid_at", sa.DateTime()),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "loyalty_cards",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("customer_id", sa.String(36), sa.ForeignKey("customers.id"), nullable=False, index=True),
        sa.Column("centro_id", sa.String(36), sa.ForeignKey("centri_assistenza.id"), nullable=False, index=True),
        sa.Column("card_number", sa.String(30), unique=True),
        sa.Column("status", sa.String(30), nullable=False, server_default="pending_payment", index=True),
        sa.Column("payment_method", sa.String(20), server_default="stripe"),
        sa.Column("stripe_session_id", sa.String(255), index=True),
        sa.Column("stripe_payment_intent_id", sa.String(255)),
        sa.Column("amount_paid", sa.Numeric(12, 2), nullable=False),
        sa.Column("platform_commission", sa.Numeric(12, 2), nullable=False),
        sa.Column("centro_revenue", sa.Numeric(12, 2), nullable=False),
        sa.Column("corner_commission", sa.Numeric(12, 2)),
        sa.Column("referred_by_corner_id", sa.String(36), sa.ForeignKey("corners.id")),
        sa.Column("invitation_id", sa.String(36), sa.ForeignKey("corner_loyalty_invitations.id")),
        sa.Column("max_devices", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("devices_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("activated_at", sa.DateTime()),
        sa.Column("expires_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index(
        "uq_loyalty_cards_active_customer_centro",
        "loyalty_cards",
        ["customer_id", "centro_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "loyalty_card_usages",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("loyalty_card_id", sa.String(36), sa.ForeignKey("loyalty_cards.id"), nullable=False, index=True),
        sa.Column("repair_id", sa.String(36), sa.ForeignKey("repairs.id")),
        sa.Column("device_id", sa.String(36), sa.ForeignKey("devices.id")),
        sa.Column("discount_type", sa.String(30), nullable=False),
        sa.Column("original_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("discounted_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("savings", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Display ads ──────────────────────────────────────────

    op.create_table(
        "display_ad_campaigns",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("advertiser_name", sa.String(255), nullable=False),
        sa.Column("advertiser_email", sa.String(255), nullable=False),
        sa.Column("advertiser_phone", sa.String(50)),
        sa.Column("advertiser_company", sa.String(255)),
        sa.Column("ad_title", sa.String(255), nullable=False),
        sa.Column("ad_description", sa.Text()),
        sa.Column("ad_image_url", sa.String(500)),
        sa.Column("ad_type", sa.String(30), server_default="gradient"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("platform_revenue", sa.Numeric(12, 2), nullable=False),
        sa.Column("corner_revenue_total", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="pending_payment", index=True),
        sa.Column("stripe_session_id", sa.String(255), index=True),
        sa.Column("stripe_payment_intent_id", sa.String(255)),
        sa.Column("paid_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "display_ad_campaign_corners",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("campaign_id", sa.String(36), sa.ForeignKey("display_ad_campaigns.id"), nullable=False, index=True),
        sa.Column("corner_id", sa.String(36), sa.ForeignKey("corners.id"), nullable=False, index=True),
        sa.Column("corner_revenue", sa.Numeric(12, 2), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("display_ad_campaign_corners")
    op.drop_table("display_ad_campaigns")
    op.drop_table("loyalty_card_usages")
    op.drop_index("uq_loyalty_cards_active_customer_centro", table_name="loyalty_cards")
    op.drop_table("loyalty_cards")
    op.drop_table("corner_loyalty_invitations")
    op.drop_table("spare_parts")
    op.drop_table("repairs")
    op.drop_table("devices")
    op.drop_table("topup_requests")
    op.drop_table("credit_transactions")
    op.drop_table("customers")
    op.drop_table("corners")
    op.drop_table("centri_assistenza")
