"""Initial order, catalog, billing and advertising schema.

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18 09:00:00.000000

WHAT:
    Creates businesses, users, business_billing, order_statuses, products,
    orders, order_items, ad_campaigns, ad_campaign_products, ad_cost_logs and
    audit_logs.

WHY:
    - (business_id, order_number) is unique so import retries on collision
      instead of silently duplicating order numbers
    - (order_id, campaign_id) is unique on ad_cost_logs so a campaign can
      never be charged twice to the same order
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261018_000001"
down_revision = None
branch_labels = None
depends_on = None


def _id():
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False, server_default=sa.text("gen_random_uuid()"))


def _business_fk(index=True):
    return sa.Column(
        "business_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=index,
    )


def upgrade():
    plan_enum = postgresql.ENUM("starter", "growth", "pro", name="planenum")
    billing_status_enum = postgresql.ENUM("trialing", "active", "expired", "cancelled", name="billingstatusenum")
    platform_enum = postgresql.ENUM(
        "facebook", "instagram", "tiktok", "google", "snapchat", "twitter", "linkedin", "other",
        name="adplatformenum",
    )
    allocation_method_enum = postgresql.ENUM("product_based", name="allocationmethodenum")

    op.create_table(
        "businesses",
        _id(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="EGP"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(), nullable=False, unique=True, index=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("businesses.id"), nullable=False),
    )

    op.create_table(
        "business_billing",
        _id(),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("plan", plan_enum, nullable=True),
        sa.Column("status", billing_status_enum, nullable=False, server_default="trialing"),
        sa.Column("monthly_order_limit", sa.Integer(), nullable=True),
        sa.Column("is_trial", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("trial_started_at", sa.DateTime(), nullable=True),
        sa.Column("trial_ends_at", sa.DateTime(), nullable=True),
        sa.Column("activated_at", sa.DateTime(), nullable=True),
        sa.Column("lifetime_price_usd", sa.Numeric(18, 4), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "order_statuses",
        _id(),
        _business_fk(),
        sa.Column("key", sa.String(), nullable=False),
        sa.Column("label", sa.String(), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("business_id", "key", name="uq_order_statuses_business_key"),
    )

    op.create_table(
        "products",
        _id(),
        _business_fk(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("sku", sa.String(), nullable=True),
        sa.Column("price", sa.Numeric(18, 4), nullable=False, server_default="0"),
        sa.Column("cost", sa.Numeric(18, 4), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("business_id", "sku", name="uq_products_business_sku"),
    )

    op.create_table(
        "orders",
        _id(),
        _business_fk(),
        sa.Column("order_number", sa.String(), nullable=False),
        sa.Column("order_date", sa.Date(), nullable=False, index=True),
        sa.Column("customer_name", sa.String(), nullable=True),
        sa.Column("customer_phone", sa.String(), nullable=True),
        sa.Column("customer_address", sa.String(), nullable=True),
        sa.Column("status_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("order_statuses.id"), nullable=True),
        sa.Column("revenue", sa.Numeric(18, 4), nullable=False, server_default="0"),
        sa.Column("cost", sa.Numeric(18, 4), nullable=False, server_default="0"),
        sa.Column("shipping_cost", sa.Numeric(18, 4), nullable=False, server_default="0"),
        sa.Column("ad_cost", sa.Numeric(18, 4), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("business_id", "order_number", name="uq_orders_business_order_number"),
        sa.CheckConstraint(
            "revenue >= 0 AND cost >= 0 AND shipping_cost >= 0 AND ad_cost >= 0",
            name="ck_orders_money_non_negative",
        ),
    )

    op.create_table(
        "order_items",
        _id(),
        sa.Column("order_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
        _business_fk(),
        sa.Column("product_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("products.id"), nullable=False, index=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(18, 4), nullable=False, server_default="0"),
        sa.Column("unit_cost", sa.Numeric(18, 4), nullable=False, server_default="0"),
        sa.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    op.create_table(
        "ad_campaigns",
        _id(),
        _business_fk(),
        sa.Column("campaign_date", sa.Date(), nullable=False, index=True),
        sa.Column("platform", platform_enum, nullable=False),
        sa.Column("campaign_name", sa.String(), nullable=True),
        sa.Column("total_cost", sa.Numeric(18, 4), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_allocated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("allocated_at", sa.DateTime(), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("total_cost >= 0", name="ck_ad_campaigns_total_cost_non_negative"),
    )

    op.create_table(
        "ad_campaign_products",
        _id(),
        sa.Column("campaign_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("ad_campaigns.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("product_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("allocation_percentage", sa.Numeric(7, 4), nullable=False),
        sa.Column("cost_amount", sa.Numeric(18, 4), nullable=False),
        sa.UniqueConstraint("campaign_id", "product_id", name="uq_ad_campaign_products_campaign_product"),
    )

    op.create_table(
        "ad_cost_logs",
        _id(),
        _business_fk(),
        sa.Column("order_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("campaign_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("ad_campaigns.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("allocated_cost", sa.Numeric(18, 4), nullable=False),
        sa.Column("allocation_method", allocation_method_enum, nullable=False, server_default="product_based"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("order_id", "campaign_id", name="uq_ad_cost_logs_order_campaign"),
    )

    op.create_table(
        "audit_logs",
        _id(),
        _business_fk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )


def downgrade():
    for table in (
        "audit_logs",
        "ad_cost_logs",
        "ad_campaign_products",
        "ad_campaigns",
        "order_items",
        "orders",
        "products",
        "order_statuses",
        "business_billing",
        "users",
        "businesses",
    ):
        op.drop_table(table)
    for enum_name in ("allocationmethodenum", "adplatformenum", "billingstatusenum", "planenum"):
        op.execute(f"DROP TYPE IF EXISTS {enum_name};")
