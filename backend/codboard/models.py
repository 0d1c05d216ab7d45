"""SQLAlchemy ORM models and enums.

This module defines the order-management schema using UUID primary keys and
explicit relationships. Every tenant-owned table carries a `business_id`
column and every query in the service layer filters on it.

Money columns are `Numeric(18, 4)` and are handled as `Decimal` in Python.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
import enum

from sqlalchemy import (
    Column, String, DateTime, Date, Enum, Integer, ForeignKey, Numeric, JSON, Text, Boolean,
    UniqueConstraint, CheckConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, declarative_base


# Single Base used by the entire application
Base = declarative_base()

MONEY = Numeric(18, 4)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the naive DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Enums ---------------------------------------------------------

class PlanEnum(str, enum.Enum):
    starter = "starter"
    growth = "growth"
    pro = "pro"


class BillingStatusEnum(str, enum.Enum):
    trialing = "trialing"
    active = "active"
    expired = "expired"
    cancelled = "cancelled"


class AdPlatformEnum(str, enum.Enum):
    facebook = "facebook"
    instagram = "instagram"
    tiktok = "tiktok"
    google = "google"
    snapchat = "snapchat"
    twitter = "twitter"
    linkedin = "linkedin"
    other = "other"


class AllocationMethodEnum(str, enum.Enum):
    """How a campaign's spend was spread over an order.

    - product_based: weighted by targeted product quantity on the campaign date
    """
    product_based = "product_based"


# Tenancy -------------------------------------------------------

class Business(Base):
    """Tenant root. Every other row is scoped to one business."""
    __tablename__ = "businesses"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    currency = Column(String(3), nullable=False, default="EGP")
    created_at = Column(DateTime, default=utcnow)

    users = relationship("User", back_populates="business")
    billing = relationship("BusinessBilling", back_populates="business", uselist=False, cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Business(id={self.id}, name='{self.name}')>"


class User(Base):
    """Request principal. `business_id` is the user's active business."""
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False)
    business = relationship("Business", back_populates="users")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"


class BusinessBilling(Base):
    """Plan and trial state for a business.

    A NULL `monthly_order_limit` means the plan is unlimited.
    """
    __tablename__ = "business_billing"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, unique=True)
    plan = Column(Enum(PlanEnum, values_callable=lambda obj: [e.value for e in obj]), nullable=True)
    status = Column(
        Enum(BillingStatusEnum, values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=BillingStatusEnum.trialing,
    )
    monthly_order_limit = Column(Integer, nullable=True)
    is_trial = Column(Boolean, nullable=False, default=True)
    trial_started_at = Column(DateTime, nullable=True)
    trial_ends_at = Column(DateTime, nullable=True)
    activated_at = Column(DateTime, nullable=True)
    lifetime_price_usd = Column(MONEY, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    business = relationship("Business", back_populates="billing")


# Catalog -------------------------------------------------------

class Product(Base):
    """Sellable product. `sku`, when set, is the import join key."""
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("business_id", "sku", name="uq_products_business_sku"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    sku = Column(String, nullable=True)
    price = Column(MONEY, nullable=False, default=Decimal("0"))
    cost = Column(MONEY, nullable=False, default=Decimal("0"))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<Product(id={self.id}, sku='{self.sku}')>"


class OrderStatus(Base):
    """Per-business order status. `key` is the language-neutral identifier."""
    __tablename__ = "order_statuses"
    __table_args__ = (
        UniqueConstraint("business_id", "key", name="uq_order_statuses_business_key"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    key = Column(String, nullable=False)
    label = Column(String, nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)


# Orders --------------------------------------------------------

class Order(Base):
    """Customer order.

    `profit` is never stored: it is recomputed from the four money columns so
    that allocation and deallocation only ever touch `ad_cost`.
    """
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("business_id", "order_number", name="uq_orders_business_order_number"),
        CheckConstraint("revenue >= 0 AND cost >= 0 AND shipping_cost >= 0 AND ad_cost >= 0", name="ck_orders_money_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    order_number = Column(String, nullable=False)
    order_date = Column(Date, nullable=False, index=True)
    customer_name = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)
    customer_address = Column(String, nullable=True)
    status_id = Column(UUID(as_uuid=True), ForeignKey("order_statuses.id"), nullable=True)
    revenue = Column(MONEY, nullable=False, default=Decimal("0"))
    cost = Column(MONEY, nullable=False, default=Decimal("0"))
    shipping_cost = Column(MONEY, nullable=False, default=Decimal("0"))
    ad_cost = Column(MONEY, nullable=False, default=Decimal("0"))
    notes = Column(Text, nullable=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    status = relationship("OrderStatus")
    cost_logs = relationship("AdCostLog", back_populates="order", cascade="all, delete-orphan")

    @property
    def profit(self) -> Decimal:
        return (
            Decimal(self.revenue or 0)
            - Decimal(self.cost or 0)
            - Decimal(self.shipping_cost or 0)
            - Decimal(self.ad_cost or 0)
        )

    def __repr__(self):
        return f"<Order(id={self.id}, number='{self.order_number}')>"


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(MONEY, nullable=False, default=Decimal("0"))
    unit_cost = Column(MONEY, nullable=False, default=Decimal("0"))

    order = relationship("Order", back_populates="items")
    product = relationship("Product")


# Advertising ---------------------------------------------------

class AdCampaign(Base):
    """A day's paid spend on one platform, targeted at a set of products.

    `is_allocated` flips to true only through a successful allocation and back
    to false only through deallocation.
    """
    __tablename__ = "ad_campaigns"
    __table_args__ = (
        CheckConstraint("total_cost >= 0", name="ck_ad_campaigns_total_cost_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    campaign_date = Column(Date, nullable=False, index=True)
    platform = Column(Enum(AdPlatformEnum, values_callable=lambda obj: [e.value for e in obj]), nullable=False)
    campaign_name = Column(String, nullable=True)
    total_cost = Column(MONEY, nullable=False)
    notes = Column(Text, nullable=True)
    is_allocated = Column(Boolean, nullable=False, default=False)
    allocated_at = Column(DateTime, nullable=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    products = relationship("AdCampaignProduct", back_populates="campaign", cascade="all, delete-orphan")
    cost_logs = relationship("AdCostLog", back_populates="campaign")

    def __repr__(self):
        return f"<AdCampaign(id={self.id}, date={self.campaign_date}, allocated={self.is_allocated})>"


class AdCampaignProduct(Base):
    """Share of a campaign's spend assigned to one product.

    cost_amount = campaign.total_cost * allocation_percentage / 100
    """
    __tablename__ = "ad_campaign_products"
    __table_args__ = (
        UniqueConstraint("campaign_id", "product_id", name="uq_ad_campaign_products_campaign_product"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("ad_campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)
    allocation_percentage = Column(Numeric(7, 4), nullable=False)
    cost_amount = Column(MONEY, nullable=False)

    campaign = relationship("AdCampaign", back_populates="products")
    product = relationship("Product")


class AdCostLog(Base):
    """Amount of a campaign charged to one order.

    The log is the only record used to reverse an allocation, so at most one
    row may exist per (order, campaign).
    """
    __tablename__ = "ad_cost_logs"
    __table_args__ = (
        UniqueConstraint("order_id", "campaign_id", name="uq_ad_cost_logs_order_campaign"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("ad_campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    allocated_cost = Column(MONEY, nullable=False)
    allocation_method = Column(
        Enum(AllocationMethodEnum, values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=AllocationMethodEnum.product_based,
    )
    created_at = Column(DateTime, default=utcnow)

    order = relationship("Order", back_populates="cost_logs")
    campaign = relationship("AdCampaign", back_populates="cost_logs")


# Audit ---------------------------------------------------------

class AuditLog(Base):
    """Append-only record of business-relevant mutations."""
    __tablename__ = "audit_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=True)
    action = Column(String, nullable=False)
    before = Column(JSON, nullable=True)
    after = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)
