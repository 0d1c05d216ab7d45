"""Pydantic schemas for request/response payloads."""

from datetime import datetime, date
from decimal import Decimal
from uuid import UUID
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator

from .models import AdPlatformEnum, PlanEnum


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service status", examples=["ok"])


# ============================================================================
# Products
# ============================================================================

class ProductCreate(BaseModel):
    """Create a catalog product. `sku` is the key CSV imports match on."""
    name: str = Field(min_length=1)
    sku: Optional[str] = None
    price: Decimal = Field(default=Decimal("0"), ge=0)
    cost: Decimal = Field(default=Decimal("0"), ge=0)
    is_active: bool = True


class ProductOut(BaseModel):
    id: UUID
    business_id: UUID
    name: str
    sku: Optional[str]
    price: Decimal
    cost: Decimal
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ============================================================================
# Order import
# ============================================================================

class ImportRowErrorOut(BaseModel):
    row_number: int
    column: str
    message: str
    value: Optional[str] = None
    code: str


class ImportRowErrorsOut(BaseModel):
    row_number: int
    errors: List[ImportRowErrorOut]


class ImportReportOut(BaseModel):
    """
    Outcome of a CSV import.

    `success + failed == total_rows` unless `header_errors` is non-empty, in
    which case no row was processed.
    """
    success: int
    failed: int
    total_rows: int
    errors: List[ImportRowErrorsOut]
    header_errors: List[str]
    products_created: int = 0


# ============================================================================
# Advertising
# ============================================================================

class CampaignProductIn(BaseModel):
    product_id: UUID
    allocation_percentage: Decimal = Field(gt=0, le=100)


class CampaignCreate(BaseModel):
    """Create an ad campaign. Product percentages must add up to 100."""
    campaign_date: date
    platform: AdPlatformEnum
    total_cost: Decimal = Field(ge=0)
    campaign_name: Optional[str] = None
    notes: Optional[str] = None
    products: List[CampaignProductIn] = Field(min_length=1)


class CampaignUpdate(BaseModel):
    campaign_date: Optional[date] = None
    platform: Optional[AdPlatformEnum] = None
    total_cost: Optional[Decimal] = Field(default=None, ge=0)
    campaign_name: Optional[str] = None
    notes: Optional[str] = None
    products: Optional[List[CampaignProductIn]] = None

    @field_validator("products")
    @classmethod
    def products_not_empty(cls, value):
        if value is not None and not value:
            raise ValueError("products cannot be empty")
        return value


class CampaignProductOut(BaseModel):
    product_id: UUID
    allocation_percentage: Decimal
    cost_amount: Decimal

    model_config = {"from_attributes": True}


class CampaignOut(BaseModel):
    id: UUID
    business_id: UUID
    campaign_date: date
    platform: AdPlatformEnum
    campaign_name: Optional[str]
    total_cost: Decimal
    notes: Optional[str]
    is_allocated: bool
    allocated_at: Optional[datetime]
    products: List[CampaignProductOut]
    orders_count: int = 0
    revenue_generated: Decimal = Decimal("0")
    roas: Decimal = Decimal("0")

    model_config = {"from_attributes": True}


class AllocationResultOut(BaseModel):
    success: bool
    orders_updated: int
    total_cost_allocated: Decimal
    errors: List[str] = []


class PlatformStatsOut(BaseModel):
    platform: AdPlatformEnum
    total_spent: Decimal
    total_revenue: Decimal
    orders_count: int
    roas: Decimal


class CampaignStatsOut(BaseModel):
    total_campaigns: int
    total_spent: Decimal
    total_revenue: Decimal
    total_orders: int
    roas: Decimal
    avg_cost_per_order: Decimal
    avg_cost_per_day: Decimal
    by_platform: List[PlatformStatsOut]


# ============================================================================
# Billing / usage
# ============================================================================

class UsageStatusOut(BaseModel):
    current_month_count: int
    limit: Optional[int]
    remaining: Optional[int]
    percent_used: float
    is_exceeded: bool
    month_label: str


class PlanChange(BaseModel):
    plan: PlanEnum
