"""Advertising campaign catalog and ROAS statistics.

WHAT: Create/update/delete/list ad campaigns and their product split, and
      summarize spend against the revenue of the orders they were allocated to.
WHY: The allocation engine reads `cost_amount` per campaign product, so the
     split has to be validated (percentages sum to 100) and priced when it is
     written, not when it is allocated.
REFERENCES:
  - codboard/services/ad_cost_allocation.py (consumer of cost_amount)
  - codboard/routers/campaigns.py
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from ..exceptions import CampaignNotFoundError, InvalidAllocationError
from ..models import AdCampaign, AdCampaignProduct, AdCostLog, AdPlatformEnum, Order, Product
from .ad_cost_allocation import AdCostAllocationService
from .audit_service import AuditService

logger = logging.getLogger(__name__)

PERCENTAGE_TOLERANCE = Decimal("0.01")
CENT = Decimal("0.0001")


@dataclass
class CampaignProductSplit:
    product_id: object
    allocation_percentage: Decimal


@dataclass
class CampaignPerformance:
    orders_count: int
    revenue_generated: Decimal
    roas: Decimal


def _ratio(numerator: Decimal, denominator: Decimal) -> Decimal:
    if not denominator:
        return Decimal("0")
    return (Decimal(numerator) / Decimal(denominator)).quantize(CENT, rounding=ROUND_HALF_UP)


def validate_split(splits: List[CampaignProductSplit]) -> None:
    """Percentages must be positive, unique per product and add up to 100."""
    if not splits:
        raise InvalidAllocationError("A campaign must target at least one product")
    seen = set()
    for split in splits:
        if Decimal(split.allocation_percentage) <= 0:
            raise InvalidAllocationError("Allocation percentages must be greater than 0")
        if split.product_id in seen:
            raise InvalidAllocationError("A product can only appear once in a campaign")
        seen.add(split.product_id)
    total = sum((Decimal(s.allocation_percentage) for s in splits), Decimal("0"))
    if abs(total - Decimal("100")) > PERCENTAGE_TOLERANCE:
        raise InvalidAllocationError(
            f"Allocation percentages must add up to 100% (got {total}%)",
            context={"total_percentage": str(total)},
        )


def cost_amount_for(total_cost: Decimal, percentage: Decimal) -> Decimal:
    return (Decimal(total_cost) * Decimal(percentage) / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)


class AdvertisingService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def _check_products(self, business_id, splits: List[CampaignProductSplit]) -> None:
        product_ids = [s.product_id for s in splits]
        found = {
            row.id
            for row in self.db.query(Product.id)
            .filter(Product.business_id == business_id, Product.id.in_(product_ids))
            .all()
        }
        missing = [str(pid) for pid in product_ids if pid not in found]
        if missing:
            raise InvalidAllocationError(
                "Some products do not exist in this business", context={"product_ids": missing}
            )

    def _replace_products(self, campaign: AdCampaign, splits: List[CampaignProductSplit]) -> None:
        campaign.products.clear()
        self.db.flush()
        for split in splits:
            campaign.products.append(AdCampaignProduct(
                product_id=split.product_id,
                allocation_percentage=Decimal(split.allocation_percentage),
                cost_amount=cost_amount_for(campaign.total_cost, split.allocation_percentage),
            ))

    def create_campaign(
        self,
        business_id,
        campaign_date: date,
        platform: AdPlatformEnum,
        total_cost: Decimal,
        products: List[CampaignProductSplit],
        campaign_name: Optional[str] = None,
        notes: Optional[str] = None,
        user_id=None,
    ) -> AdCampaign:
        validate_split(products)
        self._check_products(business_id, products)

        campaign = AdCampaign(
            business_id=business_id,
            campaign_date=campaign_date,
            platform=platform,
            campaign_name=campaign_name,
            total_cost=Decimal(total_cost),
            notes=notes,
            is_allocated=False,
            created_by=user_id,
        )
        self.db.add(campaign)
        self._replace_products(campaign, products)
        self.db.flush()

        AuditService(self.db).log(
            business_id=business_id,
            user_id=user_id,
            entity_type="ad_campaign",
            entity_id=campaign.id,
            action="create",
            after={"campaign_date": campaign_date.isoformat(), "total_cost": str(total_cost), "platform": platform.value},
        )
        self.db.commit()
        self.db.refresh(campaign)
        logger.info(f"[CAMPAIGNS] Created campaign {campaign.id} ({platform.value}, {campaign_date}) for business {business_id}")
        return campaign

    def update_campaign(
        self,
        campaign_id,
        business_id,
        campaign_date: Optional[date] = None,
        platform: Optional[AdPlatformEnum] = None,
        total_cost: Optional[Decimal] = None,
        products: Optional[List[CampaignProductSplit]] = None,
        campaign_name: Optional[str] = None,
        notes: Optional[str] = None,
        user_id=None,
    ) -> AdCampaign:
        """Update fields; a new total or split reprices every product share.

        Allocated orders are not touched. Call reallocate afterwards to move
        already allocated spend onto the new numbers.
        """
        campaign = self.get_campaign(campaign_id, business_id)

        if campaign_date is not None:
            campaign.campaign_date = campaign_date
        if platform is not None:
            campaign.platform = platform
        if campaign_name is not None:
            campaign.campaign_name = campaign_name
        if notes is not None:
            campaign.notes = notes
        if total_cost is not None:
            campaign.total_cost = Decimal(total_cost)

        if products is not None:
            validate_split(products)
            self._check_products(business_id, products)
            self._replace_products(campaign, products)
        elif total_cost is not None:
            for product in campaign.products:
                product.cost_amount = cost_amount_for(campaign.total_cost, product.allocation_percentage)

        self.db.flush()
        AuditService(self.db).log(
            business_id=business_id,
            user_id=user_id,
            entity_type="ad_campaign",
            entity_id=campaign.id,
            action="update",
            after={"total_cost": str(campaign.total_cost), "products_replaced": products is not None},
        )
        self.db.commit()
        self.db.refresh(campaign)
        return campaign

    def delete_campaign(self, campaign_id, business_id, user_id=None) -> None:
        """Delete a campaign, first reversing any allocation it made."""
        campaign = self.get_campaign(campaign_id, business_id)
        has_logs = self.db.query(AdCostLog.id).filter(AdCostLog.campaign_id == campaign.id).first() is not None
        if campaign.is_allocated or has_logs:
            AdCostAllocationService(self.db).deallocate_campaign_costs(campaign_id, business_id, user_id=user_id)
            campaign = self.get_campaign(campaign_id, business_id)

        self.db.delete(campaign)
        AuditService(self.db).log(
            business_id=business_id,
            user_id=user_id,
            entity_type="ad_campaign",
            entity_id=campaign_id,
            action="delete",
        )
        self.db.commit()
        logger.info(f"[CAMPAIGNS] Deleted campaign {campaign_id} for business {business_id}")

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_campaign(self, campaign_id, business_id) -> AdCampaign:
        campaign = (
            self.db.query(AdCampaign)
            .options(selectinload(AdCampaign.products))
            .filter(AdCampaign.id == campaign_id, AdCampaign.business_id == business_id)
            .first()
        )
        if campaign is None:
            raise CampaignNotFoundError(campaign_id)
        return campaign

    def list_campaigns(
        self,
        business_id,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        platform: Optional[AdPlatformEnum] = None,
        is_allocated: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> List[AdCampaign]:
        query = (
            self.db.query(AdCampaign)
            .options(selectinload(AdCampaign.products))
            .filter(AdCampaign.business_id == business_id)
        )
        if date_from:
            query = query.filter(AdCampaign.campaign_date >= date_from)
        if date_to:
            query = query.filter(AdCampaign.campaign_date <= date_to)
        if platform:
            query = query.filter(AdCampaign.platform == platform)
        if is_allocated is not None:
            query = query.filter(AdCampaign.is_allocated.is_(is_allocated))
        if search:
            query = query.filter(AdCampaign.campaign_name.ilike(f"%{search.strip()}%"))
        return query.order_by(AdCampaign.campaign_date.desc(), AdCampaign.created_at.desc()).all()

    def get_performance(self, campaigns: Iterable[AdCampaign]) -> Dict[object, CampaignPerformance]:
        """Orders reached and revenue generated per campaign, from the cost logs."""
        campaigns = list(campaigns)
        if not campaigns:
            return {}
        rows = (
            self.db.query(
                AdCostLog.campaign_id,
                func.count(AdCostLog.id),
                func.coalesce(func.sum(Order.revenue), 0),
            )
            .join(Order, Order.id == AdCostLog.order_id)
            .filter(AdCostLog.campaign_id.in_([c.id for c in campaigns]))
            .group_by(AdCostLog.campaign_id)
            .all()
        )
        totals = {campaign_id: (count, Decimal(revenue or 0)) for campaign_id, count, revenue in rows}
        performance = {}
        for campaign in campaigns:
            count, revenue = totals.get(campaign.id, (0, Decimal("0")))
            performance[campaign.id] = CampaignPerformance(
                orders_count=count,
                revenue_generated=revenue,
                roas=_ratio(revenue, Decimal(campaign.total_cost or 0)),
            )
        return performance

    def get_campaign_stats(self, business_id, date_from: Optional[date] = None, date_to: Optional[date] = None) -> dict:
        """Spend, revenue and ROAS for a date range, overall and per platform."""
        campaigns = self.list_campaigns(business_id, date_from=date_from, date_to=date_to)
        performance = self.get_performance(campaigns)

        total_spent = sum((Decimal(c.total_cost or 0) for c in campaigns), Decimal("0"))
        total_revenue = sum((p.revenue_generated for p in performance.values()), Decimal("0"))
        total_orders = sum(p.orders_count for p in performance.values())

        by_platform: Dict[str, dict] = {}
        for campaign in campaigns:
            key = campaign.platform.value
            bucket = by_platform.setdefault(key, {
                "platform": key,
                "total_spent": Decimal("0"),
                "total_revenue": Decimal("0"),
                "orders_count": 0,
            })
            bucket["total_spent"] += Decimal(campaign.total_cost or 0)
            bucket["total_revenue"] += performance[campaign.id].revenue_generated
            bucket["orders_count"] += performance[campaign.id].orders_count
        for bucket in by_platform.values():
            bucket["roas"] = _ratio(bucket["total_revenue"], bucket["total_spent"])

        return {
            "total_campaigns": len(campaigns),
            "total_spent": total_spent,
            "total_revenue": total_revenue,
            "total_orders": total_orders,
            "roas": _ratio(total_revenue, total_spent),
            "avg_cost_per_order": _ratio(total_spent, Decimal(total_orders)),
            "avg_cost_per_day": _ratio(total_spent, Decimal(len(campaigns))),
            "by_platform": list(by_platform.values()),
        }
