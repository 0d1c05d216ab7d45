"""Advertising cost allocation.

WHAT: Spreads a campaign's per-product spend onto the orders placed on the
      campaign date, and reverses that spread.
WHY: Net profit per order must include the advertising that drove it. COD
     sellers log spend per day and platform, not per order.
REFERENCES:
  - codboard/models.py: AdCampaign, AdCampaignProduct, AdCostLog, Order
  - codboard/routers/campaigns.py: allocate / deallocate / reallocate endpoints
  - tests_unit/test_allocation_math.py: formula tests

Allocation rules:
  - Matched orders: same business, order_date == campaign_date, at least one
    line item for a targeted product
  - Pool: total quantity of targeted items across ALL matched orders (one
    shared pool, not one per product)
  - Share of an order: sum(cost_amount[p] * qty) over its targeted items / pool
  - Only orders with a share > 0 get an AdCostLog; the log is what
    deallocation subtracts, so it is the source of truth for reversal

  The shared pool means the distributed total only equals the campaign total
  when every targeted product sold the same quantity. This is the formula
  sellers' historical numbers were computed with, so it is kept as is.

State:
  Unallocated --allocate--> Allocated --deallocate--> Unallocated
  A campaign with no matching orders stays Unallocated after allocate.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Tuple

from sqlalchemy import case, delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import AllocationError, AlreadyAllocatedError, CampaignNotFoundError
from ..models import AdCampaign, AdCostLog, AllocationMethodEnum, Order, OrderItem, utcnow
from ..telemetry.sentry import capture_exception
from .audit_service import AuditService

logger = logging.getLogger(__name__)

CENT = Decimal("0.0001")


@dataclass
class AllocationResult:
    success: bool
    orders_updated: int = 0
    total_cost_allocated: Decimal = Decimal("0")
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "orders_updated": self.orders_updated,
            "total_cost_allocated": self.total_cost_allocated,
            "errors": list(self.errors),
        }


def compute_order_allocations(
    product_costs: Dict[object, Decimal],
    targeted_items: Iterable[Tuple[object, object, int]],
) -> Dict[object, Decimal]:
    """Compute each matched order's share of a campaign.

    Args:
        product_costs: product_id -> cost_amount of that product in the campaign
        targeted_items: (order_id, product_id, quantity) for every line item of
            a matched order whose product is in `product_costs`

    Returns:
        order_id -> allocated amount (rounded to 4 places), only for orders
        whose share is > 0. Empty when nothing matched.

    Example:
        A cost 60, B cost 40; order1 has A x2, order2 has A x1 + B x1
        pool = 4 -> order1 = 120/4 = 30, order2 = (60 + 40)/4 = 25
    """
    weighted: Dict[object, Decimal] = defaultdict(Decimal)
    pool = 0
    for order_id, product_id, quantity in targeted_items:
        if product_id not in product_costs or not quantity:
            continue
        pool += quantity
        weighted[order_id] += Decimal(product_costs[product_id]) * quantity

    if pool <= 0:
        return {}

    shares = {}
    for order_id, amount in weighted.items():
        share = (amount / pool).quantize(CENT, rounding=ROUND_HALF_UP)
        if share > 0:
            shares[order_id] = share
    return shares


class AdCostAllocationService:
    """Allocate, deallocate and reallocate campaign spend for one session.

    Each public method owns its transaction: it commits on success and rolls
    back before raising.
    """

    def __init__(self, db: Session):
        self.db = db

    def _get_campaign(self, campaign_id, business_id) -> AdCampaign:
        campaign = (
            self.db.query(AdCampaign)
            .filter(AdCampaign.id == campaign_id, AdCampaign.business_id == business_id)
            .first()
        )
        if campaign is None:
            raise CampaignNotFoundError(campaign_id)
        return campaign

    def _targeted_items(self, campaign: AdCampaign, product_ids) -> List[Tuple[object, object, int]]:
        rows = (
            self.db.query(OrderItem.order_id, OrderItem.product_id, OrderItem.quantity)
            .join(Order, Order.id == OrderItem.order_id)
            .filter(
                Order.business_id == campaign.business_id,
                Order.order_date == campaign.campaign_date,
                OrderItem.product_id.in_(product_ids),
            )
            .all()
        )
        return [(row.order_id, row.product_id, row.quantity) for row in rows]

    # ------------------------------------------------------------------

    def allocate_campaign_costs(self, campaign_id, business_id, user_id=None) -> AllocationResult:
        """Distribute a campaign's spend onto its matched orders.

        Raises:
            CampaignNotFoundError: no such campaign in this business
            AlreadyAllocatedError: campaign is allocated (nothing is changed)
            AllocationError: the store rejected the write (nothing is changed)
        """
        campaign = self._get_campaign(campaign_id, business_id)
        if campaign.is_allocated:
            raise AlreadyAllocatedError(campaign_id)

        product_costs = {p.product_id: Decimal(p.cost_amount or 0) for p in campaign.products}
        if not product_costs:
            logger.info(f"[ALLOCATION] Campaign {campaign_id} targets no products, nothing to allocate")
            return AllocationResult(success=True)

        shares = compute_order_allocations(product_costs, self._targeted_items(campaign, list(product_costs)))
        if not shares:
            logger.info(f"[ALLOCATION] Campaign {campaign_id}: no orders on {campaign.campaign_date}")
            return AllocationResult(success=True)

        # Claim the campaign. A concurrent allocate that already flipped the
        # flag makes this match zero rows.
        claimed = self.db.execute(
            update(AdCampaign)
            .where(
                AdCampaign.id == campaign.id,
                AdCampaign.business_id == business_id,
                AdCampaign.is_allocated.is_(False),
            )
            .values(is_allocated=True, allocated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            self.db.rollback()
            raise AlreadyAllocatedError(campaign_id)

        total = Decimal("0")
        try:
            for order_id, share in shares.items():
                self.db.add(AdCostLog(
                    business_id=business_id,
                    order_id=order_id,
                    campaign_id=campaign.id,
                    allocated_cost=share,
                    allocation_method=AllocationMethodEnum.product_based,
                ))
                self.db.execute(
                    update(Order)
                    .where(Order.id == order_id, Order.business_id == business_id)
                    .values(ad_cost=Order.ad_cost + share)
                    .execution_options(synchronize_session=False)
                )
                total += share
            self.db.flush()

            AuditService(self.db).log(
                business_id=business_id,
                user_id=user_id,
                entity_type="ad_campaign",
                entity_id=campaign.id,
                action="allocate",
                before={"is_allocated": False},
                after={"is_allocated": True, "orders_updated": len(shares), "total_cost_allocated": str(total)},
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"[ALLOCATION] Campaign {campaign_id} allocation failed: {e}")
            raise AllocationError(
                "Failed to allocate campaign costs", context={"campaign_id": str(campaign_id)}
            ) from e

        # Updates above bypassed the identity map
        self.db.expire_all()
        logger.info(f"[ALLOCATION] Campaign {campaign_id}: {total} allocated over {len(shares)} orders")
        return AllocationResult(success=True, orders_updated=len(shares), total_cost_allocated=total)

    def _cost_logs(self, campaign_id, business_id) -> List[Tuple[object, object, Decimal]]:
        rows = (
            self.db.query(AdCostLog.id, AdCostLog.order_id, AdCostLog.allocated_cost)
            .filter(AdCostLog.campaign_id == campaign_id, AdCostLog.business_id == business_id)
            .all()
        )
        return [(row.id, row.order_id, Decimal(row.allocated_cost or 0)) for row in rows]

    def deallocate_campaign_costs(self, campaign_id, business_id, user_id=None) -> AllocationResult:
        """Subtract every logged amount from its order and reset the campaign.

        Each log is claimed by deleting it first. A log that a concurrent
        deallocation already removed matches zero rows and is not subtracted
        again.

        Raises:
            CampaignNotFoundError: no such campaign in this business
            AllocationError: the store rejected the write (nothing is changed)
        """
        campaign = self._get_campaign(campaign_id, business_id)
        logs = self._cost_logs(campaign.id, business_id)

        total = Decimal("0")
        reversed_orders = 0
        try:
            for log_id, order_id, amount in logs:
                claimed = self.db.execute(
                    delete(AdCostLog)
                    .where(AdCostLog.id == log_id)
                    .execution_options(synchronize_session=False)
                )
                if claimed.rowcount == 0:
                    logger.warning(f"[ALLOCATION] Campaign {campaign_id}: cost log {log_id} already reversed")
                    continue
                remaining = Order.ad_cost - amount
                self.db.execute(
                    update(Order)
                    .where(Order.id == order_id, Order.business_id == business_id)
                    .values(ad_cost=case((remaining < 0, Decimal("0")), else_=remaining))
                    .execution_options(synchronize_session=False)
                )
                total += amount
                reversed_orders += 1

            reset = self.db.execute(
                update(AdCampaign)
                .where(
                    AdCampaign.id == campaign.id,
                    AdCampaign.business_id == business_id,
                    AdCampaign.is_allocated.is_(True),
                )
                .values(is_allocated=False, allocated_at=None)
                .execution_options(synchronize_session=False)
            )
            was_allocated = reset.rowcount > 0

            if reversed_orders or was_allocated:
                AuditService(self.db).log(
                    business_id=business_id,
                    user_id=user_id,
                    entity_type="ad_campaign",
                    entity_id=campaign.id,
                    action="deallocate",
                    before={"is_allocated": was_allocated},
                    after={"is_allocated": False, "orders_updated": reversed_orders, "total_cost_removed": str(total)},
                )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"[ALLOCATION] Campaign {campaign_id} deallocation failed: {e}")
            raise AllocationError(
                "Failed to deallocate campaign costs", context={"campaign_id": str(campaign_id)}
            ) from e

        self.db.expire_all()
        logger.info(f"[ALLOCATION] Campaign {campaign_id}: {total} removed from {reversed_orders} orders")
        return AllocationResult(success=True, orders_updated=reversed_orders, total_cost_allocated=total)

    def reallocate_campaign_costs(self, campaign_id, business_id, user_id=None) -> AllocationResult:
        """Deallocate then allocate. A failed deallocation raises before allocating."""
        self.deallocate_campaign_costs(campaign_id, business_id, user_id=user_id)
        return self.allocate_campaign_costs(campaign_id, business_id, user_id=user_id)

    def allocate_all_pending_campaigns(self, business_id, user_id=None) -> AllocationResult:
        """Allocate every unallocated campaign of a business, oldest first.

        One campaign's failure is recorded and does not stop the others.
        """
        pending = (
            self.db.query(AdCampaign.id, AdCampaign.campaign_name, AdCampaign.campaign_date)
            .filter(AdCampaign.business_id == business_id, AdCampaign.is_allocated.is_(False))
            .order_by(AdCampaign.campaign_date.asc(), AdCampaign.created_at.asc())
            .all()
        )

        result = AllocationResult(success=True)
        for campaign_id, name, campaign_date in pending:
            try:
                single = self.allocate_campaign_costs(campaign_id, business_id, user_id=user_id)
            except AllocationError as e:
                result.errors.append(f"{name or campaign_date}: {e.to_user_message()}")
                if e.__cause__ is not None:
                    capture_exception(e.__cause__, extra={"campaign_id": str(campaign_id)})
                continue
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"[ALLOCATION] Campaign {campaign_id} failed while loading orders: {e}")
                capture_exception(e, extra={"campaign_id": str(campaign_id)})
                result.errors.append(f"{name or campaign_date}: Failed to allocate campaign costs")
                continue
            result.orders_updated += single.orders_updated
            result.total_cost_allocated += single.total_cost_allocated

        result.success = not result.errors
        logger.info(
            f"[ALLOCATION] Business {business_id}: {len(pending)} pending campaigns, "
            f"{result.orders_updated} orders updated, {len(result.errors)} failed"
        )
        return result
