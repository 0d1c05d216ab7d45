"""Billing and usage gate.

WHAT:
    - BillingService: plan/trial state of a business (trial creation, plan
      changes, trial expiry)
    - UsageService: monthly order counting and the "can this business add N
      orders" check used before any order is written

WHY:
    The monthly order limit is the product's pricing axis. Bulk import asks
    the gate once for the whole batch so an import is either admitted in
    full or rejected with zero rows written.

REFERENCES:
    - codboard/services/orders_service.py (ensure_can_add_orders caller)
    - codboard/routers/billing.py (usage status endpoint)
"""

import calendar
import logging
from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..exceptions import QuotaExceededError, TrialExpiredError, UsageLimitError
from ..models import BusinessBilling, BillingStatusEnum, Order, PlanEnum, utcnow
from .audit_service import AuditService

logger = logging.getLogger(__name__)

# Plan -> (monthly order limit, lifetime price in USD). None = unlimited.
PLAN_MAPPING = {
    PlanEnum.starter: {"limit": 1000, "price": Decimal("25")},
    PlanEnum.growth: {"limit": 3000, "price": Decimal("35")},
    PlanEnum.pro: {"limit": None, "price": Decimal("50")},
}

TRIAL_DURATION_DAYS = 7


@dataclass
class UsageStatus:
    current_month_count: int
    limit: Optional[int]
    remaining: Optional[int]
    percent_used: float
    is_exceeded: bool
    month_label: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class UsageCheck:
    """Outcome of the usage gate. `error` is what ensure_can_add_orders raises."""
    allowed: bool
    message: Optional[str] = None
    error: Optional[UsageLimitError] = None


def month_bounds(today: date) -> tuple[date, date]:
    """First and last calendar day of the month containing `today`."""
    last_day = calendar.monthrange(today.year, today.month)[1]
    return today.replace(day=1), today.replace(day=last_day)


class BillingService:
    def __init__(self, db: Session):
        self.db = db

    def get_billing(self, business_id) -> Optional[BusinessBilling]:
        return (
            self.db.query(BusinessBilling)
            .filter(BusinessBilling.business_id == business_id)
            .first()
        )

    @staticmethod
    def is_trial_expired(billing: Optional[BusinessBilling], now: Optional[datetime] = None) -> bool:
        """True once a trial's end time has passed. Paid plans never expire."""
        if not billing or not billing.is_trial or not billing.trial_ends_at:
            return False
        return billing.trial_ends_at <= (now or utcnow())

    def create_trial_billing(
        self,
        business_id,
        trial_days: int = TRIAL_DURATION_DAYS,
        flush_only: bool = True,
    ) -> BusinessBilling:
        """Start a trial on the starter limit.

        flush_only: If True, only flush (don't commit) for callers that manage
        their own transaction.
        """
        trial_start = utcnow()
        billing = BusinessBilling(
            business_id=business_id,
            plan=PlanEnum.starter,
            status=BillingStatusEnum.trialing,
            monthly_order_limit=PLAN_MAPPING[PlanEnum.starter]["limit"],
            is_trial=True,
            trial_started_at=trial_start,
            trial_ends_at=trial_start + timedelta(days=trial_days),
        )
        self.db.add(billing)
        if flush_only:
            self.db.flush()
        else:
            self.db.commit()
        logger.info(f"[BILLING] Trial started for business {business_id}, ends {billing.trial_ends_at}")
        return billing

    def set_plan(self, business_id, plan: PlanEnum, user_id=None) -> BusinessBilling:
        """Move a business onto a paid plan, ending any trial."""
        billing = self.get_billing(business_id)
        if billing is None:
            billing = BusinessBilling(business_id=business_id)
            self.db.add(billing)
            before = None
        else:
            before = {
                "plan": billing.plan.value if billing.plan else None,
                "monthly_order_limit": billing.monthly_order_limit,
                "is_trial": billing.is_trial,
            }

        config = PLAN_MAPPING[plan]
        billing.plan = plan
        billing.monthly_order_limit = config["limit"]
        billing.lifetime_price_usd = config["price"]
        billing.is_trial = False
        billing.status = BillingStatusEnum.active
        billing.activated_at = utcnow()
        self.db.flush()

        AuditService(self.db).log(
            business_id=business_id,
            user_id=user_id,
            entity_type="business_billing",
            entity_id=billing.id,
            action="plan_changed",
            before=before,
            after={"plan": plan.value, "monthly_order_limit": config["limit"]},
        )
        self.db.commit()
        logger.info(f"[BILLING] Business {business_id} moved to plan {plan.value}")
        return billing


class UsageService:
    def __init__(self, db: Session):
        self.db = db
        self.billing = BillingService(db)

    def get_monthly_orders_count(self, business_id, today: Optional[date] = None) -> int:
        """Orders whose order_date falls in the calendar month of `today`."""
        start, end = month_bounds(today or utcnow().date())
        return (
            self.db.query(func.count(Order.id))
            .filter(
                Order.business_id == business_id,
                Order.order_date >= start,
                Order.order_date <= end,
            )
            .scalar()
        ) or 0

    def get_usage_status(self, business_id, today: Optional[date] = None) -> UsageStatus:
        today = today or utcnow().date()
        billing = self.billing.get_billing(business_id)
        limit = billing.monthly_order_limit if billing else None
        count = self.get_monthly_orders_count(business_id, today)

        if limit is None:
            remaining = None
            percent_used = 0.0
            is_exceeded = False
        else:
            remaining = max(0, limit - count)
            percent_used = min(100.0, (count / limit) * 100) if limit > 0 else 100.0
            is_exceeded = count >= limit

        return UsageStatus(
            current_month_count=count,
            limit=limit,
            remaining=remaining,
            percent_used=round(percent_used, 2),
            is_exceeded=is_exceeded,
            month_label=f"{calendar.month_name[today.month]} {today.year}",
        )

    def check_can_add_orders(self, business_id, orders_to_add: int, today: Optional[date] = None) -> UsageCheck:
        """Decide whether `orders_to_add` new orders fit the business's plan.

        An expired trial is refused before the monthly limit is looked at.
        """
        if self.billing.is_trial_expired(self.billing.get_billing(business_id)):
            logger.info(f"[USAGE] Business {business_id} blocked: trial expired")
            error = TrialExpiredError()
            return UsageCheck(allowed=False, message=error.to_user_message(), error=error)

        usage = self.get_usage_status(business_id, today)
        if usage.limit is not None and usage.current_month_count + orders_to_add > usage.limit:
            logger.info(
                f"[USAGE] Business {business_id} blocked: "
                f"{usage.current_month_count} + {orders_to_add} > {usage.limit}"
            )
            error = QuotaExceededError(usage.current_month_count, usage.limit, orders_to_add)
            return UsageCheck(allowed=False, message=error.to_user_message(), error=error)

        return UsageCheck(allowed=True)

    def ensure_can_add_orders(self, business_id, orders_to_add: int, today: Optional[date] = None) -> None:
        """Raise unless `orders_to_add` new orders fit the business's plan.

        Raises:
            TrialExpiredError: trial ended and no paid plan was activated
            QuotaExceededError: the monthly limit would be exceeded
        """
        check = self.check_can_add_orders(business_id, orders_to_add, today=today)
        if not check.allowed:
            raise check.error
