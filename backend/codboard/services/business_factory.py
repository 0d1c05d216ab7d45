"""Business Factory Service - tenant bootstrap.

WHAT: Creates a business with its trial billing row and default order statuses.
WHY: Imports resolve the CSV `status` column against the business's own
     status table and the usage gate reads the billing row, so a business is
     only usable once both exist.

REFERENCES:
    - codboard/services/usage_service.py (BillingService.create_trial_billing)
    - codboard/services/orders_service.py (build_status_index)
"""

from sqlalchemy.orm import Session

from ..models import Business, OrderStatus
from .usage_service import BillingService, TRIAL_DURATION_DAYS

# (key, label, is_default)
DEFAULT_ORDER_STATUSES = (
    ("new", "New", True),
    ("confirmed", "Confirmed", False),
    ("processing", "Processing", False),
    ("shipped", "Shipped", False),
    ("delivered", "Delivered", False),
    ("returned", "Returned", False),
    ("cancelled", "Cancelled", False),
)


def seed_default_statuses(db: Session, business_id) -> list[OrderStatus]:
    statuses = [
        OrderStatus(business_id=business_id, key=key, label=label, is_default=is_default, sort_order=position)
        for position, (key, label, is_default) in enumerate(DEFAULT_ORDER_STATUSES)
    ]
    db.add_all(statuses)
    db.flush()
    return statuses


def create_business_with_trial(
    db: Session,
    name: str,
    currency: str = "EGP",
    trial_days: int = TRIAL_DURATION_DAYS,
    flush_only: bool = True,
) -> Business:
    """Create a business with a trial and the default status set.

    Parameters:
        flush_only: If True, only flush (don't commit). Default True for
                    callers that manage their own transaction.

    Example:
        business = create_business_with_trial(db, "Cairo Gadgets")
        db.add(User(email=email, name=name, business_id=business.id))
        db.commit()
    """
    business = Business(name=name.strip() or "My Business", currency=currency)
    db.add(business)
    db.flush()

    BillingService(db).create_trial_billing(business.id, trial_days=trial_days, flush_only=True)
    seed_default_statuses(db, business.id)

    if not flush_only:
        db.commit()
        db.refresh(business)

    return business
