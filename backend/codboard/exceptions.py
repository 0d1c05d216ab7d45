"""
Domain Exceptions
=================

Exception types raised by the import pipeline, the usage gate and the
allocation engine.

WHY THIS FILE EXISTS
--------------------
Batch operations have two kinds of failure:
- Per-item failures (bad row, unknown SKU, failed insert). These are
  collected into the import report and never raised.
- Whole-operation failures (quota, expired trial, campaign already
  allocated). These abort with no writes and are raised to the caller.

Only the second kind lives here. Routers translate them into HTTP errors.

RELATED FILES
-------------
- codboard/services/orders_service.py: raises EmptyFileError, QuotaExceededError
- codboard/services/usage_service.py: raises QuotaExceededError, TrialExpiredError
- codboard/services/ad_cost_allocation.py: raises AllocationError subclasses
- codboard/routers/*.py: maps these to status codes
"""

from typing import Any, Dict, Optional


class CodboardError(Exception):
    """
    Base exception for all domain errors.

    USAGE:
        try:
            service.allocate_campaign_costs(...)
        except CodboardError as e:
            raise HTTPException(status_code=400, detail=e.to_user_message())
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_user_message(self) -> str:
        return self.message


# Import pipeline -------------------------------------------------------

class ImportFileError(CodboardError):
    """The uploaded file cannot be processed at all."""


class EmptyFileError(ImportFileError):
    """File has no header row or no data rows."""

    def __init__(self, message: str = "File is empty or contains only a header row"):
        super().__init__(message)


class UnsupportedFileError(ImportFileError):
    """File is not decodable text (wrong encoding or binary spreadsheet)."""


# Usage gate ------------------------------------------------------------

class UsageLimitError(CodboardError):
    """Parent for billing gate refusals. Mapped to HTTP 402."""


class TrialExpiredError(UsageLimitError):
    def __init__(self, message: str = "Your free trial has ended. Please upgrade your plan to add more orders."):
        super().__init__(message)


class QuotaExceededError(UsageLimitError):
    """
    Adding `requested` orders would exceed the monthly order limit.

    ATTRIBUTES:
        current: Orders already recorded this month
        limit: Plan limit
        requested: Orders the caller tried to add
    """

    def __init__(self, current: int, limit: int, requested: int):
        remaining = max(0, limit - current)
        super().__init__(
            f"Monthly order limit reached ({current}/{limit}). "
            f"Requested {requested}, remaining {remaining}. Upgrade your plan to add more orders.",
            context={"current": current, "limit": limit, "requested": requested},
        )
        self.current = current
        self.limit = limit
        self.requested = requested


# Allocation ------------------------------------------------------------

class AllocationError(CodboardError):
    """Parent for allocation engine failures."""


class CampaignNotFoundError(AllocationError):
    def __init__(self, campaign_id: Any):
        super().__init__("Campaign not found", context={"campaign_id": str(campaign_id)})
        self.campaign_id = campaign_id


class AlreadyAllocatedError(AllocationError):
    """Campaign costs were already distributed. Deallocate before allocating again."""

    def __init__(self, campaign_id: Any):
        super().__init__(
            "Campaign costs have already been allocated",
            context={"campaign_id": str(campaign_id)},
        )
        self.campaign_id = campaign_id


class InvalidAllocationError(AllocationError):
    """Product percentages do not add up to 100, or a product is invalid."""


# Catalog ---------------------------------------------------------------

class ProductNotFoundError(CodboardError):
    def __init__(self, product_id: Any):
        super().__init__("Product not found", context={"product_id": str(product_id)})
        self.product_id = product_id


class DuplicateSkuError(CodboardError):
    def __init__(self, sku: str):
        super().__init__(f"A product with SKU '{sku}' already exists", context={"sku": sku})
        self.sku = sku
