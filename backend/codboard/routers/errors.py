"""Translate domain exceptions into HTTP errors.

Status codes:
  400 unreadable or empty upload
  402 plan refuses new orders (trial ended / monthly limit)
  404 campaign or product not in this business
  409 campaign already allocated, duplicate SKU
  422 invalid campaign product split
  500 allocation write failed
"""

from fastapi import HTTPException, status

from codboard.exceptions import (
    AllocationError,
    AlreadyAllocatedError,
    CampaignNotFoundError,
    CodboardError,
    DuplicateSkuError,
    ImportFileError,
    InvalidAllocationError,
    ProductNotFoundError,
    UsageLimitError,
)

_STATUS_BY_TYPE = (
    (ImportFileError, status.HTTP_400_BAD_REQUEST),
    (UsageLimitError, status.HTTP_402_PAYMENT_REQUIRED),
    (CampaignNotFoundError, status.HTTP_404_NOT_FOUND),
    (ProductNotFoundError, status.HTTP_404_NOT_FOUND),
    (AlreadyAllocatedError, status.HTTP_409_CONFLICT),
    (DuplicateSkuError, status.HTTP_409_CONFLICT),
    (InvalidAllocationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (AllocationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def to_http_exception(exc: CodboardError) -> HTTPException:
    for exc_type, status_code in _STATUS_BY_TYPE:
        if isinstance(exc, exc_type):
            return HTTPException(status_code=status_code, detail=exc.to_user_message())
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.to_user_message())
