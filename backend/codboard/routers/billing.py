"""Usage and plan endpoints.

WHAT: Monthly order usage against the plan limit, and plan activation
WHY: The import refuses batches that overflow the limit; sellers need to see
     how much room is left before uploading
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from codboard import models, schemas
from codboard.database import get_db
from codboard.deps import get_current_user
from codboard.services.usage_service import BillingService, UsageService

router = APIRouter(
    prefix="/businesses",
    tags=["Billing"],
)


@router.get(
    "/{business_id}/usage",
    response_model=schemas.UsageStatusOut,
    summary="Current month order usage",
)
def get_usage(
    business_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    if str(current_user.business_id) != str(business_id):
        raise HTTPException(status_code=403, detail="Business access denied")
    return UsageService(db).get_usage_status(business_id).to_dict()


@router.put(
    "/{business_id}/billing/plan",
    response_model=schemas.UsageStatusOut,
    summary="Activate a plan",
)
def set_plan(
    business_id: UUID,
    payload: schemas.PlanChange,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Move the business onto a paid plan (ends the trial) and return the new usage."""
    if str(current_user.business_id) != str(business_id):
        raise HTTPException(status_code=403, detail="Business access denied")
    BillingService(db).set_plan(business_id, payload.plan, user_id=current_user.id)
    return UsageService(db).get_usage_status(business_id).to_dict()
