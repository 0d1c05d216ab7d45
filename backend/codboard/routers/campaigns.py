"""Advertising campaign endpoints.

WHAT: Campaign CRUD, ROAS stats, and cost allocation (allocate, deallocate,
      reallocate, allocate all pending)
WHY: Ad spend is entered per day and platform; allocation moves it onto the
     orders of that day so order profit reflects advertising

REFERENCES:
  - codboard/services/advertising_service.py: catalog + stats
  - codboard/services/ad_cost_allocation.py: allocation engine
"""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from codboard import models, schemas
from codboard.database import get_db
from codboard.deps import get_current_user
from codboard.exceptions import CodboardError
from codboard.routers.errors import to_http_exception
from codboard.services.ad_cost_allocation import AdCostAllocationService
from codboard.services.advertising_service import AdvertisingService, CampaignProductSplit

router = APIRouter(
    prefix="/businesses",
    tags=["Campaigns"],
)


def _check_access(business_id: UUID, current_user: models.User) -> None:
    if str(current_user.business_id) != str(business_id):
        raise HTTPException(status_code=403, detail="Business access denied")


def _campaign_to_schema(campaign: models.AdCampaign, performance) -> schemas.CampaignOut:
    out = schemas.CampaignOut.model_validate(campaign)
    if performance is not None:
        out.orders_count = performance.orders_count
        out.revenue_generated = performance.revenue_generated
        out.roas = performance.roas
    return out


def _splits(products: List[schemas.CampaignProductIn]) -> List[CampaignProductSplit]:
    return [CampaignProductSplit(p.product_id, p.allocation_percentage) for p in products]


# ============================================================================
# CATALOG
# ============================================================================

@router.post(
    "/{business_id}/campaigns",
    response_model=schemas.CampaignOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create ad campaign",
)
def create_campaign(
    business_id: UUID,
    payload: schemas.CampaignCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    _check_access(business_id, current_user)
    service = AdvertisingService(db)
    try:
        campaign = service.create_campaign(
            business_id,
            campaign_date=payload.campaign_date,
            platform=payload.platform,
            total_cost=payload.total_cost,
            products=_splits(payload.products),
            campaign_name=payload.campaign_name,
            notes=payload.notes,
            user_id=current_user.id,
        )
    except CodboardError as e:
        raise to_http_exception(e)
    return _campaign_to_schema(campaign, None)


@router.get(
    "/{business_id}/campaigns",
    response_model=List[schemas.CampaignOut],
    summary="List ad campaigns",
)
def list_campaigns(
    business_id: UUID,
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    platform: Optional[models.AdPlatformEnum] = Query(None),
    is_allocated: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, description="Campaign name contains"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    _check_access(business_id, current_user)
    service = AdvertisingService(db)
    campaigns = service.list_campaigns(
        business_id,
        date_from=date_from,
        date_to=date_to,
        platform=platform,
        is_allocated=is_allocated,
        search=search,
    )
    performance = service.get_performance(campaigns)
    return [_campaign_to_schema(c, performance.get(c.id)) for c in campaigns]


@router.get(
    "/{business_id}/campaigns/stats",
    response_model=schemas.CampaignStatsOut,
    summary="Spend, revenue and ROAS summary",
)
def get_campaign_stats(
    business_id: UUID,
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    _check_access(business_id, current_user)
    return AdvertisingService(db).get_campaign_stats(business_id, date_from=date_from, date_to=date_to)


@router.post(
    "/{business_id}/campaigns/allocate-pending",
    response_model=schemas.AllocationResultOut,
    summary="Allocate every unallocated campaign",
)
def allocate_pending_campaigns(
    business_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    _check_access(business_id, current_user)
    result = AdCostAllocationService(db).allocate_all_pending_campaigns(business_id, user_id=current_user.id)
    return result.to_dict()


@router.get(
    "/{business_id}/campaigns/{campaign_id}",
    response_model=schemas.CampaignOut,
    summary="Get ad campaign with performance",
)
def get_campaign(
    business_id: UUID,
    campaign_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    _check_access(business_id, current_user)
    service = AdvertisingService(db)
    try:
        campaign = service.get_campaign(campaign_id, business_id)
    except CodboardError as e:
        raise to_http_exception(e)
    return _campaign_to_schema(campaign, service.get_performance([campaign]).get(campaign.id))


@router.patch(
    "/{business_id}/campaigns/{campaign_id}",
    response_model=schemas.CampaignOut,
    summary="Update ad campaign",
)
def update_campaign(
    business_id: UUID,
    campaign_id: UUID,
    payload: schemas.CampaignUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    _check_access(business_id, current_user)
    try:
        campaign = AdvertisingService(db).update_campaign(
            campaign_id,
            business_id,
            campaign_date=payload.campaign_date,
            platform=payload.platform,
            total_cost=payload.total_cost,
            products=_splits(payload.products) if payload.products is not None else None,
            campaign_name=payload.campaign_name,
            notes=payload.notes,
            user_id=current_user.id,
        )
    except CodboardError as e:
        raise to_http_exception(e)
    return _campaign_to_schema(campaign, None)


@router.delete(
    "/{business_id}/campaigns/{campaign_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete ad campaign",
)
def delete_campaign(
    business_id: UUID,
    campaign_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Delete a campaign. Allocated spend is removed from its orders first."""
    _check_access(business_id, current_user)
    try:
        AdvertisingService(db).delete_campaign(campaign_id, business_id, user_id=current_user.id)
    except CodboardError as e:
        raise to_http_exception(e)
    return None


# ============================================================================
# ALLOCATION
# ============================================================================

@router.post(
    "/{business_id}/campaigns/{campaign_id}/allocate",
    response_model=schemas.AllocationResultOut,
    summary="Allocate campaign cost to orders",
    description="""
    Spread the campaign's per-product cost over the orders placed on the
    campaign date that contain targeted products. Returns 409 when the
    campaign is already allocated.
    """,
)
def allocate_campaign(
    business_id: UUID,
    campaign_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    _check_access(business_id, current_user)
    try:
        result = AdCostAllocationService(db).allocate_campaign_costs(campaign_id, business_id, user_id=current_user.id)
    except CodboardError as e:
        raise to_http_exception(e)
    return result.to_dict()


@router.post(
    "/{business_id}/campaigns/{campaign_id}/deallocate",
    response_model=schemas.AllocationResultOut,
    summary="Remove campaign cost from orders",
)
def deallocate_campaign(
    business_id: UUID,
    campaign_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    _check_access(business_id, current_user)
    try:
        result = AdCostAllocationService(db).deallocate_campaign_costs(campaign_id, business_id, user_id=current_user.id)
    except CodboardError as e:
        raise to_http_exception(e)
    return result.to_dict()


@router.post(
    "/{business_id}/campaigns/{campaign_id}/reallocate",
    response_model=schemas.AllocationResultOut,
    summary="Recompute campaign allocation",
)
def reallocate_campaign(
    business_id: UUID,
    campaign_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    _check_access(business_id, current_user)
    try:
        result = AdCostAllocationService(db).reallocate_campaign_costs(campaign_id, business_id, user_id=current_user.id)
    except CodboardError as e:
        raise to_http_exception(e)
    return result.to_dict()
