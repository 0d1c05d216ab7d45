"""Product catalog endpoints (the SKUs CSV imports resolve against)."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from codboard import models, schemas
from codboard.database import get_db
from codboard.deps import get_current_user
from codboard.exceptions import CodboardError
from codboard.routers.errors import to_http_exception
from codboard.services.products_service import ProductsService

router = APIRouter(
    prefix="/businesses",
    tags=["Products"],
)


@router.post(
    "/{business_id}/products",
    response_model=schemas.ProductOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create product",
)
def create_product(
    business_id: UUID,
    payload: schemas.ProductCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    if str(current_user.business_id) != str(business_id):
        raise HTTPException(status_code=403, detail="Business access denied")
    try:
        return ProductsService(db).create_product(
            business_id,
            name=payload.name,
            sku=payload.sku,
            price=payload.price,
            cost=payload.cost,
            is_active=payload.is_active,
        )
    except CodboardError as e:
        raise to_http_exception(e)


@router.get(
    "/{business_id}/products",
    response_model=List[schemas.ProductOut],
    summary="List products",
)
def list_products(
    business_id: UUID,
    active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, description="Name or SKU contains"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    if str(current_user.business_id) != str(business_id):
        raise HTTPException(status_code=403, detail="Business access denied")
    return ProductsService(db).list_products(business_id, active=active, search=search)
