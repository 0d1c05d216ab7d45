"""Order import/export endpoints.

WHAT: CSV upload into orders, CSV export of orders, import template download
WHY: Sellers keep orders in spreadsheets; bulk import is how they onboard and
     how most of them add orders day to day

REFERENCES:
  - codboard/services/orders_service.py: import pipeline and export
  - codboard/services/order_import.py: column aliases, row rules, template
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from codboard import models, schemas
from codboard.database import get_db
from codboard.deps import Settings, get_current_user, get_settings
from codboard.exceptions import CodboardError
from codboard.routers.errors import to_http_exception
from codboard.services.order_import import generate_order_template
from codboard.services.orders_service import OrderFilters, OrdersService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/businesses",
    tags=["Orders"],
)


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post(
    "/{business_id}/orders/import",
    response_model=schemas.ImportReportOut,
    summary="Import orders from CSV",
    description="""
    Upload a CSV of orders. Rows are matched to existing products by SKU.

    Invalid rows and unknown SKUs are reported per row and skipped; valid
    rows are imported. The whole file is refused (402) when it would exceed
    the plan's monthly order limit.
    """,
)
def import_orders(
    business_id: UUID,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    if str(current_user.business_id) != str(business_id):
        raise HTTPException(status_code=403, detail="Business access denied")

    content = file.file.read(settings.IMPORT_MAX_FILE_BYTES + 1)
    if len(content) > settings.IMPORT_MAX_FILE_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File is larger than {settings.IMPORT_MAX_FILE_BYTES} bytes",
        )

    service = OrdersService(
        db,
        order_number_prefix=settings.ORDER_NUMBER_PREFIX,
        max_order_number_attempts=settings.ORDER_NUMBER_MAX_ATTEMPTS,
    )
    try:
        report = service.import_orders(business_id, content, user_id=current_user.id)
    except CodboardError as e:
        logger.info(f"[IMPORT] Business {business_id}: import refused: {e.message}")
        raise to_http_exception(e)

    return report.to_dict()


@router.get(
    "/{business_id}/orders/export",
    summary="Export orders as CSV",
)
def export_orders(
    business_id: UUID,
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    status_id: Optional[UUID] = Query(None),
    search: Optional[str] = Query(None, description="Order number, customer name or phone"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    if str(current_user.business_id) != str(business_id):
        raise HTTPException(status_code=403, detail="Business access denied")

    filters = OrderFilters(date_from=date_from, date_to=date_to, status_id=status_id, search=search)
    content = OrdersService(db).export_orders_csv(business_id, filters)
    return _csv_response(content, f"orders-{date.today().isoformat()}.csv")


@router.get(
    "/{business_id}/orders/import/template",
    summary="Download the import template",
)
def download_import_template(
    business_id: UUID,
    language: str = Query("en", pattern="^(en|ar)$"),
    current_user: models.User = Depends(get_current_user),
):
    if str(current_user.business_id) != str(business_id):
        raise HTTPException(status_code=403, detail="Business access denied")

    return _csv_response(generate_order_template(language), f"orders-import-template-{language}.csv")
