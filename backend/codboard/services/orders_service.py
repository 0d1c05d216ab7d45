"""Orders service: bulk CSV import, listing and CSV export.

WHAT:
    Drives the import pipeline end to end:

        parse -> headers -> rows -> SKU resolution -> quota gate -> write -> report

    and exposes the read side used by the orders router (list + export).

WHY:
    Sellers upload hundreds of orders at once from spreadsheets. The import is
    a best-effort batch: bad rows are reported and skipped, good rows are
    written, and nothing is written at all when the batch would break the
    plan's monthly limit.

TRANSACTIONS:
    - Everything up to the quota gate is read-only.
    - Each row is written (order + its line item) and committed on its own,
      so one failing row never takes a committed row down with it and a
      failed item never leaves an order behind.
    - Order numbers are protected by a unique constraint; a generated number
      that collides is regenerated and retried.

REFERENCES:
    - codboard/services/order_import.py (pure validation rules, report type)
    - codboard/services/usage_service.py (quota gate)
    - codboard/routers/orders.py (HTTP surface)
"""

import logging
import secrets
import string
import time
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..models import Order, OrderItem, OrderStatus, Product, utcnow
from ..utils.csv_rows import decode_upload, parse_csv_text, render_csv
from .audit_service import AuditService
from .order_import import (
    ERROR_INSERT_FAILED,
    ERROR_SKU_NOT_FOUND,
    ImportReport,
    ImportRow,
    RowValidationError,
    normalize_sku,
    validate_headers,
    validate_import_rows,
)
from .usage_service import UsageService

logger = logging.getLogger(__name__)

ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits

EXPORT_HEADERS = [
    "Order Number",
    "Date",
    "Status",
    "Customer",
    "Phone",
    "Address",
    "Revenue",
    "Cost",
    "Shipping",
    "Ad Cost",
    "Net Profit",
    "Notes",
]


@dataclass(frozen=True)
class SkuEntry:
    """Snapshot of the catalog fields the writer needs for one SKU."""
    product_id: UUID
    name: str
    cost: Decimal


@dataclass
class OrderFilters:
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    status_id: Optional[UUID] = None
    search: Optional[str] = None


class OrdersService:
    """Order import/export for one database session."""

    def __init__(self, db: Session, order_number_prefix: str = "ORD", max_order_number_attempts: int = 3):
        self.db = db
        self.order_number_prefix = order_number_prefix
        self.max_order_number_attempts = max(1, max_order_number_attempts)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def generate_order_number(self) -> str:
        """ORD-<unix millis>-<4 random [A-Z0-9]>."""
        suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(4))
        return f"{self.order_number_prefix}-{int(time.time() * 1000)}-{suffix}"

    def build_sku_index(self, business_id) -> Dict[str, SkuEntry]:
        """Active products with a SKU, keyed by trimmed lower-case SKU.

        Built once per import call and passed to the writer; never cached
        across calls.
        """
        products = (
            self.db.query(Product)
            .filter(
                Product.business_id == business_id,
                Product.is_active.is_(True),
                Product.sku.isnot(None),
            )
            .all()
        )
        index: Dict[str, SkuEntry] = {}
        for product in products:
            key = normalize_sku(product.sku)
            if key:
                index[key] = SkuEntry(product_id=product.id, name=product.name, cost=Decimal(product.cost or 0))
        return index

    def build_status_index(self, business_id) -> Dict[Optional[str], UUID]:
        """Status key -> id. The `None` key holds the business's default status."""
        statuses = self.db.query(OrderStatus).filter(OrderStatus.business_id == business_id).all()
        index: Dict[Optional[str], UUID] = {status.key: status.id for status in statuses}
        default = next((s for s in statuses if s.is_default), None)
        if default is not None:
            index[None] = default.id
        return index

    def _order_number_taken(self, business_id, order_number: str) -> bool:
        return (
            self.db.query(Order.id)
            .filter(Order.business_id == business_id, Order.order_number == order_number)
            .first()
            is not None
        )

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_orders(
        self,
        business_id,
        content: Union[str, bytes],
        user_id=None,
        today: Optional[date] = None,
    ) -> ImportReport:
        """Import a CSV of orders for a business.

        Returns:
            ImportReport with success/failed counts and per-row errors.

        Raises:
            EmptyFileError / UnsupportedFileError: unreadable upload
            TrialExpiredError / QuotaExceededError: batch refused, nothing written
        """
        today = today or utcnow().date()
        text = decode_upload(content) if isinstance(content, bytes) else content
        headers, rows = parse_csv_text(text)

        report = ImportReport(total_rows=len(rows))

        header_match = validate_headers(headers)
        if not header_match.is_valid:
            report.header_errors = header_match.missing_required
            logger.info(f"[IMPORT] Business {business_id}: rejected, missing columns {header_match.missing_required}")
            return report

        valid_rows, invalid_rows = validate_import_rows(rows, header_match.column_mapping)
        for row_number, errors in invalid_rows.items():
            report.record_failure(row_number, errors)

        sku_index = self.build_sku_index(business_id)
        resolved = []
        for row in valid_rows:
            entry = sku_index.get(row.sku_key)
            if entry is None:
                report.record_failure(
                    row.row_number,
                    [RowValidationError(
                        row_number=row.row_number,
                        column="SKU",
                        message="Product not found, it must be created first",
                        value=row.sku,
                        code=ERROR_SKU_NOT_FOUND,
                    )],
                )
            else:
                resolved.append((row, entry))

        if resolved:
            # Raises before any write when the batch does not fit the plan
            UsageService(self.db).ensure_can_add_orders(business_id, len(resolved), today=today)

        status_index = self.build_status_index(business_id)
        for row, entry in resolved:
            try:
                order = self._write_row(business_id, row, entry, status_index, user_id, today)
            except Exception as e:
                logger.error(f"[IMPORT] Row {row.row_number} insert failed: {e}")
                report.record_failure(
                    row.row_number,
                    [RowValidationError(
                        row_number=row.row_number,
                        column="",
                        message=f"Could not save order: {e.__class__.__name__}",
                        code=ERROR_INSERT_FAILED,
                    )],
                )
                continue
            report.record_success(order.id)

        if report.success:
            AuditService(self.db).log(
                business_id=business_id,
                user_id=user_id,
                entity_type="orders",
                action="import",
                after={"success": report.success, "failed": report.failed, "total_rows": report.total_rows},
            )
            self.db.commit()

        logger.info(
            f"[IMPORT] Business {business_id}: {report.success} imported, "
            f"{report.failed} failed of {report.total_rows} rows"
        )
        return report

    def _write_row(
        self,
        business_id,
        row: ImportRow,
        entry: SkuEntry,
        status_index: Dict[Optional[str], UUID],
        user_id,
        today: date,
    ) -> Order:
        """Insert one order with its line item and commit.

        A generated order number that collides is regenerated up to
        `max_order_number_attempts` times. Any other error is re-raised
        after the row has been rolled back.
        """
        quantity = row.quantity
        unit_price = row.price
        unit_cost = entry.cost
        notes = " | ".join(part for part in (f"Product: {row.product}" if row.product else None, row.notes) if part) or None

        attempts = 1 if row.order_number else self.max_order_number_attempts
        last_error: Optional[IntegrityError] = None
        for attempt in range(1, attempts + 1):
            order_number = row.order_number or self.generate_order_number()
            order = Order(
                business_id=business_id,
                order_number=order_number,
                order_date=row.order_date or today,
                customer_name=row.customer_name,
                customer_phone=row.phone,
                customer_address=row.customer_address,
                status_id=status_index.get(row.status, status_index.get(None)),
                revenue=unit_price * quantity,
                cost=unit_cost * quantity,
                shipping_cost=Decimal("0"),
                ad_cost=Decimal("0"),
                notes=notes,
                created_by=user_id,
            )
            order.items.append(OrderItem(
                business_id=business_id,
                product_id=entry.product_id,
                quantity=quantity,
                unit_price=unit_price,
                unit_cost=unit_cost,
            ))
            self.db.add(order)
            try:
                self.db.commit()
                return order
            except IntegrityError as e:
                self.db.rollback()
                if row.order_number or not self._order_number_taken(business_id, order_number):
                    raise
                last_error = e
                logger.warning(f"[IMPORT] Order number {order_number} collided (attempt {attempt}/{attempts})")
            except Exception:
                self.db.rollback()
                raise

        logger.error(f"[IMPORT] Row {row.row_number}: no free order number after {attempts} attempts")
        raise last_error

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def list_orders(self, business_id, filters: Optional[OrderFilters] = None, limit: Optional[int] = None) -> List[Order]:
        filters = filters or OrderFilters()
        query = (
            self.db.query(Order)
            .options(joinedload(Order.status))
            .filter(Order.business_id == business_id)
        )
        if filters.date_from:
            query = query.filter(Order.order_date >= filters.date_from)
        if filters.date_to:
            query = query.filter(Order.order_date <= filters.date_to)
        if filters.status_id:
            query = query.filter(Order.status_id == filters.status_id)
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            query = query.filter(or_(
                Order.order_number.ilike(pattern),
                Order.customer_name.ilike(pattern),
                Order.customer_phone.ilike(pattern),
            ))
        query = query.order_by(Order.order_date.desc(), Order.created_at.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    def export_orders_csv(self, business_id, filters: Optional[OrderFilters] = None) -> str:
        """Orders as BOM-prefixed CSV, every cell quoted."""
        orders = self.list_orders(business_id, filters)
        rows = [
            [
                order.order_number,
                order.order_date.isoformat(),
                order.status.label if order.status else "",
                order.customer_name or "",
                order.customer_phone or "",
                order.customer_address or "",
                _money(order.revenue),
                _money(order.cost),
                _money(order.shipping_cost),
                _money(order.ad_cost),
                _money(order.profit),
                order.notes or "",
            ]
            for order in orders
        ]
        logger.info(f"[EXPORT] Business {business_id}: {len(rows)} orders exported")
        return render_csv(EXPORT_HEADERS, rows)


def _money(value) -> str:
    return f"{Decimal(value or 0):.2f}"
