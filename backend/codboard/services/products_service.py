"""Product catalog.

Imports only attach orders to existing products (matched by SKU), so the
catalog must be populated first. SKUs are unique per business regardless of
case, matching how the import resolves them.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..exceptions import DuplicateSkuError, ProductNotFoundError
from ..models import Product
from .order_import import normalize_sku

logger = logging.getLogger(__name__)


class ProductsService:
    def __init__(self, db: Session):
        self.db = db

    def create_product(
        self,
        business_id,
        name: str,
        sku: Optional[str] = None,
        price: Decimal = Decimal("0"),
        cost: Decimal = Decimal("0"),
        is_active: bool = True,
    ) -> Product:
        sku = (sku or "").strip() or None
        if sku and self._sku_taken(business_id, sku):
            raise DuplicateSkuError(sku)

        product = Product(
            business_id=business_id,
            name=name.strip(),
            sku=sku,
            price=Decimal(price),
            cost=Decimal(cost),
            is_active=is_active,
        )
        self.db.add(product)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateSkuError(sku or "")
        self.db.refresh(product)
        logger.info(f"[PRODUCTS] Created product {product.id} (sku={sku}) for business {business_id}")
        return product

    def _sku_taken(self, business_id, sku: str) -> bool:
        return (
            self.db.query(Product.id)
            .filter(Product.business_id == business_id, func.lower(func.trim(Product.sku)) == normalize_sku(sku))
            .first()
            is not None
        )

    def get_product(self, product_id, business_id) -> Product:
        product = (
            self.db.query(Product)
            .filter(Product.id == product_id, Product.business_id == business_id)
            .first()
        )
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def list_products(self, business_id, active: Optional[bool] = None, search: Optional[str] = None) -> List[Product]:
        query = self.db.query(Product).filter(Product.business_id == business_id)
        if active is not None:
            query = query.filter(Product.is_active.is_(active))
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
        return query.order_by(Product.name.asc()).all()
