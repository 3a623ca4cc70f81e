# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/app/services/inventory_service.py

from __future__ import annotations

import logging

from sqlalchemy import update

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product
from .tenant_service import scoped_query
"""
Inventory Stock Ledger Invariants (authoritative)

- Product.stock is a mutable counter owned by this module.
- stock >= 0 at all times, including under concurrent writers.
- The only decrement path is one conditional statement:
      UPDATE products SET stock = stock - :qty
      WHERE id = :id AND org_id = :org AND stock >= :qty
  and its rowcount decides success. There is no read-then-write.
- Callers run inside an open transaction; a failure here aborts it, which
  also rolls back earlier decrements made in the same call.
"""


logger = logging.getLogger(__name__)


def load_products(org_id: int, product_ids) -> dict[int, Product]:
    """
    Load every requested product for the tenant.

    Raises NotFoundError naming the first id that is missing or owned by
    another organization.
    """
    wanted = list(dict.fromkeys(product_ids))
    rows = scoped_query(Product, org_id).filter(Product.id.in_(wanted)).all()
    found = {p.id: p for p in rows}
    for product_id in wanted:
        if product_id not in found:
            raise NotFoundError("Product", product_id)
    return found


def decrement_stock(org_id: int, product_id: int, quantity: int) -> None:
    """
    Atomically take quantity units out of stock.

    Stock changes only if stock >= quantity held when the UPDATE ran;
    otherwise nothing is written.

    Raises:
        ValidationError: quantity is not positive
        NotFoundError: product missing or owned by another org
        InsufficientStockError: not enough stock (available, requested)
    """
    if quantity <= 0:
        raise ValidationError("quantity must be > 0", details={"quantity": quantity})

    stmt = (
        update(Product)
        .where(
            Product.id == product_id,
            Product.org_id == org_id,
            Product.stock >= quantity,
        )
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount == 1:
        return

    available = (
        db.session.query(Product.stock)
        .filter(Product.id == product_id, Product.org_id == org_id)
        .scalar()
    )
    if available is None:
        raise NotFoundError("Product", product_id)

    logger.info(
        "Stock decrement rejected org=%s product=%s available=%s requested=%s",
        org_id, product_id, available, quantity,
    )
    raise InsufficientStockError(product_id=product_id, available=available, requested=quantity)


def get_low_stock_products(session, org_id: int, *, limit: int = 20) -> list[Product]:
    """Active products at or below their minimum, lowest stock first."""
    return (
        session.query(Product)
        .filter(
            Product.org_id == org_id,
            Product.is_active.is_(True),
            Product.stock <= Product.min_stock,
        )
        .order_by(Product.stock.asc(), Product.id.asc())
        .limit(limit)
        .all()
    )
