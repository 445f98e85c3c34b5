"""
Product catalog lookups used during checkout.

The product service owns products; checkout only needs the price snapshot,
the active flag and, for stock-tracked products, a conditional decrement
(``available_qty`` NULL means stock is not tracked). Neither stock function
commits: both run inside the caller's order transaction.
"""

import logging
from typing import Dict, Iterable

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from ..errors import OutOfStockError
from ..models import Product


logger = logging.getLogger(__name__)


def lookup_products(db: Session, product_ids: Iterable[int]) -> Dict[int, Product]:
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    rows = db.query(Product).filter(Product.id.in_(ids)).all()
    return {p.id: p for p in rows}


def decrement_stock(db: Session, product_id: int, quantity: int, product_name: str = None) -> None:
    """Take ``quantity`` units from a tracked product or raise OutOfStockError."""
    result = db.execute(
        update(Product)
        .where(
            Product.id == product_id,
            or_(Product.available_qty.is_(None), Product.available_qty >= quantity),
        )
        .values(
            available_qty=Product.available_qty - quantity,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        available = db.query(Product.available_qty).filter(Product.id == product_id).scalar()
        raise OutOfStockError(product_name or f"product {product_id}", quantity, available)


def restock(db: Session, product_id: int, quantity: int) -> None:
    """Return units to a tracked product. Untracked products are left alone."""
    db.execute(
        update(Product)
        .where(Product.id == product_id, Product.available_qty.isnot(None))
        .values(available_qty=Product.available_qty + quantity)
        .execution_options(synchronize_session=False)
    )
    logger.debug("Restocked %d unit(s) of product %d", quantity, product_id)
