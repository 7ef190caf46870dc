# Overview: Service-layer operations for the stock ledger; the only writer of product quantities.

from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func

from ..extensions import db
from ..models import Product, RawMaterialProduct, SaleItem, StockEntry, ENTRY_TYPES
from ..validation import ValidationError, NotFoundError
from .concurrency import increment

"""
Stock Ledger Invariants (authoritative)

- A product's quantity lives in exactly one authoritative field:
  total_meters for RAW_MATERIAL (stock_level mirrors it), stock_level otherwise.
- Every change is an additive SQL-expression update, never read-modify-write.
- Stock is not clamped at zero by the ledger itself; callers that must not
  oversell check availability before their first write.
- A product is locked the instant any sale line references it. The predicate
  is recomputed on every call, never stored.
"""

logger = logging.getLogger(__name__)


def extended_cents(quantity: float, unit_cents: int) -> int:
    """quantity x unit price, nearest cent (half-up)."""
    value = Decimal(str(quantity or 0)) * Decimal(int(unit_cents or 0))
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def current_stock(product: Product) -> float:
    if isinstance(product, RawMaterialProduct):
        return float(product.total_meters or 0)
    return float(product.stock_level or 0)


def adjust_stock(product: Product, delta: float) -> None:
    """Add delta (may be negative) to the product's authoritative quantity."""
    if not delta:
        return
    if isinstance(product, RawMaterialProduct):
        increment(product, "total_meters", delta)
    increment(product, "stock_level", delta)
    logger.debug("Stock of product %s adjusted by %s", product.id, delta)


def set_stock(product: Product, quantity: float) -> None:
    """Full replacement of the quantity. Used by unlocked product edits only."""
    if isinstance(product, RawMaterialProduct):
        product.total_meters = quantity
    product.stock_level = quantity
    db.session.flush()


def count_sales_referencing(product_id: int) -> int:
    return (
        db.session.query(func.count(func.distinct(SaleItem.sale_id)))
        .filter(SaleItem.product_id == product_id)
        .scalar()
    ) or 0


def is_locked(product_id: int) -> bool:
    return count_sales_referencing(product_id) > 0


def validate_availability(store_id: int, quantities: dict[int, float]) -> dict[int, Product]:
    """
    Check that every product exists in the store, is active, and has enough
    stock for the aggregated requested quantity.

    Returns the loaded products keyed by id. Raises before any write.
    """
    products: dict[int, Product] = {}
    insufficient = []
    for product_id, qty in quantities.items():
        product = db.session.query(Product).filter_by(id=product_id, store_id=store_id).first()
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        if not product.is_active:
            raise ValidationError(f"Product {product.name} is archived and cannot be sold")
        on_hand = current_stock(product)
        if on_hand < qty:
            insufficient.append(f"{product.name} (requested {qty:g}, available {on_hand:g})")
        products[product_id] = product

    if insufficient:
        raise ValidationError("Insufficient stock: " + "; ".join(insufficient))
    return products


def get_stock_history(
    store_id: int,
    product_id: int | None = None,
    limit: int = 50,
    entry_type: str | None = None,
) -> list[dict]:
    """Newest-first stock entries, optionally for one product or one entry type."""
    q = db.session.query(StockEntry).filter(StockEntry.store_id == store_id)
    if product_id is not None:
        q = q.filter(StockEntry.product_id == product_id)
    if entry_type:
        entry_type = entry_type.strip().upper()
        if entry_type not in ENTRY_TYPES:
            raise ValidationError(f"entry_type must be one of: {', '.join(ENTRY_TYPES)}")
        q = q.filter(StockEntry.entry_type == entry_type)
    limit = max(1, min(int(limit or 50), 500))
    rows = q.order_by(StockEntry.created_at.desc(), StockEntry.id.desc()).limit(limit).all()
    return [
        {**row.to_dict(), "product_name": row.product.name if row.product else None}
        for row in rows
    ]
