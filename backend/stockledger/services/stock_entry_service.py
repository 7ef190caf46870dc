# Overview: Service-layer operations for the stock entry log and supplier balance reconciliation.

from __future__ import annotations

import logging
from datetime import datetime

from ..extensions import db
from ..models import Product, StockEntry, Supplier, ENTRY_INITIAL_STOCK, ENTRY_RESTOCK, ENTRY_ADJUSTMENT
from ..validation import NotFoundError
from .concurrency import increment
from .stock_service import extended_cents
from ..time_utils import utcnow

"""
Supplier Balance Invariants (authoritative)

- A supplier's current_balance_cents is the sum of totals of the stock
  entries credited to it, minus supplier payments.
- The INITIAL_STOCK entry (is_initial=True) is the reconciliation baseline.
  Edits always work from its last committed total, never from assumed deltas:
    same supplier    -> balance += new_total - old_total
    changed supplier -> old supplier -= old_total, new supplier += new_total
- A correction larger than the initial entry lowers that entry to 0 and
  logs the rest as an ADJUSTMENT entry. Adjustments carry no supplier.
- Deleting a product reverses the credit of every entry it leaves behind.
- Purchase orders never touch supplier balances.
"""

logger = logging.getLogger(__name__)


def get_supplier(store_id: int, supplier_id: int | None) -> Supplier | None:
    if supplier_id is None:
        return None
    supplier = db.session.query(Supplier).filter_by(id=supplier_id, store_id=store_id).first()
    if supplier is None:
        raise NotFoundError("Supplier not found")
    return supplier


def attribute_product(supplier: Supplier, product: Product) -> None:
    if product not in supplier.products:
        supplier.products.append(product)


def detach_product(supplier: Supplier, product: Product) -> None:
    if product in supplier.products:
        supplier.products.remove(product)


def credit_supplier(supplier: Supplier, amount_cents: int, *, product: Product | None = None) -> None:
    """Move a supplier balance by amount_cents (negative reverses a credit)."""
    if product is not None and amount_cents >= 0:
        attribute_product(supplier, product)
    if not amount_cents:
        return
    increment(supplier, "current_balance_cents", amount_cents)
    logger.info("Supplier %s balance moved by %s cents", supplier.id, amount_cents)


def record_initial_stock(
    *,
    product: Product,
    quantity: float,
    buying_price_cents: int,
    supplier: Supplier | None = None,
    invoice_number: str | None = None,
    purchase_date: datetime | None = None,
    notes: str | None = None,
) -> StockEntry:
    """Write the INITIAL_STOCK entry for a new product and credit its supplier."""
    total = extended_cents(quantity, buying_price_cents)
    entry = StockEntry(
        store_id=product.store_id,
        product_id=product.id,
        supplier_id=supplier.id if supplier else None,
        quantity=quantity,
        unit=product.base_unit,
        buying_price_cents=buying_price_cents,
        total_cost_cents=total,
        entry_type=ENTRY_INITIAL_STOCK,
        is_initial=True,
        invoice_number=invoice_number,
        purchase_date=purchase_date or utcnow(),
        notes=notes or f"Initial stock - {product.product_kind} product",
    )
    db.session.add(entry)
    db.session.flush()

    if supplier is not None:
        credit_supplier(supplier, total, product=product)
    return entry


def record_restock(
    *,
    product: Product,
    quantity: float,
    unit_cost_cents: int,
    supplier: Supplier | None = None,
    invoice_number: str | None = None,
    purchase_date: datetime | None = None,
    notes: str | None = None,
) -> StockEntry:
    total = extended_cents(quantity, unit_cost_cents)
    entry = StockEntry(
        store_id=product.store_id,
        product_id=product.id,
        supplier_id=supplier.id if supplier else None,
        quantity=quantity,
        unit=product.base_unit,
        buying_price_cents=unit_cost_cents,
        total_cost_cents=total,
        entry_type=ENTRY_RESTOCK,
        is_initial=False,
        invoice_number=invoice_number,
        purchase_date=purchase_date or utcnow(),
        notes=notes,
    )
    db.session.add(entry)
    db.session.flush()

    if supplier is not None:
        credit_supplier(supplier, total, product=product)
    return entry


def record_adjustment(
    *,
    product: Product,
    quantity: float,
    buying_price_cents: int,
    notes: str | None = None,
) -> StockEntry:
    """Log a signed stock correction that no supplier is answerable for."""
    entry = StockEntry(
        store_id=product.store_id,
        product_id=product.id,
        supplier_id=None,
        quantity=quantity,
        unit=product.base_unit,
        buying_price_cents=buying_price_cents,
        total_cost_cents=extended_cents(quantity, buying_price_cents),
        entry_type=ENTRY_ADJUSTMENT,
        is_initial=False,
        purchase_date=utcnow(),
        notes=notes or "Stock correction",
    )
    db.session.add(entry)
    db.session.flush()
    logger.info("Product %s adjusted by %s %s", product.id, quantity, product.base_unit)
    return entry


def reverse_supplier_credits(product: Product) -> int:
    """
    Take back every supplier credit made through the product's entries.

    Returns the number of entries reversed.
    """
    entries = (
        db.session.query(StockEntry)
        .filter(StockEntry.product_id == product.id, StockEntry.supplier_id.isnot(None))
        .all()
    )
    for entry in entries:
        credit_supplier(entry.supplier, -(entry.total_cost_cents or 0))
    return len(entries)


def get_initial_stock_entry(product_id: int) -> StockEntry | None:
    """
    The flagged initial entry, falling back to the oldest INITIAL_STOCK
    entry for rows written before the flag existed.
    """
    entry = db.session.query(StockEntry).filter_by(product_id=product_id, is_initial=True).first()
    if entry is not None:
        return entry
    return (
        db.session.query(StockEntry)
        .filter_by(product_id=product_id, entry_type=ENTRY_INITIAL_STOCK)
        .order_by(StockEntry.created_at.asc(), StockEntry.id.asc())
        .first()
    )


def reconcile_initial_stock(
    *,
    product: Product,
    new_quantity: float,
    new_buying_price_cents: int,
    new_supplier: Supplier | None,
) -> StockEntry | None:
    """
    Rewrite the initial entry and move supplier balances to match.

    Returns the rewritten entry, or None when the product has no initial
    entry (logged, nothing changes).
    """
    entry = get_initial_stock_entry(product.id)
    if entry is None:
        logger.warning("No initial stock entry found for product %s; supplier balances unchanged", product.id)
        return None

    old_total = entry.total_cost_cents or 0
    new_total = extended_cents(new_quantity, new_buying_price_cents)
    old_supplier = entry.supplier
    new_supplier_id = new_supplier.id if new_supplier else None

    if entry.supplier_id != new_supplier_id:
        logger.info(
            "Initial stock of product %s moved from supplier %s to %s",
            product.id, entry.supplier_id, new_supplier_id,
        )
        if old_supplier is not None:
            credit_supplier(old_supplier, -old_total)
            detach_product(old_supplier, product)
        if new_supplier is not None:
            credit_supplier(new_supplier, new_total, product=product)
        entry.supplier = new_supplier
    elif old_supplier is not None:
        credit_supplier(old_supplier, new_total - old_total)

    entry.quantity = new_quantity
    entry.buying_price_cents = new_buying_price_cents
    entry.total_cost_cents = new_total
    entry.is_initial = True
    db.session.flush()
    return entry
