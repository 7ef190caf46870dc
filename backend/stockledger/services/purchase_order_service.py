# Overview: Service-layer operations for purchase orders; encapsulates business logic and database work.

from __future__ import annotations

import logging

from flask import current_app

from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderLine, Product, Supplier
from ..validation import (
    ValidationError, ConflictError, NotFoundError, parse_cents, parse_id, parse_quantity, parse_datetime,
)
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number, DOC_PURCHASE_ORDER
from .pagination import paginate
from .store_service import require_store
from . import stock_service

"""
Purchase Order Invariants (authoritative)

- Creating an order adds each line's quantity to stock immediately and
  overwrites the product's buying price (and selling price when a positive
  one is given). Not subject to the sales lock.
- Editing an order first retracts every old line, then applies the new lines.
- Deleting an order keeps the stock it added unless
  PURCHASE_ORDER_DELETE_REVERTS_STOCK is enabled.
- Purchase orders never move supplier balances.
"""

logger = logging.getLogger(__name__)

PO_STATUSES = ("DRAFT", "ORDERED", "RECEIVED", "CANCELLED")


class PurchaseOrderError(ValidationError):
    """Raised when a purchase order request is invalid."""
    pass


def _parse_lines(raw) -> list[dict]:
    if not isinstance(raw, list) or not raw:
        raise PurchaseOrderError("Purchase order must have at least one line")
    lines = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise PurchaseOrderError(f"Line {i + 1} must be an object")
        selling = None
        if item.get("selling_price_cents") not in (None, ""):
            selling = parse_cents(item.get("selling_price_cents"), "selling_price_cents")
        lines.append({
            "product_id": parse_id(item.get("product_id"), "product_id"),
            "quantity": parse_quantity(item.get("quantity")),
            "unit_cost_cents": parse_cents(item.get("unit_cost_cents"), "unit_cost_cents"),
            "selling_price_cents": selling,
        })
    return lines


def _load_products(store_id: int, lines: list[dict]) -> dict[int, Product]:
    products = {}
    for line in lines:
        pid = line["product_id"]
        if pid in products:
            continue
        product = db.session.query(Product).filter_by(id=pid, store_id=store_id).first()
        if product is None:
            raise NotFoundError(f"Product {pid} not found")
        products[pid] = product
    return products


def _get_supplier(store_id: int, supplier_id: int | None) -> Supplier:
    if supplier_id is None:
        raise PurchaseOrderError("supplier_id is required")
    supplier = db.session.query(Supplier).filter_by(id=supplier_id, store_id=store_id).first()
    if supplier is None:
        raise NotFoundError("Supplier not found")
    return supplier


def _ensure_unique_number(store_id: int, po_number: str, exclude_id: int | None = None) -> None:
    q = db.session.query(PurchaseOrder.id).filter_by(store_id=store_id, po_number=po_number)
    if exclude_id is not None:
        q = q.filter(PurchaseOrder.id != exclude_id)
    if q.first():
        raise ConflictError(f"Purchase order number {po_number} already exists")


def _apply_lines(po: PurchaseOrder, lines: list[dict], products: dict[int, Product]) -> None:
    total = 0
    for line in lines:
        product = products[line["product_id"]]
        line_total = stock_service.extended_cents(line["quantity"], line["unit_cost_cents"])
        po.lines.append(PurchaseOrderLine(
            product_id=product.id,
            quantity=line["quantity"],
            unit_cost_cents=line["unit_cost_cents"],
            selling_price_cents=line["selling_price_cents"],
            line_total_cents=line_total,
        ))
        stock_service.adjust_stock(product, line["quantity"])
        product.buying_price_cents = line["unit_cost_cents"]
        if line["selling_price_cents"]:
            product.selling_price_cents = line["selling_price_cents"]
        total += line_total
    po.total_amount_cents = total


def _revert_lines(po: PurchaseOrder) -> None:
    for line in po.lines:
        product = db.session.get(Product, line.product_id)
        if product is not None:
            stock_service.adjust_stock(product, -line.quantity)


def _parse_status(value, default: str) -> str:
    status = str(value or default).strip().upper()
    if status not in PO_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(PO_STATUSES)}")
    return status


def create_purchase_order(*, store_id: int, payload: dict) -> dict:
    def _op():
        require_store(store_id)
        supplier = _get_supplier(store_id, parse_id(payload.get("supplier_id"), "supplier_id", required=False))
        lines = _parse_lines(payload.get("lines"))
        products = _load_products(store_id, lines)
        status = _parse_status(payload.get("status"), "RECEIVED")

        po_number = (payload.get("po_number") or "").strip()
        if po_number:
            _ensure_unique_number(store_id, po_number)
        else:
            po_number = next_document_number(store_id=store_id, document_type=DOC_PURCHASE_ORDER)

        po = PurchaseOrder(
            store_id=store_id,
            supplier_id=supplier.id,
            po_number=po_number,
            status=status,
            order_date=parse_datetime(payload.get("order_date"), "order_date") or utcnow(),
            notes=payload.get("notes"),
        )
        db.session.add(po)
        db.session.flush()
        _apply_lines(po, lines, products)

        db.session.commit()
        logger.info("Purchase order %s created with %s lines", po.po_number, len(lines))
        return po.to_dict()

    return run_with_retry(_op)


def update_purchase_order(*, store_id: int, po_id: int, payload: dict) -> dict:
    """
    Update an order. When lines are given, every old line is retracted from
    stock before the new lines are applied.
    """
    def _op():
        po = lock_for_update(db.session.query(PurchaseOrder).filter_by(id=po_id, store_id=store_id)).first()
        if not po:
            raise NotFoundError("Purchase order not found")

        new_lines = None
        products = None
        if "lines" in payload:
            new_lines = _parse_lines(payload.get("lines"))
            products = _load_products(store_id, new_lines)
        if "supplier_id" in payload:
            po.supplier_id = _get_supplier(
                store_id, parse_id(payload.get("supplier_id"), "supplier_id", required=False)
            ).id
        if payload.get("po_number"):
            number = str(payload["po_number"]).strip()
            _ensure_unique_number(store_id, number, exclude_id=po.id)
            po.po_number = number
        if "status" in payload:
            po.status = _parse_status(payload.get("status"), po.status)
        if "order_date" in payload:
            po.order_date = parse_datetime(payload.get("order_date"), "order_date") or po.order_date
        if "notes" in payload:
            po.notes = payload.get("notes")

        if new_lines is not None:
            _revert_lines(po)
            po.lines.clear()
            db.session.flush()
            _apply_lines(po, new_lines, products)

        db.session.commit()
        logger.info("Purchase order %s updated", po.po_number)
        return po.to_dict()

    return run_with_retry(_op)


def delete_purchase_order(*, store_id: int, po_id: int) -> dict:
    def _op():
        po = lock_for_update(db.session.query(PurchaseOrder).filter_by(id=po_id, store_id=store_id)).first()
        if not po:
            raise NotFoundError("Purchase order not found")

        revert = bool(current_app.config.get("PURCHASE_ORDER_DELETE_REVERTS_STOCK", False))
        if revert:
            _revert_lines(po)
        number = po.po_number
        db.session.delete(po)
        db.session.commit()
        logger.info("Purchase order %s deleted (stock reverted: %s)", number, revert)
        return {"id": po_id, "po_number": number, "stock_reverted": revert}

    return run_with_retry(_op)


def get_purchase_order(*, store_id: int, po_id: int) -> dict:
    po = db.session.query(PurchaseOrder).filter_by(id=po_id, store_id=store_id).first()
    if not po:
        raise NotFoundError("Purchase order not found")
    return po.to_dict()


def list_purchase_orders(
    *,
    store_id: int,
    search: str | None = None,
    status: str | None = None,
    supplier_id: int | None = None,
    page=None,
    page_size=None,
) -> dict:
    q = db.session.query(PurchaseOrder).filter(PurchaseOrder.store_id == store_id)
    if search and search.strip():
        q = q.filter(PurchaseOrder.po_number.ilike(f"%{search.strip()}%"))
    if status:
        q = q.filter(PurchaseOrder.status == status.strip().upper())
    if supplier_id is not None:
        q = q.filter(PurchaseOrder.supplier_id == supplier_id)
    q = q.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
    return paginate(q, page=page, page_size=page_size)


def get_last_supply(*, store_id: int, product_id: int) -> dict | None:
    """Supplier and unit cost from the newest purchase order containing the product."""
    line = (
        db.session.query(PurchaseOrderLine)
        .join(PurchaseOrder, PurchaseOrder.id == PurchaseOrderLine.purchase_order_id)
        .filter(PurchaseOrder.store_id == store_id, PurchaseOrderLine.product_id == product_id)
        .order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc(), PurchaseOrderLine.id.desc())
        .first()
    )
    if line is None or line.purchase_order.supplier is None:
        return None
    return {
        "supplier": line.purchase_order.supplier.to_dict(),
        "last_cost_cents": line.unit_cost_cents,
        "po_number": line.purchase_order.po_number,
    }
