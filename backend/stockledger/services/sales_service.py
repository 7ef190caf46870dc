# Overview: Service-layer operations for sales; encapsulates business logic and database work.

from __future__ import annotations

import logging

from sqlalchemy import or_

from ..extensions import db
from ..models import (
    Sale, SaleItem, SalePayment, Product, OPEN_PAYMENT_STATUSES, TRANSACTION_INCOME,
)
from ..validation import (
    ValidationError, NotFoundError, coerce_int, parse_cents, parse_quantity, parse_id, parse_datetime,
)
from ..time_utils import utcnow
from .concurrency import increment, lock_for_update, run_with_retry
from .document_service import next_document_number, DOC_INVOICE
from .pagination import paginate
from .store_service import require_store
from .payment_service import derive_payment_status
from . import customer_service, ledger_service, stock_service

"""
Sale Lifecycle Invariants (authoritative)

Creation is one unit of work, in this order:
1. validate: products exist in the store, are active, and have enough stock
   for the aggregated quantity; a credit sale leaving a remainder has a customer
2. write the sale, its lines and the initial payment
3. decrement stock per line
4. raise the customer's balance by the unpaid remainder
5. post the SALE transaction (cash posting last)

Deletion restores, per line, the quantity sold minus the quantity already
refunded, and takes the unpaid remainder off the customer's balance. Cash
already received is not reversed on the accounts.
"""

logger = logging.getLogger(__name__)

PAYMENT_METHOD_CREDIT = "Credit"


class SaleError(ValidationError):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _is_credit(method: str | None) -> bool:
    return (method or "").strip().lower() == PAYMENT_METHOD_CREDIT.lower()


def _parse_items(raw) -> list[dict]:
    if not isinstance(raw, list) or not raw:
        raise SaleError("Sale must have at least one item")
    items = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise SaleError(f"Item {i + 1} must be an object")
        price = None
        if item.get("selling_price_cents") not in (None, ""):
            price = parse_cents(item.get("selling_price_cents"), "selling_price_cents")
        items.append({
            "product_id": parse_id(item.get("product_id"), "product_id"),
            "quantity": parse_quantity(item.get("quantity")),
            "selling_price_cents": price,
        })
    return items


def _resolve_customer(store_id: int, payload: dict, method: str):
    """
    Linked customer for the sale: explicit id first, then (for credit sales)
    an upsert by phone. Returns None when neither applies.
    """
    customer_id = parse_id(payload.get("customer_id"), "customer_id", required=False)
    if customer_id is not None:
        return customer_service.get_customer(store_id, customer_id, for_update=True)
    name = (payload.get("customer_name") or "").strip()
    phone = (payload.get("customer_phone") or "").strip()
    if _is_credit(method) and name and phone:
        return customer_service.upsert_customer_by_phone(store_id=store_id, name=name, phone=phone)
    return None


def create_sale(*, store_id: int, payload: dict) -> dict:
    def _op():
        require_store(store_id)
        if payload is None or not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")

        items = _parse_items(payload.get("items"))
        method = str(payload.get("payment_method") or "Cash").strip()
        sale_date = parse_datetime(payload.get("sale_date"), "sale_date") or utcnow()

        quantities: dict[int, float] = {}
        for item in items:
            quantities[item["product_id"]] = quantities.get(item["product_id"], 0) + item["quantity"]
        products = stock_service.validate_availability(store_id, quantities)

        lines = []
        for item in items:
            product: Product = products[item["product_id"]]
            price = item["selling_price_cents"]
            if price is None:
                price = product.selling_price_cents or 0
            cost = product.buying_price_cents or 0
            line_total = stock_service.extended_cents(item["quantity"], price)
            line_cost = stock_service.extended_cents(item["quantity"], cost)
            lines.append({
                "product": product,
                "quantity": item["quantity"],
                "selling_price_cents": price,
                "cost_price_cents": cost,
                "total_amount_cents": line_total,
                "profit_amount_cents": line_total - line_cost,
            })

        subtotal = sum(line["total_amount_cents"] for line in lines)
        discount = parse_cents(payload.get("discount_amount_cents"), "discount_amount_cents", default=0)
        tax = parse_cents(payload.get("tax_amount_cents"), "tax_amount_cents", default=0)
        if discount > subtotal:
            raise SaleError("Discount cannot exceed the subtotal")
        total = subtotal - discount + tax

        requested_paid = payload.get("paid_amount_cents")
        paid = coerce_int(requested_paid, "paid_amount_cents") if requested_paid not in (None, "") else 0
        paid = max(0, min(paid, total))
        remainder = total - paid

        has_customer_ref = payload.get("customer_id") not in (None, "") or (
            (payload.get("customer_name") or "").strip() and (payload.get("customer_phone") or "").strip()
        )
        if _is_credit(method) and remainder > 0 and not has_customer_ref:
            raise SaleError("A credit sale with an unpaid balance needs a customer (name and phone)")

        # Where the money paid now lands; a credit sale may pass the channel of its down payment
        channel = payload.get("payment_channel") or ("Cash" if _is_credit(method) else method)
        account = None
        if paid > 0:
            account = ledger_service.resolve_account(
                store_id, channel, parse_id(payload.get("account_id"), "account_id", required=False)
            )

        customer = _resolve_customer(store_id, payload, method)

        sale = Sale(
            store_id=store_id,
            invoice_number=next_document_number(store_id=store_id, document_type=DOC_INVOICE),
            customer_id=customer.id if customer else None,
            customer_name=customer.name if customer else (payload.get("customer_name") or None),
            customer_phone=customer.phone if customer else (payload.get("customer_phone") or None),
            sale_date=sale_date,
            subtotal_cents=subtotal,
            discount_amount_cents=discount,
            tax_amount_cents=tax,
            total_amount_cents=total,
            paid_amount_cents=paid,
            refunded_amount_cents=0,
            profit_amount_cents=sum(line["profit_amount_cents"] for line in lines) - discount,
            payment_method=method,
            payment_status=derive_payment_status(paid, total),
            sold_by=payload.get("sold_by"),
            notes=payload.get("notes"),
        )
        for line in lines:
            sale.items.append(SaleItem(
                product_id=line["product"].id,
                quantity=line["quantity"],
                refunded_quantity=0,
                selling_price_cents=line["selling_price_cents"],
                cost_price_cents=line["cost_price_cents"],
                total_amount_cents=line["total_amount_cents"],
                profit_amount_cents=line["profit_amount_cents"],
            ))
        if paid > 0:
            sale.payments.append(SalePayment(
                amount_cents=paid,
                method=channel,
                notes="Initial payment",
                recorded_by=payload.get("sold_by"),
                paid_at=sale_date,
            ))
        db.session.add(sale)
        db.session.flush()

        for line in lines:
            stock_service.adjust_stock(line["product"], -line["quantity"])

        if customer is not None and remainder > 0:
            increment(customer, "balance_cents", remainder)
            logger.info("Customer %s balance raised by %s cents for %s", customer.id, remainder, sale.invoice_number)

        ledger_service.post_transaction(
            store_id=store_id,
            transaction_type=TRANSACTION_INCOME,
            amount_cents=paid,
            account=account,
            reference_type="SALE",
            reference_id=sale.id,
            description=f"Sale {sale.invoice_number}",
            created_by=payload.get("sold_by"),
            transaction_date=sale_date,
        )

        db.session.commit()
        logger.info("Sale %s created: total %s, paid %s, status %s", sale.invoice_number, total, paid, sale.payment_status)
        return sale.to_dict()

    return run_with_retry(_op)


def _get_sale(store_id: int, sale_id: int, *, for_update: bool = False) -> Sale:
    q = db.session.query(Sale).filter_by(id=sale_id, store_id=store_id)
    if for_update:
        q = lock_for_update(q)
    sale = q.first()
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


def delete_sale(*, store_id: int, sale_id: int) -> dict:
    def _op():
        sale = _get_sale(store_id, sale_id, for_update=True)

        restored = []
        for item in sale.items:
            qty = item.refundable_quantity
            if qty > 0:
                product = db.session.get(Product, item.product_id)
                if product is not None:
                    stock_service.adjust_stock(product, qty)
                    restored.append({"product_id": item.product_id, "quantity": qty})

        remainder = sale.remaining_cents
        if sale.customer is not None and remainder > 0:
            increment(sale.customer, "balance_cents", -remainder)

        invoice = sale.invoice_number
        db.session.delete(sale)
        db.session.commit()
        logger.info(
            "Sale %s deleted; stock restored for %s lines; received cash left on the accounts",
            invoice, len(restored),
        )
        return {"id": sale_id, "invoice_number": invoice, "restored": restored}

    return run_with_retry(_op)


def get_sale(*, store_id: int, sale_id: int) -> dict:
    return _get_sale(store_id, sale_id).to_dict()


def list_sales(
    *,
    store_id: int,
    search: str | None = None,
    status: str | None = None,
    customer_id: int | None = None,
    start=None,
    end=None,
    page=None,
    page_size=None,
) -> dict:
    q = db.session.query(Sale).filter(Sale.store_id == store_id)
    if status and status.strip() and status.strip().lower() != "all":
        q = q.filter(Sale.payment_status == status.strip().upper())
    if search and search.strip():
        term = f"%{search.strip()}%"
        q = q.filter(or_(Sale.invoice_number.ilike(term), Sale.customer_name.ilike(term)))
    if customer_id is not None:
        q = q.filter(Sale.customer_id == customer_id)
    if start is not None:
        q = q.filter(Sale.sale_date >= start)
    if end is not None:
        q = q.filter(Sale.sale_date <= end)
    q = q.order_by(Sale.sale_date.desc(), Sale.id.desc())
    return paginate(q, page=page, page_size=page_size, serialize=lambda s: s.to_dict(include_children=False))


def get_pending_stats(*, store_id: int) -> dict:
    pending = (
        db.session.query(Sale)
        .filter(Sale.store_id == store_id, Sale.payment_status.in_(OPEN_PAYMENT_STATUSES))
        .order_by(Sale.sale_date.desc(), Sale.id.desc())
        .all()
    )
    return {
        "pending_count": len(pending),
        "total_pending_amount_cents": sum(s.remaining_cents for s in pending),
        "total_credit_sales_amount_cents": sum(s.total_amount_cents for s in pending),
        "recent_pending": [s.to_dict(include_children=False) for s in pending[:5]],
    }
