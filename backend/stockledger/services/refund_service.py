# Overview: Service-layer operations for refunds; encapsulates business logic and database work.

"""
Refund Service

Refunds return goods to stock and cash to the customer.

REFUND INVARIANTS:
- max_refundable = paid - already refunded; a refund must be > 0 and <= it
- per sale line: refunded quantity across all refunds <= quantity sold
- line amount = selling price at sale time x refunded quantity (half-up cents)
- paid_amount_cents and payment_status are left untouched; refunded_amount_cents
  grows and net_paid_cents = paid - refunded is the cash the store keeps
- the REFUND posting (CREDIT, cash leaving) is the last write
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Sale, SaleItem, SaleRefund, SaleRefundItem, Product, TRANSACTION_EXPENSE
from ..validation import ValidationError, NotFoundError, parse_id, parse_quantity, parse_datetime
from ..time_utils import utcnow
from .concurrency import increment, lock_for_update, run_with_retry
from . import ledger_service, stock_service

logger = logging.getLogger(__name__)


class RefundError(ValidationError):
    """Raised when a refund request breaks a refund rule."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _match_line(sale: Sale, request: dict) -> SaleItem:
    """
    Resolve the sale line a refund item points at, by sale_item_id or by
    product_id when the product appears on exactly one line.
    """
    sale_item_id = parse_id(request.get("sale_item_id"), "sale_item_id", required=False)
    if sale_item_id is not None:
        for item in sale.items:
            if item.id == sale_item_id:
                return item
        raise NotFoundError(f"Sale item {sale_item_id} not found on this sale")

    product_id = parse_id(request.get("product_id"), "product_id", required=False)
    if product_id is None:
        raise RefundError("Each refund item needs sale_item_id or product_id")
    matches = [item for item in sale.items if item.product_id == product_id]
    if not matches:
        raise NotFoundError(f"Product {product_id} was not sold on this sale")
    if len(matches) > 1:
        raise RefundError(f"Product {product_id} appears on several lines; refund by sale_item_id")
    return matches[0]


def refund_sale(*, store_id: int, sale_id: int, payload: dict) -> dict:
    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id, store_id=store_id)).first()
        if not sale:
            raise NotFoundError("Sale not found")

        requests = payload.get("items")
        if not isinstance(requests, list) or not requests:
            raise RefundError("Select at least one item to refund")

        max_refundable = (sale.paid_amount_cents or 0) - (sale.refunded_amount_cents or 0)
        if max_refundable <= 0:
            raise RefundError("Nothing left to refund on this sale", details={"max_refundable_cents": 0})

        # Aggregate per line so two request rows for one line share its limit
        planned: dict[int, dict] = {}
        for req in requests:
            if not isinstance(req, dict):
                raise RefundError("Each refund item must be an object")
            line = _match_line(sale, req)
            qty = parse_quantity(req.get("quantity"))
            slot = planned.setdefault(line.id, {"line": line, "quantity": 0.0})
            slot["quantity"] += qty

        refund_items = []
        for slot in planned.values():
            line: SaleItem = slot["line"]
            qty = slot["quantity"]
            available = line.refundable_quantity
            if qty > available:
                raise RefundError(
                    f"Refund quantity {qty:g} exceeds refundable quantity {available:g} for sale item {line.id}",
                    details={"sale_item_id": line.id, "requested": qty, "refundable": available},
                )
            amount = stock_service.extended_cents(qty, line.selling_price_cents)
            refund_items.append((line, qty, amount))

        total = sum(amount for _, _, amount in refund_items)
        if total <= 0:
            raise RefundError("Refund amount must be greater than 0")
        if total > max_refundable:
            raise RefundError(
                f"Refund amount {total} exceeds the refundable amount {max_refundable}",
                details={"refund_cents": total, "max_refundable_cents": max_refundable},
            )

        method = str(payload.get("method") or "Cash").strip()
        account = ledger_service.resolve_account(
            store_id, method, parse_id(payload.get("account_id"), "account_id", required=False)
        )
        refunded_at = parse_datetime(payload.get("refunded_at"), "refunded_at") or utcnow()

        refund = SaleRefund(
            amount_cents=total,
            method=method,
            reason=payload.get("reason"),
            processed_by=payload.get("processed_by"),
            refunded_at=refunded_at,
        )
        for line, qty, amount in refund_items:
            refund.items.append(SaleRefundItem(
                sale_item_id=line.id,
                product_id=line.product_id,
                quantity=qty,
                amount_cents=amount,
            ))
        sale.refunds.append(refund)
        db.session.flush()

        for line, qty, _ in refund_items:
            increment(line, "refunded_quantity", qty)
            product = db.session.get(Product, line.product_id)
            if product is not None:
                stock_service.adjust_stock(product, qty)

        increment(sale, "refunded_amount_cents", total)

        ledger_service.post_transaction(
            store_id=store_id,
            transaction_type=TRANSACTION_EXPENSE,
            amount_cents=total,
            account=account,
            reference_type="REFUND",
            reference_id=sale.id,
            description=f"Refund for {sale.invoice_number}",
            created_by=payload.get("processed_by"),
            transaction_date=refunded_at,
        )

        db.session.commit()
        logger.info("Refund of %s cents on sale %s (%s lines)", total, sale.invoice_number, len(refund_items))
        return {**sale.to_dict(), "refund": refund.to_dict()}

    return run_with_retry(_op)
