# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Payment Processing Service

Sales can be paid over time: at creation, by later payments against the sale,
or by one customer-level payment spread across that customer's open sales.

PAYMENT STATUS (pure function of paid vs total):
- PENDING: paid <= 0
- PARTIAL: 0 < paid < total
- PAID:    paid >= total

PAYMENT INVARIANTS:
- 0 <= paid_amount_cents <= total_amount_cents. Requests larger than what is
  owed are clamped to the remainder.
- Every applied amount is appended to the sale's payment history.
- customer.balance_cents drops by exactly the amount applied.
- Cash posting is the last write; the receiving account is debited.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import (
    Sale, SalePayment, Customer,
    PAYMENT_STATUS_PAID, PAYMENT_STATUS_PARTIAL, PAYMENT_STATUS_PENDING, OPEN_PAYMENT_STATUSES,
    TRANSACTION_INCOME,
)
from ..validation import ValidationError, NotFoundError, parse_cents, parse_id, parse_datetime
from ..time_utils import utcnow
from .concurrency import increment, lock_for_update, run_with_retry
from . import ledger_service
from .customer_service import get_customer

logger = logging.getLogger(__name__)


class PaymentError(ValidationError):
    """Raised for payment operation errors."""
    pass


def derive_payment_status(paid_cents: int, total_cents: int) -> str:
    if paid_cents <= 0:
        return PAYMENT_STATUS_PENDING
    if paid_cents < total_cents:
        return PAYMENT_STATUS_PARTIAL
    return PAYMENT_STATUS_PAID


def _update_sale_payment_status(sale: Sale) -> None:
    sale.payment_status = derive_payment_status(sale.paid_amount_cents or 0, sale.total_amount_cents or 0)


def apply_payment_to_sale(
    sale: Sale,
    amount_cents: int,
    *,
    method: str,
    notes: str | None = None,
    recorded_by: str | None = None,
    paid_at=None,
) -> int:
    """
    Apply up to amount_cents to one sale. Returns the amount actually applied
    (clamped to the sale's remainder). Does not touch customer or accounts.
    """
    remaining = sale.remaining_cents
    applied = min(amount_cents, remaining)
    if applied <= 0:
        return 0
    sale.payments.append(SalePayment(
        amount_cents=applied,
        method=method,
        notes=notes,
        recorded_by=recorded_by,
        paid_at=paid_at or utcnow(),
    ))
    increment(sale, "paid_amount_cents", applied)
    _update_sale_payment_status(sale)
    db.session.flush()
    return applied


def _get_sale(store_id: int, sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id, store_id=store_id)).first()
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


def record_sale_payment(*, store_id: int, sale_id: int, payload: dict) -> dict:
    """
    Record an additional payment against one sale.

    Rejected when the amount is not positive or the sale is already settled.
    """
    def _op():
        sale = _get_sale(store_id, sale_id)
        amount = parse_cents(payload.get("amount_cents"), "amount_cents", allow_zero=False)
        method = str(payload.get("method") or "Cash").strip()
        account_id = parse_id(payload.get("account_id"), "account_id", required=False)
        paid_at = parse_datetime(payload.get("paid_at"), "paid_at")

        if sale.remaining_cents <= 0:
            raise PaymentError("Sale has no remaining balance")
        account = ledger_service.resolve_account(store_id, method, account_id)

        applied = apply_payment_to_sale(
            sale, amount,
            method=method,
            notes=payload.get("notes"),
            recorded_by=payload.get("recorded_by"),
            paid_at=paid_at,
        )

        if sale.customer_id is not None:
            customer = db.session.get(Customer, sale.customer_id)
            increment(customer, "balance_cents", -applied)

        ledger_service.post_transaction(
            store_id=store_id,
            transaction_type=TRANSACTION_INCOME,
            amount_cents=applied,
            account=account,
            reference_type="PAYMENT",
            reference_id=sale.id,
            description=f"Payment for {sale.invoice_number}",
            created_by=payload.get("recorded_by"),
            transaction_date=paid_at,
        )

        db.session.commit()
        logger.info("Payment of %s cents applied to sale %s (requested %s)", applied, sale.id, amount)
        return {**sale.to_dict(), "applied_amount_cents": applied}

    return run_with_retry(_op)


def record_customer_payment(*, store_id: int, customer_id: int, payload: dict) -> dict:
    """
    Spread one payment across the customer's open sales, oldest first.

    The customer's balance drops by the total actually applied, which may be
    less than requested when the customer owes less.
    """
    def _op():
        customer = get_customer(store_id, customer_id, for_update=True)
        amount = parse_cents(payload.get("amount_cents"), "amount_cents", allow_zero=False)
        method = str(payload.get("method") or "Cash").strip()
        account_id = parse_id(payload.get("account_id"), "account_id", required=False)
        paid_at = parse_datetime(payload.get("paid_at"), "paid_at")

        if (customer.balance_cents or 0) <= 0:
            raise PaymentError("Customer has no outstanding balance")
        account = ledger_service.resolve_account(store_id, method, account_id)

        open_sales = (
            lock_for_update(
                db.session.query(Sale).filter(
                    Sale.store_id == store_id,
                    Sale.customer_id == customer.id,
                    Sale.payment_status.in_(OPEN_PAYMENT_STATUSES),
                )
            )
            .order_by(Sale.sale_date.asc(), Sale.id.asc())
            .all()
        )

        pool = amount
        allocations = []
        for sale in open_sales:
            if pool <= 0:
                break
            applied = apply_payment_to_sale(
                sale, pool,
                method=method,
                notes=payload.get("notes") or "Customer payment",
                recorded_by=payload.get("recorded_by"),
                paid_at=paid_at,
            )
            if applied <= 0:
                continue
            pool -= applied
            allocations.append({
                "sale_id": sale.id,
                "invoice_number": sale.invoice_number,
                "applied_cents": applied,
                "remaining_cents": sale.remaining_cents,
                "payment_status": sale.payment_status,
            })

        total_applied = amount - pool
        if total_applied <= 0:
            raise PaymentError("Customer has no open sales to apply the payment to")

        increment(customer, "balance_cents", -total_applied)

        ledger_service.post_transaction(
            store_id=store_id,
            transaction_type=TRANSACTION_INCOME,
            amount_cents=total_applied,
            account=account,
            reference_type="PAYMENT",
            reference_id=customer.id,
            description=f"Customer payment from {customer.name}",
            created_by=payload.get("recorded_by"),
            transaction_date=paid_at,
        )

        db.session.commit()
        logger.info(
            "Customer %s payment: requested %s, applied %s across %s sales",
            customer.id, amount, total_applied, len(allocations),
        )
        return {
            "customer": customer.to_dict(),
            "requested_amount_cents": amount,
            "applied_amount_cents": total_applied,
            "unapplied_amount_cents": pool,
            "allocations": allocations,
        }

    return run_with_retry(_op)
