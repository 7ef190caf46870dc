# Overview: Service-layer operations for suppliers; master data and supplier payments.

from __future__ import annotations

import logging

from sqlalchemy import or_

from ..extensions import db
from ..models import Supplier, PurchaseOrder, StockEntry, Expense, TRANSACTION_EXPENSE
from ..validation import (
    ValidationError, NotFoundError, ModelValidationPolicy, validate_payload,
    parse_cents, parse_id, parse_datetime,
)
from ..time_utils import utcnow
from .concurrency import increment, lock_for_update, run_with_retry
from .document_service import next_document_number, DOC_EXPENSE
from .pagination import paginate
from .store_service import require_store
from . import ledger_service

logger = logging.getLogger(__name__)

SUPPLIER_PAYMENT_CATEGORY = "Supplier Payment"


class SupplierError(ValidationError):
    """Raised when a supplier operation breaks a business rule."""
    pass


SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "contact_person", "phone", "email", "address", "is_active"}),
    required_on_create=frozenset({"name"}),
)


def _get_supplier(store_id: int, supplier_id: int, *, for_update: bool = False) -> Supplier:
    q = db.session.query(Supplier).filter_by(id=supplier_id, store_id=store_id)
    if for_update:
        q = lock_for_update(q)
    supplier = q.first()
    if not supplier:
        raise NotFoundError("Supplier not found")
    return supplier


def create_supplier(*, store_id: int, payload: dict) -> Supplier:
    """Create a supplier, optionally carrying an opening balance owed to them."""
    def _op():
        require_store(store_id)
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
        opening = parse_cents(payload.get("current_balance_cents"), "current_balance_cents", default=0)
        supplier = Supplier(store_id=store_id, current_balance_cents=opening, **patch)
        db.session.add(supplier)
        db.session.commit()
        return supplier

    return run_with_retry(_op)


def update_supplier(*, store_id: int, supplier_id: int, payload: dict) -> Supplier:
    """Descriptive fields only; the balance moves through stock arrivals and payments."""
    def _op():
        supplier = _get_supplier(store_id, supplier_id, for_update=True)
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
        for k, v in patch.items():
            setattr(supplier, k, v)
        db.session.commit()
        return supplier

    return run_with_retry(_op)


def delete_supplier(*, store_id: int, supplier_id: int) -> None:
    def _op():
        supplier = _get_supplier(store_id, supplier_id, for_update=True)
        if (supplier.current_balance_cents or 0) != 0:
            raise SupplierError("Cannot delete a supplier with a non-zero balance")
        if db.session.query(PurchaseOrder.id).filter_by(supplier_id=supplier.id).first():
            raise SupplierError("Cannot delete a supplier with purchase orders")

        db.session.query(StockEntry).filter_by(supplier_id=supplier.id).update(
            {StockEntry.supplier_id: None}, synchronize_session=False
        )
        supplier.products = []
        db.session.delete(supplier)
        db.session.commit()

    return run_with_retry(_op)


def get_supplier(*, store_id: int, supplier_id: int) -> dict:
    supplier = _get_supplier(store_id, supplier_id)
    return supplier.to_dict(include_products=True)


def list_suppliers(*, store_id: int, search: str | None = None, page=None, page_size=None) -> dict:
    q = db.session.query(Supplier).filter(Supplier.store_id == store_id)
    if search and search.strip():
        term = f"%{search.strip()}%"
        q = q.filter(or_(
            Supplier.name.ilike(term),
            Supplier.contact_person.ilike(term),
            Supplier.phone.ilike(term),
        ))
    q = q.order_by(Supplier.name.asc(), Supplier.id.asc())
    return paginate(q, page=page, page_size=page_size)


def record_supplier_payment(*, store_id: int, supplier_id: int, payload: dict) -> dict:
    """
    Pay a supplier from an account.

    Writes an Expense, lowers the supplier balance and posts a
    SUPPLIER_PAYMENT transaction (CREDIT, account balance decreased).
    """
    def _op():
        supplier = _get_supplier(store_id, supplier_id, for_update=True)
        amount = parse_cents(payload.get("amount_cents"), "amount_cents", allow_zero=False)
        account_id = parse_id(payload.get("account_id"), "account_id", required=False)
        if account_id is None:
            raise SupplierError("account_id is required to pay a supplier")
        account = ledger_service.get_account(store_id, account_id)
        if amount > (supplier.current_balance_cents or 0):
            raise SupplierError(
                f"Payment of {amount} exceeds the outstanding supplier balance of {supplier.current_balance_cents}"
            )
        paid_at = parse_datetime(payload.get("payment_date"), "payment_date") or utcnow()
        method = str(payload.get("method") or "Cash").strip()
        notes = payload.get("notes")

        expense = Expense(
            store_id=store_id,
            account_id=account.id,
            supplier_id=supplier.id,
            expense_number=next_document_number(store_id=store_id, document_type=DOC_EXPENSE),
            category=SUPPLIER_PAYMENT_CATEGORY,
            description=notes or f"Payment to {supplier.name} ({method})",
            amount_cents=amount,
            expense_date=paid_at,
            recorded_by=payload.get("recorded_by"),
        )
        db.session.add(expense)
        db.session.flush()

        increment(supplier, "current_balance_cents", -amount)

        ledger_service.post_transaction(
            store_id=store_id,
            transaction_type=TRANSACTION_EXPENSE,
            amount_cents=amount,
            account=account,
            reference_type="SUPPLIER_PAYMENT",
            reference_id=expense.id,
            description=f"Payment to supplier {supplier.name}",
            created_by=payload.get("recorded_by"),
            transaction_date=paid_at,
        )

        db.session.commit()
        logger.info("Supplier %s paid %s cents from account %s", supplier.id, amount, account.id)
        return {"supplier": supplier.to_dict(), "expense": expense.to_dict()}

    return run_with_retry(_op)
