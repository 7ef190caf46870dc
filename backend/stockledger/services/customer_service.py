from __future__ import annotations

import logging

from sqlalchemy import or_

from ..extensions import db
from ..models import Customer, Sale, OPEN_PAYMENT_STATUSES
from .concurrency import lock_for_update, run_with_retry
from .pagination import paginate
from .store_service import require_store
from ..validation import (
    ValidationError, ConflictError, NotFoundError, ModelValidationPolicy, validate_payload,
)

logger = logging.getLogger(__name__)


class CustomerError(ValidationError):
    """Raised when a customer operation breaks a business rule."""
    pass


CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "phone", "email", "address"}),
    required_on_create=frozenset({"name", "phone"}),
)


def _normalize_phone(phone) -> str:
    return str(phone or "").strip()


def get_customer(store_id: int, customer_id: int, *, for_update: bool = False) -> Customer:
    q = db.session.query(Customer).filter_by(id=customer_id, store_id=store_id)
    if for_update:
        q = lock_for_update(q)
    customer = q.first()
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def find_by_phone(store_id: int, phone: str) -> Customer | None:
    phone = _normalize_phone(phone)
    if not phone:
        return None
    return db.session.query(Customer).filter_by(store_id=store_id, phone=phone).first()


def upsert_customer_by_phone(*, store_id: int, name: str | None, phone: str, email: str | None = None) -> Customer:
    """
    Find the store's customer with this phone or create one.

    An existing customer's name is overwritten with the supplied name.
    Runs inside the caller's unit of work (flush only).
    """
    phone = _normalize_phone(phone)
    if not phone:
        raise CustomerError("Customer phone is required")
    name = (name or "").strip()

    customer = find_by_phone(store_id, phone)
    if customer is None:
        if not name:
            raise CustomerError("Customer name is required")
        customer = Customer(store_id=store_id, name=name, phone=phone, email=email, balance_cents=0)
        db.session.add(customer)
        logger.info("Created customer %r (%s) in store %s", name, phone, store_id)
    elif name and customer.name != name:
        logger.info("Customer %s renamed from %r to %r", customer.id, customer.name, name)
        customer.name = name
    db.session.flush()
    return customer


def create_customer(*, store_id: int, payload: dict) -> Customer:
    def _op():
        require_store(store_id)
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        if find_by_phone(store_id, patch["phone"]):
            raise ConflictError(f"A customer with phone {patch['phone']} already exists")
        customer = Customer(store_id=store_id, balance_cents=0, **patch)
        db.session.add(customer)
        db.session.commit()
        return customer

    return run_with_retry(_op)


def update_customer(*, store_id: int, customer_id: int, payload: dict) -> Customer:
    """Descriptive fields only; the balance moves through sales and payments."""
    def _op():
        customer = get_customer(store_id, customer_id, for_update=True)
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        if "phone" in patch and patch["phone"] != customer.phone:
            other = find_by_phone(store_id, patch["phone"])
            if other is not None and other.id != customer.id:
                raise ConflictError(f"A customer with phone {patch['phone']} already exists")
        for k, v in patch.items():
            setattr(customer, k, v)
        db.session.commit()
        return customer

    return run_with_retry(_op)


def delete_customer(*, store_id: int, customer_id: int) -> None:
    """
    Delete a customer who owes nothing. Their sales keep the name/phone
    snapshot and lose the link.
    """
    def _op():
        customer = get_customer(store_id, customer_id, for_update=True)
        if (customer.balance_cents or 0) > 0:
            raise CustomerError("Cannot delete a customer with an outstanding balance")
        db.session.query(Sale).filter_by(customer_id=customer.id).update(
            {Sale.customer_id: None}, synchronize_session=False
        )
        db.session.delete(customer)
        db.session.commit()

    return run_with_retry(_op)


def get_customer_details(*, store_id: int, customer_id: int) -> dict:
    customer = get_customer(store_id, customer_id)
    sales = (
        db.session.query(Sale)
        .filter_by(store_id=store_id, customer_id=customer.id)
        .order_by(Sale.sale_date.desc(), Sale.id.desc())
        .all()
    )
    outstanding = sum(s.remaining_cents for s in sales if s.payment_status in OPEN_PAYMENT_STATUSES)
    return {
        "customer": customer.to_dict(),
        "sales": [s.to_dict(include_children=False) for s in sales],
        "outstanding_cents": outstanding,
        "sales_count": len(sales),
    }


def list_customers(
    *,
    store_id: int,
    search: str | None = None,
    with_balance: bool = False,
    page=None,
    page_size=None,
) -> dict:
    q = db.session.query(Customer).filter(Customer.store_id == store_id)
    if search and search.strip():
        term = f"%{search.strip()}%"
        q = q.filter(or_(Customer.name.ilike(term), Customer.phone.ilike(term), Customer.email.ilike(term)))
    if with_balance:
        q = q.filter(Customer.balance_cents > 0)
    q = q.order_by(Customer.name.asc(), Customer.id.asc())
    return paginate(q, page=page, page_size=page_size)
