# Overview: Service-layer operations for accounts, expenses and manual transactions.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import (
    Account, Expense, Transaction, TransactionEntry, ACCOUNT_TYPES, TRANSACTION_TYPES, TRANSACTION_EXPENSE,
)
from ..validation import (
    ValidationError, ConflictError, ModelValidationPolicy, validate_payload,
    parse_cents, parse_id, parse_datetime,
)
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number, DOC_EXPENSE
from .pagination import paginate
from .store_service import require_store
from . import ledger_service

logger = logging.getLogger(__name__)


class AccountError(ValidationError):
    """Raised when an account operation breaks a business rule."""
    pass


ACCOUNT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"account_name", "account_code", "account_type", "description", "is_active"}),
    required_on_create=frozenset({"account_name"}),
)


def _check_type(account_type: str | None) -> None:
    if account_type is not None and account_type not in ACCOUNT_TYPES:
        raise ValidationError(f"account_type must be one of {', '.join(ACCOUNT_TYPES)}")


def _ensure_unique_name(store_id: int, name: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Account.id).filter_by(store_id=store_id, account_name=name)
    if exclude_id is not None:
        q = q.filter(Account.id != exclude_id)
    if q.first():
        raise ConflictError(f"Account {name!r} already exists")


def ensure_defaults(*, store_id: int) -> list[dict]:
    def _op():
        require_store(store_id)
        accounts = ledger_service.ensure_default_accounts(store_id)
        db.session.commit()
        return [a.to_dict() for a in accounts.values()]

    return run_with_retry(_op)


def create_account(*, store_id: int, payload: dict) -> Account:
    """The opening balance becomes the initial current balance."""
    def _op():
        require_store(store_id)
        patch = validate_payload(model=Account, payload=payload, policy=ACCOUNT_POLICY, partial=False)
        patch.setdefault("account_type", "ASSET")
        patch["account_type"] = patch["account_type"].upper()
        _check_type(patch["account_type"])
        _ensure_unique_name(store_id, patch["account_name"])
        opening = parse_cents(
            payload.get("opening_balance_cents", payload.get("current_balance_cents")),
            "opening_balance_cents",
            default=0,
        )
        account = Account(
            store_id=store_id, opening_balance_cents=opening, current_balance_cents=opening, **patch
        )
        db.session.add(account)
        db.session.commit()
        return account

    return run_with_retry(_op)


def update_account(*, store_id: int, account_id: int, payload: dict) -> Account:
    """Descriptive fields only; balances move through postings."""
    def _op():
        account = ledger_service.get_account(store_id, account_id)
        patch = validate_payload(model=Account, payload=payload, policy=ACCOUNT_POLICY, partial=True)
        if "account_type" in patch:
            patch["account_type"] = patch["account_type"].upper()
            _check_type(patch["account_type"])
        if "account_name" in patch and patch["account_name"] != account.account_name:
            _ensure_unique_name(store_id, patch["account_name"], exclude_id=account.id)
        for k, v in patch.items():
            setattr(account, k, v)
        db.session.commit()
        return account

    return run_with_retry(_op)


def delete_account(*, store_id: int, account_id: int) -> None:
    def _op():
        account = ledger_service.get_account(store_id, account_id)
        has_postings = db.session.query(TransactionEntry.id).filter_by(account_id=account.id).first()
        has_expenses = db.session.query(Expense.id).filter_by(account_id=account.id).first()
        if has_postings or has_expenses:
            raise AccountError("Cannot delete account with existing transactions")
        db.session.delete(account)
        db.session.commit()

    return run_with_retry(_op)


def list_accounts(*, store_id: int, search: str | None = None, page=None, page_size=None) -> dict:
    q = db.session.query(Account).filter(Account.store_id == store_id)
    if search and search.strip():
        q = q.filter(Account.account_name.ilike(f"%{search.strip()}%"))
    q = q.order_by(Account.account_code.asc(), Account.id.asc())
    result = paginate(q, page=page, page_size=page_size)

    summary = {"total_assets_cents": 0, "total_revenue_cents": 0, "total_expenses_cents": 0}
    for account in db.session.query(Account).filter(Account.store_id == store_id):
        if account.account_type == "ASSET":
            summary["total_assets_cents"] += account.current_balance_cents or 0
        elif account.account_type == "REVENUE":
            summary["total_revenue_cents"] += account.current_balance_cents or 0
        elif account.account_type == "EXPENSE":
            summary["total_expenses_cents"] += account.current_balance_cents or 0
    result["summary"] = summary
    return result


def create_expense(*, store_id: int, payload: dict) -> dict:
    """Record an expense paid from an account (CREDIT, balance decreased)."""
    def _op():
        require_store(store_id)
        amount = parse_cents(payload.get("amount_cents"), "amount_cents", allow_zero=False)
        account_id = parse_id(payload.get("account_id"), "account_id", required=False)
        if account_id is None:
            raise AccountError("account_id is required")
        account = lock_for_update(db.session.query(Account).filter_by(id=account_id, store_id=store_id)).first()
        if account is None:
            account = ledger_service.get_account(store_id, account_id)
        expense_date = parse_datetime(payload.get("expense_date"), "expense_date") or utcnow()
        category = str(payload.get("category") or "General").strip()

        expense = Expense(
            store_id=store_id,
            account_id=account.id,
            expense_number=next_document_number(store_id=store_id, document_type=DOC_EXPENSE),
            category=category,
            description=payload.get("description"),
            amount_cents=amount,
            expense_date=expense_date,
            recorded_by=payload.get("recorded_by"),
        )
        db.session.add(expense)
        db.session.flush()

        ledger_service.post_transaction(
            store_id=store_id,
            transaction_type=TRANSACTION_EXPENSE,
            amount_cents=amount,
            account=account,
            reference_type="EXPENSE",
            reference_id=expense.id,
            description=expense.description or f"{category} expense {expense.expense_number}",
            created_by=payload.get("recorded_by"),
            transaction_date=expense_date,
        )

        db.session.commit()
        return expense.to_dict()

    return run_with_retry(_op)


def list_expenses(
    *,
    store_id: int,
    search: str | None = None,
    category: str | None = None,
    start=None,
    end=None,
    page=None,
    page_size=None,
) -> dict:
    q = db.session.query(Expense).filter(Expense.store_id == store_id)
    if search and search.strip():
        q = q.filter(Expense.description.ilike(f"%{search.strip()}%"))
    if category:
        q = q.filter(Expense.category == category)
    if start is not None:
        q = q.filter(Expense.expense_date >= start)
    if end is not None:
        q = q.filter(Expense.expense_date <= end)
    q = q.order_by(Expense.created_at.desc(), Expense.id.desc())
    return paginate(q, page=page, page_size=page_size)


def create_manual_transaction(*, store_id: int, payload: dict) -> dict:
    """
    Post a transaction by hand. Unlike automatic postings, bad input is an
    error here rather than a skipped posting.
    """
    def _op():
        require_store(store_id)
        tx_type = str(payload.get("transaction_type") or "").strip().upper()
        if tx_type not in TRANSACTION_TYPES:
            raise ValidationError(f"transaction_type must be one of {', '.join(TRANSACTION_TYPES)}")
        amount = parse_cents(payload.get("amount_cents"), "amount_cents", allow_zero=False)
        account_id = parse_id(payload.get("account_id"), "account_id")
        account = ledger_service.get_account(store_id, account_id)

        tx: Transaction = ledger_service.post_transaction(
            store_id=store_id,
            transaction_type=tx_type,
            amount_cents=amount,
            account=account,
            reference_type="MANUAL",
            description=payload.get("description"),
            created_by=payload.get("created_by"),
            transaction_date=parse_datetime(payload.get("transaction_date"), "transaction_date"),
        )
        db.session.commit()
        return tx.to_dict()

    return run_with_retry(_op)
