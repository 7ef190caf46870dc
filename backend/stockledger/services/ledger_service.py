# Overview: Service-layer operations for the account transaction ledger.

from __future__ import annotations

import logging
from datetime import datetime

from ..extensions import db
from ..models import (
    Account, Transaction, TransactionEntry,
    TRANSACTION_INCOME, TRANSACTION_TYPES, ENTRY_DEBIT, ENTRY_CREDIT,
)
from ..validation import ValidationError, NotFoundError
from .concurrency import increment
from .pagination import paginate
"""
Account Ledger Invariants (authoritative)

- Transactions are append-only. Each cash-affecting event posts exactly one
  Transaction carrying exactly one entry.
- Money received by the store (INCOME) is a DEBIT against the receiving
  account and increases its balance. Money leaving the store (EXPENSE:
  refunds, expenses, supplier payments) is a CREDIT against the paying
  account and decreases its balance.
- A posting with a non-positive amount or without an account is skipped,
  never written as a zero or negative entry.
- Posting is the last write of any operation that moves cash.
"""

logger = logging.getLogger(__name__)

CASH_ACCOUNT_NAME = "Cash in Hand"
BANK_ACCOUNT_NAME = "Bank"

DEFAULT_ACCOUNTS = (
    {"account_name": CASH_ACCOUNT_NAME, "account_code": "1000", "account_type": "ASSET",
     "description": "Physical cash in the drawer"},
    {"account_name": BANK_ACCOUNT_NAME, "account_code": "1010", "account_type": "ASSET",
     "description": "Bank account for transfers, cards and cheques"},
)

# Payment methods settled through the bank; everything else lands in cash
BANK_METHODS = frozenset({"bank transfer", "bank", "card", "cheque", "check"})


class LedgerError(ValidationError):
    """Raised when a posting cannot be made."""
    pass


def ensure_default_accounts(store_id: int) -> dict[str, Account]:
    """
    Lazily create "Cash in Hand" and "Bank" for a store.

    Idempotent: existing accounts are found by name and left untouched.
    Runs inside the caller's unit of work (flush only).
    """
    existing = {
        a.account_name: a
        for a in db.session.query(Account).filter(
            Account.store_id == store_id,
            Account.account_name.in_([d["account_name"] for d in DEFAULT_ACCOUNTS]),
        )
    }
    for spec in DEFAULT_ACCOUNTS:
        if spec["account_name"] in existing:
            continue
        account = Account(store_id=store_id, opening_balance_cents=0, current_balance_cents=0, **spec)
        db.session.add(account)
        existing[spec["account_name"]] = account
        logger.info("Created default account %r for store %s", spec["account_name"], store_id)
    db.session.flush()
    return existing


def get_account(store_id: int, account_id: int) -> Account:
    account = db.session.query(Account).filter_by(id=account_id, store_id=store_id).first()
    if not account:
        raise NotFoundError("Account not found")
    return account


def resolve_account(store_id: int, method: str | None = None, account_id: int | None = None) -> Account:
    """Explicit account wins; otherwise Bank for bank-settled methods, Cash in Hand for the rest."""
    if account_id is not None:
        return get_account(store_id, account_id)
    defaults = ensure_default_accounts(store_id)
    if (method or "").strip().lower() in BANK_METHODS:
        return defaults[BANK_ACCOUNT_NAME]
    return defaults[CASH_ACCOUNT_NAME]


def post_transaction(
    *,
    store_id: int,
    transaction_type: str,
    amount_cents: int,
    account: Account | None,
    reference_type: str,
    reference_id: int | None = None,
    description: str | None = None,
    created_by: str | None = None,
    transaction_date: datetime | None = None,
) -> Transaction | None:
    """Post one single-entry transaction and move the account balance."""
    if transaction_type not in TRANSACTION_TYPES:
        raise LedgerError(f"transaction_type must be one of {', '.join(TRANSACTION_TYPES)}")
    if not amount_cents or amount_cents <= 0:
        logger.debug("Skipped %s posting for %s %s: non-positive amount", transaction_type, reference_type, reference_id)
        return None
    if account is None:
        logger.debug("Skipped %s posting for %s %s: no account", transaction_type, reference_type, reference_id)
        return None

    if transaction_type == TRANSACTION_INCOME:
        entry_type, balance_delta = ENTRY_DEBIT, amount_cents
    else:
        entry_type, balance_delta = ENTRY_CREDIT, -amount_cents

    tx = Transaction(
        store_id=store_id,
        transaction_type=transaction_type,
        total_amount_cents=amount_cents,
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
        created_by=created_by,
    )
    if transaction_date is not None:
        tx.transaction_date = transaction_date
    tx.entries.append(TransactionEntry(account_id=account.id, entry_type=entry_type, amount_cents=amount_cents))
    db.session.add(tx)
    db.session.flush()

    increment(account, "current_balance_cents", balance_delta)
    logger.info(
        "Posted %s %s of %s cents to account %s (%s %s)",
        transaction_type, entry_type, amount_cents, account.id, reference_type, reference_id,
    )
    return tx


def list_transactions(
    *,
    store_id: int,
    search: str | None = None,
    transaction_type: str | None = None,
    reference_type: str | None = None,
    account_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page=None,
    page_size=None,
) -> dict:
    q = db.session.query(Transaction).filter(Transaction.store_id == store_id)
    if search and search.strip():
        q = q.filter(Transaction.description.ilike(f"%{search.strip()}%"))
    if transaction_type:
        q = q.filter(Transaction.transaction_type == transaction_type.upper())
    if reference_type:
        q = q.filter(Transaction.reference_type == reference_type.upper())
    if account_id is not None:
        q = q.filter(Transaction.entries.any(TransactionEntry.account_id == account_id))
    if start is not None:
        q = q.filter(Transaction.transaction_date >= start)
    if end is not None:
        q = q.filter(Transaction.transaction_date <= end)
    q = q.order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
    return paginate(q, page=page, page_size=page_size)
