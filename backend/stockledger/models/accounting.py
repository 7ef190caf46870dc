from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z, utcnow


ACCOUNT_TYPES = ("ASSET", "LIABILITY", "EQUITY", "REVENUE", "EXPENSE")

TRANSACTION_INCOME = "INCOME"
TRANSACTION_EXPENSE = "EXPENSE"
TRANSACTION_TYPES = (TRANSACTION_INCOME, TRANSACTION_EXPENSE)

ENTRY_DEBIT = "DEBIT"
ENTRY_CREDIT = "CREDIT"

REFERENCE_TYPES = ("SALE", "PAYMENT", "REFUND", "EXPENSE", "SUPPLIER_PAYMENT", "MANUAL")


class Account(db.Model):
    """
    Financial bucket (cash drawer, bank, expense head).

    "Cash in Hand" and "Bank" ASSET accounts are created lazily per store.
    current_balance_cents is moved only by posted transactions.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.UniqueConstraint("store_id", "account_name", name="uq_accounts_store_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    account_name = db.Column(db.String(128), nullable=False)
    account_code = db.Column(db.String(32), nullable=True)
    account_type = db.Column(db.String(16), nullable=False, default="ASSET")
    description = db.Column(db.Text, nullable=True)

    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "account_name": self.account_name,
            "account_code": self.account_code,
            "account_type": self.account_type,
            "description": self.description,
            "opening_balance_cents": self.opening_balance_cents,
            "current_balance_cents": self.current_balance_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Transaction(db.Model):
    """
    Append-only cash movement. Every posting carries exactly one entry.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_store_date", "store_id", "transaction_date"),
        db.Index("ix_transactions_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    transaction_type = db.Column(db.String(16), nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    reference_type = db.Column(db.String(32), nullable=False, default="MANUAL")
    reference_id = db.Column(db.Integer, nullable=True)
    description = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(128), nullable=True)
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    entries = db.relationship(
        "TransactionEntry", back_populates="transaction", cascade="all, delete-orphan", order_by="TransactionEntry.id"
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "transaction_type": self.transaction_type,
            "total_amount_cents": self.total_amount_cents,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "description": self.description,
            "created_by": self.created_by,
            "transaction_date": to_utc_z(self.transaction_date),
            "entries": [e.to_dict() for e in self.entries],
        }


class TransactionEntry(db.Model):
    __tablename__ = "transaction_entries"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(
        db.Integer, db.ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    entry_type = db.Column(db.String(8), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    transaction = db.relationship("Transaction", back_populates="entries")
    account = db.relationship("Account")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "account_name": self.account.account_name if self.account else None,
            "entry_type": self.entry_type,
            "amount_cents": self.amount_cents,
        }


class Expense(db.Model):
    __tablename__ = "expenses"
    __table_args__ = (
        db.UniqueConstraint("store_id", "expense_number", name="uq_expenses_store_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    expense_number = db.Column(db.String(64), nullable=False)
    category = db.Column(db.String(64), nullable=False, default="General")
    description = db.Column(db.Text, nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    expense_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    recorded_by = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    account = db.relationship("Account")
    supplier = db.relationship("Supplier")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "account_id": self.account_id,
            "account_name": self.account.account_name if self.account else None,
            "supplier_id": self.supplier_id,
            "expense_number": self.expense_number,
            "category": self.category,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "expense_date": to_utc_z(self.expense_date),
            "recorded_by": self.recorded_by,
            "created_at": to_utc_z(self.created_at),
        }
