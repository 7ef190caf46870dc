from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z, utcnow


PAYMENT_STATUS_PAID = "PAID"
PAYMENT_STATUS_PARTIAL = "PARTIAL"
PAYMENT_STATUS_PENDING = "PENDING"
OPEN_PAYMENT_STATUSES = (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PARTIAL)


class Sale(db.Model):
    """
    Sale document.

    Amounts are integer cents. paid_amount_cents never exceeds
    total_amount_cents and payment_status is always derived from the two
    (PAID / PARTIAL / PENDING). Refunds accumulate in refunded_amount_cents
    and leave paid and status untouched.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("store_id", "invoice_number", name="uq_sales_store_invoice"),
        db.Index("ix_sales_store_status_date", "store_id", "payment_status", "sale_date"),
        db.Index("ix_sales_customer_status_date", "customer_id", "payment_status", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    # Human-readable document number (e.g., "INV-0001")
    invoice_number = db.Column(db.String(64), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    # Snapshot of the buyer at sale time
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    refunded_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    profit_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False, default="Cash")
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING, index=True)

    sold_by = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    store = db.relationship("Store", backref=db.backref("sales", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    items = db.relationship("SaleItem", back_populates="sale", cascade="all, delete-orphan", order_by="SaleItem.id")
    payments = db.relationship(
        "SalePayment", back_populates="sale", cascade="all, delete-orphan", order_by="SalePayment.id"
    )
    refunds = db.relationship(
        "SaleRefund", back_populates="sale", cascade="all, delete-orphan", order_by="SaleRefund.id"
    )

    @property
    def remaining_cents(self) -> int:
        return (self.total_amount_cents or 0) - (self.paid_amount_cents or 0)

    @property
    def net_paid_cents(self) -> int:
        return (self.paid_amount_cents or 0) - (self.refunded_amount_cents or 0)

    def to_dict(self, include_children: bool = True) -> dict:
        data = {
            "id": self.id,
            "store_id": self.store_id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "sale_date": to_utc_z(self.sale_date),
            "subtotal_cents": self.subtotal_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "tax_amount_cents": self.tax_amount_cents,
            "total_amount_cents": self.total_amount_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "refunded_amount_cents": self.refunded_amount_cents,
            "remaining_cents": self.remaining_cents,
            "net_paid_cents": self.net_paid_cents,
            "profit_amount_cents": self.profit_amount_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "sold_by": self.sold_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
        if include_children:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [p.to_dict() for p in self.payments]
            data["refunds"] = [r.to_dict() for r in self.refunds]
        return data


class SaleItem(db.Model):
    """Line on a sale. Prices and cost are captured at sale time."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Float, nullable=False)
    refunded_quantity = db.Column(db.Float, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    profit_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    @property
    def refundable_quantity(self) -> float:
        return (self.quantity or 0) - (self.refunded_quantity or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "refunded_quantity": self.refunded_quantity,
            "selling_price_cents": self.selling_price_cents,
            "cost_price_cents": self.cost_price_cents,
            "total_amount_cents": self.total_amount_cents,
            "profit_amount_cents": self.profit_amount_cents,
        }


class SalePayment(db.Model):
    """Payment history row. The initial payment at sale time is recorded too."""
    __tablename__ = "sale_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False, default="Cash")
    notes = db.Column(db.Text, nullable=True)
    recorded_by = db.Column(db.String(128), nullable=True)

    sale = db.relationship("Sale", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "paid_at": to_utc_z(self.paid_at),
            "amount_cents": self.amount_cents,
            "method": self.method,
            "notes": self.notes,
            "recorded_by": self.recorded_by,
        }


class SaleRefund(db.Model):
    __tablename__ = "sale_refunds"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False, default="Cash")
    reason = db.Column(db.Text, nullable=True)
    processed_by = db.Column(db.String(128), nullable=True)

    sale = db.relationship("Sale", back_populates="refunds")
    items = db.relationship(
        "SaleRefundItem", back_populates="refund", cascade="all, delete-orphan", order_by="SaleRefundItem.id"
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "refunded_at": to_utc_z(self.refunded_at),
            "amount_cents": self.amount_cents,
            "method": self.method,
            "reason": self.reason,
            "processed_by": self.processed_by,
            "items": [item.to_dict() for item in self.items],
        }


class SaleRefundItem(db.Model):
    __tablename__ = "sale_refund_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    refund_id = db.Column(db.Integer, db.ForeignKey("sale_refunds.id", ondelete="CASCADE"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Float, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    refund = db.relationship("SaleRefund", back_populates="items")
    sale_item = db.relationship("SaleItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "amount_cents": self.amount_cents,
        }
