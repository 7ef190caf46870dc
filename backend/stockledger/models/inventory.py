from __future__ import annotations

import math

from ..extensions import db
from stockledger.time_utils import to_utc_z, utcnow


PRODUCT_KIND_SIMPLE = "SIMPLE"
PRODUCT_KIND_RAW_MATERIAL = "RAW_MATERIAL"
PRODUCT_KIND_COMBO_SET = "COMBO_SET"
PRODUCT_KINDS = (PRODUCT_KIND_SIMPLE, PRODUCT_KIND_RAW_MATERIAL, PRODUCT_KIND_COMBO_SET)

COMBO_COMPONENT_NAMES = ("Dupatta", "Shalwar", "Qameez", "Trouser", "Kurta", "Waistcoat")

ENTRY_INITIAL_STOCK = "INITIAL_STOCK"
ENTRY_RESTOCK = "RESTOCK"
ENTRY_ADJUSTMENT = "ADJUSTMENT"
ENTRY_TYPES = (ENTRY_INITIAL_STOCK, ENTRY_RESTOCK, ENTRY_ADJUSTMENT)


supplier_products = db.Table(
    "supplier_products",
    db.Column("supplier_id", db.Integer, db.ForeignKey("suppliers.id", ondelete="CASCADE"), primary_key=True),
    db.Column("product_id", db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
)


class Product(db.Model):
    """
    Product master data.

    Single-table inheritance keyed on product_kind:
    - SimpleProduct (SIMPLE): counted in pieces
    - RawMaterialProduct (RAW_MATERIAL): measured in meters; total_meters is
      the authoritative quantity and stock_level mirrors it
    - ComboSetProduct (COMBO_SET): counted in sets, made of named components

    SKU is upper-cased and unique within a store. Barcode is optional and
    unique within a store when present.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("store_id", "sku", name="uq_products_store_sku"),
        db.UniqueConstraint("store_id", "barcode", name="uq_products_store_barcode"),
        db.Index("ix_products_store_name", "store_id", "name"),
        db.Index("ix_products_store_active", "store_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_kind = db.Column(db.String(16), nullable=False, default=PRODUCT_KIND_SIMPLE, index=True)

    sku = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Catalog references owned by the surrounding system
    category_id = db.Column(db.Integer, nullable=True, index=True)
    brand_id = db.Column(db.Integer, nullable=True, index=True)

    images = db.Column(db.JSON, nullable=True)
    specifications = db.Column(db.JSON, nullable=True)

    base_unit = db.Column(db.String(16), nullable=False, default="pcs")
    sell_by_unit = db.Column(db.String(16), nullable=True)

    # Authoritative storage in cents
    buying_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock_level = db.Column(db.Float, nullable=False, default=0)
    min_stock_level = db.Column(db.Float, nullable=False, default=5)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Cloth attributes
    color = db.Column(db.String(64), nullable=True)
    fabric_type = db.Column(db.String(64), nullable=True)
    pattern = db.Column(db.String(64), nullable=True)
    design_number = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    store = db.relationship("Store", backref=db.backref("products", lazy=True))

    __mapper_args__ = {"polymorphic_on": product_kind}

    def __repr__(self) -> str:
        return f"<Product id={self.id} kind={self.product_kind} sku={self.sku!r} store_id={self.store_id}>"

    @property
    def is_low_stock(self) -> bool:
        return (self.stock_level or 0) <= (self.min_stock_level or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "product_kind": self.product_kind,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "brand_id": self.brand_id,
            "images": self.images or [],
            "specifications": self.specifications or {},
            "base_unit": self.base_unit,
            "sell_by_unit": self.sell_by_unit,
            "buying_price_cents": self.buying_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "stock_level": self.stock_level,
            "min_stock_level": self.min_stock_level,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "color": self.color,
            "fabric_type": self.fabric_type,
            "pattern": self.pattern,
            "design_number": self.design_number,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SimpleProduct(Product):
    __mapper_args__ = {"polymorphic_identity": PRODUCT_KIND_SIMPLE}


class RawMaterialProduct(Product):
    """Fabric sold by length. stock_level mirrors total_meters."""

    total_meters = db.Column(db.Float, nullable=True, default=0)
    meters_per_unit = db.Column(db.Float, nullable=True)

    __mapper_args__ = {"polymorphic_identity": PRODUCT_KIND_RAW_MATERIAL}

    @property
    def calculated_units(self) -> int:
        if not self.meters_per_unit or self.meters_per_unit <= 0:
            return 0
        return int(math.floor((self.total_meters or 0) / self.meters_per_unit))

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "total_meters": self.total_meters or 0,
            "meters_per_unit": self.meters_per_unit,
            "calculated_units": self.calculated_units,
        })
        return data


class ComboSetProduct(Product):
    can_sell_separate = db.Column(db.Boolean, nullable=True, default=False)
    can_sell_partial_set = db.Column(db.Boolean, nullable=True, default=False)
    partial_set_prices = db.Column(db.JSON, nullable=True)

    components = db.relationship(
        "ComboComponent",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ComboComponent.id",
    )

    __mapper_args__ = {"polymorphic_identity": PRODUCT_KIND_COMBO_SET}

    @property
    def total_combo_meters(self) -> float:
        return sum((c.meters or 0) for c in self.components)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "can_sell_separate": bool(self.can_sell_separate),
            "can_sell_partial_set": bool(self.can_sell_partial_set),
            "partial_set_prices": self.partial_set_prices or {},
            "components": [c.to_dict() for c in self.components],
            "total_combo_meters": self.total_combo_meters,
        })
        return data


class ComboComponent(db.Model):
    __tablename__ = "combo_components"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(32), nullable=False)
    meters = db.Column(db.Float, nullable=False, default=0)
    buying_price_cents = db.Column(db.Integer, nullable=True)
    selling_price_cents = db.Column(db.Integer, nullable=True)

    product = db.relationship("ComboSetProduct", back_populates="components")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "meters": self.meters,
            "buying_price_cents": self.buying_price_cents,
            "selling_price_cents": self.selling_price_cents,
        }


class StockEntry(db.Model):
    """
    Append-mostly log of stock arrivals.

    Exactly one entry per product carries is_initial=True: the INITIAL_STOCK
    entry written at product creation. It is the only entry ever rewritten
    (by unlocked product edits).
    """
    __tablename__ = "stock_entries"
    __table_args__ = (
        db.Index("ix_stock_entries_store_product_created", "store_id", "product_id", "created_at"),
        db.Index(
            "uq_stock_entries_initial_per_product",
            "product_id",
            unique=True,
            sqlite_where=db.text("is_initial = 1"),
            postgresql_where=db.text("is_initial"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    quantity = db.Column(db.Float, nullable=False)
    unit = db.Column(db.String(16), nullable=False, default="pcs")
    buying_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    entry_type = db.Column(db.String(16), nullable=False, index=True)
    is_initial = db.Column(db.Boolean, nullable=False, default=False)

    invoice_number = db.Column(db.String(64), nullable=True)
    purchase_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", backref=db.backref("stock_entries", lazy=True))
    supplier = db.relationship("Supplier")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "product_id": self.product_id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "quantity": self.quantity,
            "unit": self.unit,
            "buying_price_cents": self.buying_price_cents,
            "total_cost_cents": self.total_cost_cents,
            "entry_type": self.entry_type,
            "is_initial": self.is_initial,
            "invoice_number": self.invoice_number,
            "purchase_date": to_utc_z(self.purchase_date),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class Supplier(db.Model):
    """
    Supplier master data with the running amount owed to them.

    current_balance_cents rises with credited stock arrivals and falls with
    supplier payments. Changed only by SQL-expression increments.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_store_name", "store_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)

    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    products = db.relationship(
        "Product",
        secondary=supplier_products,
        lazy="select",
        backref=db.backref("suppliers", lazy="select"),
    )

    def to_dict(self, include_products: bool = False) -> dict:
        data = {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "contact_person": self.contact_person,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "current_balance_cents": self.current_balance_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_products:
            data["products"] = [
                {
                    "id": p.id,
                    "sku": p.sku,
                    "name": p.name,
                    "stock_level": p.stock_level,
                    "min_stock_level": p.min_stock_level,
                    "buying_price_cents": p.buying_price_cents,
                }
                for p in self.products
            ]
        return data


class PurchaseOrder(db.Model):
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("store_id", "po_number", name="uq_purchase_orders_store_number"),
        db.Index("ix_purchase_orders_store_date", "store_id", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    po_number = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="RECEIVED")
    order_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    notes = db.Column(db.Text, nullable=True)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))
    lines = db.relationship(
        "PurchaseOrderLine",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "po_number": self.po_number,
            "status": self.status,
            "order_date": to_utc_z(self.order_date),
            "notes": self.notes,
            "total_amount_cents": self.total_amount_cents,
            "lines": [line.to_dict() for line in self.lines],
            "created_at": to_utc_z(self.created_at),
        }


class PurchaseOrderLine(db.Model):
    __tablename__ = "purchase_order_lines"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(
        db.Integer, db.ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Float, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=True)
    line_total_cents = db.Column(db.Integer, nullable=False, default=0)

    purchase_order = db.relationship("PurchaseOrder", back_populates="lines")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "selling_price_cents": self.selling_price_cents,
            "line_total_cents": self.line_total_cents,
        }
