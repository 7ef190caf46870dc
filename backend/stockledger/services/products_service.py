# backend/stockledger/services/products_service.py
"""
Products Service

Product lifecycle on top of the stock ledger and the supplier reconciler.

LOCKING: a product is locked once any sale line references it. Updates to a
locked product keep its prices, quantity and attributed supplier as they are
(the request does not fail; the response carries the preserved values and
"locked": true). Descriptive fields stay editable.

UNLOCKED EDITS: quantity/price/supplier changes are replayed onto the
INITIAL_STOCK entry so supplier balances stay reconciled. The quantity change
is applied as a delta on the entry, so stock added later by restocks or
purchase orders is never re-credited to the supplier. A cut deeper than the
initial entry empties it and books the remainder as an ADJUSTMENT entry.
"""
from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import (
    Product, SimpleProduct, RawMaterialProduct, ComboSetProduct, ComboComponent,
    StockEntry, PurchaseOrderLine,
    PRODUCT_KIND_SIMPLE, PRODUCT_KIND_RAW_MATERIAL, PRODUCT_KIND_COMBO_SET, PRODUCT_KINDS,
    COMBO_COMPONENT_NAMES,
)
from ..validation import (
    ValidationError, ConflictError, NotFoundError, ModelValidationPolicy, validate_payload,
    parse_cents, parse_quantity, parse_id, parse_datetime, coerce_float,
    normalize_sku, normalize_barcode,
)
from .concurrency import lock_for_update, run_with_retry
from .pagination import paginate
from .store_service import require_store
from . import stock_service, stock_entry_service

logger = logging.getLogger(__name__)


class ProductError(ValidationError):
    """Raised when a product operation breaks a business rule."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


PRODUCT_CLASSES = {
    PRODUCT_KIND_SIMPLE: SimpleProduct,
    PRODUCT_KIND_RAW_MATERIAL: RawMaterialProduct,
    PRODUCT_KIND_COMBO_SET: ComboSetProduct,
}

BASE_UNITS = {
    PRODUCT_KIND_SIMPLE: "pcs",
    PRODUCT_KIND_RAW_MATERIAL: "meter",
    PRODUCT_KIND_COMBO_SET: "set",
}

# Descriptive fields: editable at any time, locked or not
PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "name", "description", "category_id", "brand_id", "images", "specifications",
        "sell_by_unit", "min_stock_level", "is_active",
        "color", "fabric_type", "pattern", "design_number",
    }),
    required_on_create=frozenset({"sku", "name"}),
)

LOCKED_FIELDS = ("buying_price_cents", "selling_price_cents", "stock_level", "total_meters", "supplier_id", "components")


def _get_product(store_id: int, product_id: int, *, for_update: bool = False) -> Product:
    q = db.session.query(Product).filter_by(id=product_id, store_id=store_id)
    if for_update:
        q = lock_for_update(q)
    product = q.first()
    if not product:
        raise NotFoundError("Product not found")
    return product


def _ensure_unique_sku(store_id: int, sku: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Product.id).filter(Product.store_id == store_id, Product.sku == sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first():
        raise ConflictError(f'SKU "{sku}" already exists')


def _ensure_unique_barcode(store_id: int, barcode: str | None, exclude_id: int | None = None) -> None:
    if not barcode:
        return
    q = db.session.query(Product.id).filter(Product.store_id == store_id, Product.barcode == barcode)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first():
        raise ConflictError(f'Barcode "{barcode}" already exists for another product')


def _parse_components(raw) -> list[ComboComponent]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("components must be a list")
    components = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValidationError("Each component must be an object")
        name = str(item.get("name") or "").strip()
        if name not in COMBO_COMPONENT_NAMES:
            raise ValidationError(f"Component name must be one of {', '.join(COMBO_COMPONENT_NAMES)}")
        meters = coerce_float(item.get("meters", 0), "meters")
        if meters < 0:
            raise ValidationError("meters must be >= 0")
        components.append(ComboComponent(
            name=name,
            meters=meters,
            buying_price_cents=parse_cents(item.get("buying_price_cents"), "buying_price_cents", default=0),
            selling_price_cents=parse_cents(item.get("selling_price_cents"), "selling_price_cents", default=0),
        ))
    return components


def _apply_kind_fields(product: Product, payload: dict) -> None:
    """Kind-specific descriptive fields (not subject to the lock)."""
    if isinstance(product, RawMaterialProduct) and "meters_per_unit" in payload:
        value = payload.get("meters_per_unit")
        mpu = coerce_float(value, "meters_per_unit") if value not in (None, "") else None
        if mpu is not None and mpu < 0:
            raise ValidationError("meters_per_unit must be >= 0")
        product.meters_per_unit = mpu
    if isinstance(product, ComboSetProduct):
        if "can_sell_separate" in payload:
            product.can_sell_separate = bool(payload.get("can_sell_separate"))
        if "can_sell_partial_set" in payload:
            product.can_sell_partial_set = bool(payload.get("can_sell_partial_set"))
        if "partial_set_prices" in payload:
            prices = payload.get("partial_set_prices") or {}
            if not isinstance(prices, dict):
                raise ValidationError("partial_set_prices must be an object")
            product.partial_set_prices = prices


def _quantity_key(product_kind: str) -> str:
    return "total_meters" if product_kind == PRODUCT_KIND_RAW_MATERIAL else "stock_level"


def _requested_quantity(product_kind: str, payload: dict, *, create: bool) -> float | None:
    if product_kind == PRODUCT_KIND_RAW_MATERIAL:
        keys = ("total_meters", "stock_level")
    elif create:
        keys = ("initial_quantity", "stock_level")
    else:
        keys = ("stock_level",)
    for key in keys:
        if payload.get(key) not in (None, ""):
            return parse_quantity(payload.get(key), key, allow_zero=True)
    return None


def create_product(*, store_id: int, payload: dict) -> dict:
    """
    Create a product of any kind with its INITIAL_STOCK entry.

    The initial entry is always written (quantity may be zero) so later
    unlocked edits have a reconciliation baseline. If a supplier is given it
    is credited with quantity x buying price and the product is attributed
    to it.
    """
    def _op():
        require_store(store_id)
        if payload is None or not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")

        kind = str(payload.get("product_kind") or PRODUCT_KIND_SIMPLE).upper()
        if kind not in PRODUCT_KINDS:
            raise ValidationError(f"product_kind must be one of {', '.join(PRODUCT_KINDS)}")
        cls = PRODUCT_CLASSES[kind]

        patch = validate_payload(model=cls, payload=payload, policy=PRODUCT_POLICY, partial=False)
        sku = normalize_sku(payload.get("sku"))
        barcode = normalize_barcode(payload.get("barcode"))
        _ensure_unique_sku(store_id, sku)
        _ensure_unique_barcode(store_id, barcode)

        buying = parse_cents(payload.get("buying_price_cents"), "buying_price_cents", default=0)
        selling = parse_cents(payload.get("selling_price_cents"), "selling_price_cents", default=0)
        quantity = _requested_quantity(kind, payload, create=True) or 0.0
        supplier = stock_entry_service.get_supplier(
            store_id, parse_id(payload.get("supplier_id"), "supplier_id", required=False)
        )
        components = _parse_components(payload.get("components")) if kind == PRODUCT_KIND_COMBO_SET else []

        product = cls(
            store_id=store_id,
            sku=sku,
            barcode=barcode,
            base_unit=BASE_UNITS[kind],
            buying_price_cents=buying,
            selling_price_cents=selling,
            stock_level=quantity,
            **patch,
        )
        if product.sell_by_unit is None:
            product.sell_by_unit = BASE_UNITS[kind]
        if product.min_stock_level is None:
            product.min_stock_level = current_app.config.get("LOW_STOCK_DEFAULT", 5)
        if isinstance(product, RawMaterialProduct):
            product.total_meters = quantity
        if isinstance(product, ComboSetProduct):
            product.components = components
        _apply_kind_fields(product, payload)

        db.session.add(product)
        db.session.flush()

        stock_entry_service.record_initial_stock(
            product=product,
            quantity=quantity,
            buying_price_cents=buying,
            supplier=supplier,
            invoice_number=payload.get("invoice_number"),
            purchase_date=parse_datetime(payload.get("purchase_date"), "purchase_date"),
            notes=payload.get("notes"),
        )

        db.session.commit()
        logger.info("Product created: %s (%s) kind=%s stock=%s %s", product.name, product.sku, kind, quantity, product.base_unit)
        return {**product.to_dict(), "locked": False}

    return run_with_retry(_op)


def update_product(*, store_id: int, product_id: int, payload: dict) -> dict:
    """
    Update a product under the lock rule.

    Returns the product dict plus "locked". On a locked product, prices,
    quantity, supplier and combo components in the payload are ignored.
    """
    def _op():
        if payload is None or not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")
        product = _get_product(store_id, product_id, for_update=True)

        requested_kind = payload.get("product_kind")
        if requested_kind and str(requested_kind).upper() != product.product_kind:
            raise ProductError("Product kind cannot be changed")

        patch = validate_payload(model=type(product), payload=payload, policy=PRODUCT_POLICY, partial=True)

        new_sku = None
        if payload.get("sku") not in (None, ""):
            new_sku = normalize_sku(payload.get("sku"))
            if new_sku != product.sku:
                _ensure_unique_sku(store_id, new_sku, exclude_id=product.id)
        new_barcode = product.barcode
        if "barcode" in payload:
            new_barcode = normalize_barcode(payload.get("barcode"))
            if new_barcode != product.barcode:
                _ensure_unique_barcode(store_id, new_barcode, exclude_id=product.id)

        sales_count = stock_service.count_sales_referencing(product.id)
        locked = sales_count > 0

        # Validate commercial changes before the first write
        plan = None
        if locked:
            ignored = [k for k in LOCKED_FIELDS if k in payload]
            if ignored:
                logger.info(
                    "Product %s has %s sales; preserved %s", product.id, sales_count, ", ".join(ignored)
                )
        else:
            plan = _plan_commercial_update(product, payload)

        for k, v in patch.items():
            setattr(product, k, v)
        if new_sku:
            product.sku = new_sku
        product.barcode = new_barcode
        _apply_kind_fields(product, payload)

        if plan is not None:
            _apply_commercial_update(product, plan)

        db.session.commit()
        return {**product.to_dict(), "locked": locked}

    return run_with_retry(_op)


def _plan_commercial_update(product: Product, payload: dict) -> dict:
    buying = parse_cents(payload.get("buying_price_cents"), "buying_price_cents", default=product.buying_price_cents)
    selling = parse_cents(payload.get("selling_price_cents"), "selling_price_cents", default=product.selling_price_cents)

    current = stock_service.current_stock(product)
    requested = _requested_quantity(product.product_kind, payload, create=False)
    if requested is None:
        requested = current
    delta = requested - current

    entry = stock_entry_service.get_initial_stock_entry(product.id)
    if "supplier_id" in payload:
        supplier = stock_entry_service.get_supplier(
            product.store_id, parse_id(payload.get("supplier_id"), "supplier_id", required=False)
        )
        supplier_changed = (supplier.id if supplier else None) != (entry.supplier_id if entry else None)
    else:
        supplier = entry.supplier if entry else None
        supplier_changed = False

    entry_quantity = None
    adjustment = 0.0
    if entry is not None:
        entry_quantity = (entry.quantity or 0) + delta
        if entry_quantity < 0:
            # the initial entry bottoms out at 0; restocked units absorb the rest
            adjustment = entry_quantity
            entry_quantity = 0.0

    components = None
    if isinstance(product, ComboSetProduct) and "components" in payload:
        components = _parse_components(payload.get("components"))

    changed = (
        delta != 0
        or buying != product.buying_price_cents
        or supplier_changed
        or (entry is not None and entry.buying_price_cents != buying)
    )
    return {
        "buying": buying,
        "selling": selling,
        "requested": requested,
        "delta": delta,
        "entry_quantity": entry_quantity,
        "adjustment": adjustment,
        "supplier": supplier,
        "changed": changed,
        "components": components,
    }


def _apply_commercial_update(product: Product, plan: dict) -> None:
    if plan["changed"]:
        stock_entry_service.reconcile_initial_stock(
            product=product,
            new_quantity=plan["entry_quantity"] if plan["entry_quantity"] is not None else plan["requested"],
            new_buying_price_cents=plan["buying"],
            new_supplier=plan["supplier"],
        )
    if plan["adjustment"]:
        stock_entry_service.record_adjustment(
            product=product,
            quantity=plan["adjustment"],
            buying_price_cents=plan["buying"],
        )
    if plan["delta"]:
        stock_service.set_stock(product, plan["requested"])
    product.buying_price_cents = plan["buying"]
    product.selling_price_cents = plan["selling"]
    if plan["components"] is not None:
        product.components = plan["components"]


def restock_product(*, store_id: int, product_id: int, payload: dict) -> dict:
    """
    Add stock from a supplier delivery.

    Not subject to the lock rule. Overwrites the buying price with the unit
    cost (and the selling price when one is supplied).
    """
    def _op():
        product = _get_product(store_id, product_id, for_update=True)
        quantity = parse_quantity(payload.get("quantity"))
        unit_cost = parse_cents(payload.get("unit_cost_cents"), "unit_cost_cents", default=product.buying_price_cents)
        selling = None
        if payload.get("selling_price_cents") not in (None, ""):
            selling = parse_cents(payload.get("selling_price_cents"), "selling_price_cents")
        supplier = stock_entry_service.get_supplier(
            store_id, parse_id(payload.get("supplier_id"), "supplier_id", required=False)
        )

        stock_service.adjust_stock(product, quantity)
        stock_entry_service.record_restock(
            product=product,
            quantity=quantity,
            unit_cost_cents=unit_cost,
            supplier=supplier,
            invoice_number=payload.get("invoice_number"),
            purchase_date=parse_datetime(payload.get("purchase_date"), "purchase_date"),
            notes=payload.get("notes"),
        )
        product.buying_price_cents = unit_cost
        if selling is not None:
            product.selling_price_cents = selling

        db.session.commit()
        logger.info("Product %s restocked by %s %s", product.id, quantity, product.base_unit)
        return product.to_dict()

    return run_with_retry(_op)


def delete_product(*, store_id: int, product_id: int) -> dict:
    """
    Archive a product that has sales or purchase orders; otherwise delete it.

    Hard deletion reverses the supplier credit of every stock entry (initial
    and restocks alike), detaches the product from its suppliers and removes
    the entries.
    """
    def _op():
        product = _get_product(store_id, product_id, for_update=True)

        has_sales = stock_service.is_locked(product.id)
        has_orders = db.session.query(PurchaseOrderLine.id).filter_by(product_id=product.id).first() is not None
        if has_sales or has_orders:
            product.is_active = False
            db.session.commit()
            logger.info("Product %s archived (referenced by sales or purchase orders)", product.id)
            return {"id": product.id, "archived": True, "deleted": False}

        stock_entry_service.reverse_supplier_credits(product)
        for supplier in list(product.suppliers):
            stock_entry_service.detach_product(supplier, product)
        db.session.query(StockEntry).filter_by(product_id=product.id).delete(synchronize_session=False)
        db.session.delete(product)
        db.session.commit()
        logger.info("Product %s deleted", product_id)
        return {"id": product_id, "archived": False, "deleted": True}

    return run_with_retry(_op)


def check_sales(*, store_id: int, product_id: int) -> dict:
    product = _get_product(store_id, product_id)
    count = stock_service.count_sales_referencing(product.id)
    return {"has_sales": count > 0, "sales_count": count}


def get_initial_stock_entry(*, store_id: int, product_id: int) -> dict | None:
    product = _get_product(store_id, product_id)
    entry = stock_entry_service.get_initial_stock_entry(product.id)
    if entry is None:
        return None
    data = entry.to_dict()
    data["supplier"] = entry.supplier.to_dict() if entry.supplier else None
    return data


def get_product(*, store_id: int, product_id: int) -> dict:
    product = _get_product(store_id, product_id)
    return {**product.to_dict(), "locked": stock_service.is_locked(product.id)}


def get_product_by_sku(*, store_id: int, sku: str) -> dict | None:
    if not sku or not str(sku).strip():
        raise ValidationError("sku is required")
    product = db.session.query(Product).filter_by(store_id=store_id, sku=str(sku).strip().upper()).first()
    return product.to_dict() if product else None


def get_product_by_barcode(*, store_id: int, barcode: str) -> dict | None:
    barcode = normalize_barcode(barcode)
    if not barcode:
        raise ValidationError("barcode is required")
    product = db.session.query(Product).filter_by(store_id=store_id, barcode=barcode).first()
    return product.to_dict() if product else None


def check_barcode(*, store_id: int, barcode: str | None, exclude_id: int | None = None) -> dict:
    barcode = normalize_barcode(barcode)
    if not barcode:
        return {"exists": False}
    q = db.session.query(Product).filter(Product.store_id == store_id, Product.barcode == barcode)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    product = q.first()
    if product:
        return {"exists": True, "product_name": product.name}
    return {"exists": False}


def _like_pattern(search: str) -> str:
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def list_products(
    *,
    store_id: int,
    search: str | None = None,
    category_id: int | None = None,
    brand_id: int | None = None,
    product_kind: str | None = None,
    include_inactive: bool = False,
    low_stock: bool = False,
    page=None,
    page_size=None,
) -> dict:
    q = db.session.query(Product).filter(Product.store_id == store_id)
    if not include_inactive:
        q = q.filter(Product.is_active.is_(True))
    if search and search.strip():
        pattern = _like_pattern(search.strip())
        q = q.filter(or_(
            Product.name.ilike(pattern, escape="\\"),
            Product.sku.ilike(pattern, escape="\\"),
            Product.barcode.ilike(pattern, escape="\\"),
        ))
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)
    if brand_id is not None:
        q = q.filter(Product.brand_id == brand_id)
    if product_kind:
        q = q.filter(Product.product_kind == product_kind.upper())
    if low_stock:
        q = q.filter(Product.stock_level <= Product.min_stock_level)

    q = q.order_by(Product.name.asc(), Product.id.asc())
    return paginate(q, page=page, page_size=page_size)
