# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product routes.

All routes are scoped to the store from X-Store-Id (see require_store).
Static paths (by-sku, by-barcode, barcode-check) are declared before the
/<int:product_id> routes.
"""
from flask import Blueprint, request, g

from ..decorators import require_store, service_result
from ..validation import NotFoundError
from ..services import products_service, purchase_order_service

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _flag(name: str) -> bool:
    return request.args.get(name, "false").strip().lower() in {"1", "true", "yes"}


@products_bp.get("")
@require_store
@service_result()
def list_products():
    """
    Query params:
    - search: matches name, SKU or barcode
    - category_id, brand_id, product_kind
    - include_inactive, low_stock: booleans
    - page, page_size
    """
    return products_service.list_products(
        store_id=g.store_id,
        search=request.args.get("search"),
        category_id=request.args.get("category_id", type=int),
        brand_id=request.args.get("brand_id", type=int),
        product_kind=request.args.get("product_kind"),
        include_inactive=_flag("include_inactive"),
        low_stock=_flag("low_stock"),
        page=request.args.get("page", type=int),
        page_size=request.args.get("page_size", type=int),
    )


@products_bp.post("")
@require_store
@service_result(status=201)
def create_product():
    payload = request.get_json(silent=True) or {}
    return products_service.create_product(store_id=g.store_id, payload=payload)


@products_bp.get("/by-sku")
@require_store
@service_result()
def get_by_sku():
    product = products_service.get_product_by_sku(store_id=g.store_id, sku=request.args.get("sku", ""))
    if product is None:
        raise NotFoundError("Product not found")
    return product


@products_bp.get("/by-barcode")
@require_store
@service_result()
def get_by_barcode():
    product = products_service.get_product_by_barcode(
        store_id=g.store_id, barcode=request.args.get("barcode", "")
    )
    if product is None:
        raise NotFoundError("Product not found")
    return product


@products_bp.get("/barcode-check")
@require_store
@service_result()
def check_barcode():
    return products_service.check_barcode(
        store_id=g.store_id,
        barcode=request.args.get("barcode"),
        exclude_id=request.args.get("exclude_id", type=int),
    )


@products_bp.get("/<int:product_id>")
@require_store
@service_result()
def get_product(product_id: int):
    return products_service.get_product(store_id=g.store_id, product_id=product_id)


@products_bp.put("/<int:product_id>")
@require_store
@service_result()
def update_product(product_id: int):
    payload = request.get_json(silent=True) or {}
    return products_service.update_product(store_id=g.store_id, product_id=product_id, payload=payload)


@products_bp.delete("/<int:product_id>")
@require_store
@service_result()
def delete_product(product_id: int):
    return products_service.delete_product(store_id=g.store_id, product_id=product_id)


@products_bp.post("/<int:product_id>/restock")
@require_store
@service_result()
def restock_product(product_id: int):
    payload = request.get_json(silent=True) or {}
    return products_service.restock_product(store_id=g.store_id, product_id=product_id, payload=payload)


@products_bp.get("/<int:product_id>/sales-check")
@require_store
@service_result()
def check_sales(product_id: int):
    return products_service.check_sales(store_id=g.store_id, product_id=product_id)


@products_bp.get("/<int:product_id>/initial-stock-entry")
@require_store
@service_result()
def initial_stock_entry(product_id: int):
    return products_service.get_initial_stock_entry(store_id=g.store_id, product_id=product_id)


@products_bp.get("/<int:product_id>/last-supply")
@require_store
@service_result()
def last_supply(product_id: int):
    return purchase_order_service.get_last_supply(store_id=g.store_id, product_id=product_id)
