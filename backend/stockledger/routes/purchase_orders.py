# Overview: Flask API routes for purchase order operations; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..decorators import require_store, service_result
from ..validation import ValidationError
from ..services import purchase_order_service

purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.get("")
@require_store
@service_result()
def list_purchase_orders():
    return purchase_order_service.list_purchase_orders(
        store_id=g.store_id,
        search=request.args.get("search"),
        status=request.args.get("status"),
        supplier_id=request.args.get("supplier_id", type=int),
        page=request.args.get("page", type=int),
        page_size=request.args.get("page_size", type=int),
    )


@purchase_orders_bp.post("")
@require_store
@service_result(status=201)
def create_purchase_order():
    payload = request.get_json(silent=True) or {}
    return purchase_order_service.create_purchase_order(store_id=g.store_id, payload=payload)


@purchase_orders_bp.get("/last-supply")
@require_store
@service_result()
def last_supply():
    product_id = request.args.get("product_id", type=int)
    if product_id is None:
        raise ValidationError("product_id is required")
    return purchase_order_service.get_last_supply(store_id=g.store_id, product_id=product_id)


@purchase_orders_bp.get("/<int:po_id>")
@require_store
@service_result()
def get_purchase_order(po_id: int):
    return purchase_order_service.get_purchase_order(store_id=g.store_id, po_id=po_id)


@purchase_orders_bp.put("/<int:po_id>")
@require_store
@service_result()
def update_purchase_order(po_id: int):
    payload = request.get_json(silent=True) or {}
    return purchase_order_service.update_purchase_order(store_id=g.store_id, po_id=po_id, payload=payload)


@purchase_orders_bp.delete("/<int:po_id>")
@require_store
@service_result()
def delete_purchase_order(po_id: int):
    return purchase_order_service.delete_purchase_order(store_id=g.store_id, po_id=po_id)
