# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sale routes.

Creation, payment and refund each run as one unit of work in the service
layer; these views only parse input and shape the result.
"""
from flask import Blueprint, request, g

from ..decorators import require_store, service_result
from ..validation import parse_datetime
from ..services import sales_service, payment_service, refund_service, reporting_service

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_store
@service_result()
def list_sales():
    """
    Query params:
    - search: invoice number or customer name
    - status: PAID / PARTIAL / PENDING / all
    - customer_id, start, end (ISO-8601)
    - page, page_size
    """
    return sales_service.list_sales(
        store_id=g.store_id,
        search=request.args.get("search"),
        status=request.args.get("status"),
        customer_id=request.args.get("customer_id", type=int),
        start=parse_datetime(request.args.get("start"), "start"),
        end=parse_datetime(request.args.get("end"), "end"),
        page=request.args.get("page", type=int),
        page_size=request.args.get("page_size", type=int),
    )


@sales_bp.post("")
@require_store
@service_result(status=201)
def create_sale():
    payload = request.get_json(silent=True) or {}
    return sales_service.create_sale(store_id=g.store_id, payload=payload)


@sales_bp.get("/pending-stats")
@require_store
@service_result()
def pending_stats():
    return sales_service.get_pending_stats(store_id=g.store_id)


@sales_bp.get("/report")
@require_store
@service_result()
def sales_report():
    return reporting_service.sales_report(
        store_id=g.store_id,
        start=request.args.get("start"),
        end=request.args.get("end"),
        group_by=request.args.get("group_by", "day"),
    )


@sales_bp.get("/<int:sale_id>")
@require_store
@service_result()
def get_sale(sale_id: int):
    return sales_service.get_sale(store_id=g.store_id, sale_id=sale_id)


@sales_bp.delete("/<int:sale_id>")
@require_store
@service_result()
def delete_sale(sale_id: int):
    return sales_service.delete_sale(store_id=g.store_id, sale_id=sale_id)


@sales_bp.post("/<int:sale_id>/payments")
@require_store
@service_result(status=201)
def record_payment(sale_id: int):
    payload = request.get_json(silent=True) or {}
    return payment_service.record_sale_payment(store_id=g.store_id, sale_id=sale_id, payload=payload)


@sales_bp.post("/<int:sale_id>/refunds")
@require_store
@service_result(status=201)
def refund_sale(sale_id: int):
    payload = request.get_json(silent=True) or {}
    return refund_service.refund_sale(store_id=g.store_id, sale_id=sale_id, payload=payload)
