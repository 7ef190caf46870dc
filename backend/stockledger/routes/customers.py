# Overview: Flask API routes for customer operations; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..decorators import require_store, service_result
from ..services import customer_service, payment_service

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_store
@service_result()
def list_customers():
    return customer_service.list_customers(
        store_id=g.store_id,
        search=request.args.get("search"),
        with_balance=request.args.get("with_balance", "false").strip().lower() in {"1", "true", "yes"},
        page=request.args.get("page", type=int),
        page_size=request.args.get("page_size", type=int),
    )


@customers_bp.post("")
@require_store
@service_result(status=201)
def create_customer():
    payload = request.get_json(silent=True) or {}
    return customer_service.create_customer(store_id=g.store_id, payload=payload).to_dict()


@customers_bp.get("/<int:customer_id>")
@require_store
@service_result()
def get_customer(customer_id: int):
    return customer_service.get_customer_details(store_id=g.store_id, customer_id=customer_id)


@customers_bp.put("/<int:customer_id>")
@require_store
@service_result()
def update_customer(customer_id: int):
    payload = request.get_json(silent=True) or {}
    return customer_service.update_customer(
        store_id=g.store_id, customer_id=customer_id, payload=payload
    ).to_dict()


@customers_bp.delete("/<int:customer_id>")
@require_store
@service_result()
def delete_customer(customer_id: int):
    customer_service.delete_customer(store_id=g.store_id, customer_id=customer_id)
    return {"id": customer_id, "deleted": True}


@customers_bp.post("/<int:customer_id>/payments")
@require_store
@service_result(status=201)
def record_payment(customer_id: int):
    """Spread one payment over the customer's open sales, oldest first."""
    payload = request.get_json(silent=True) or {}
    return payment_service.record_customer_payment(store_id=g.store_id, customer_id=customer_id, payload=payload)
