# Overview: Flask API routes for supplier operations; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..decorators import require_store, service_result
from ..services import supplier_service

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_store
@service_result()
def list_suppliers():
    return supplier_service.list_suppliers(
        store_id=g.store_id,
        search=request.args.get("search"),
        page=request.args.get("page", type=int),
        page_size=request.args.get("page_size", type=int),
    )


@suppliers_bp.post("")
@require_store
@service_result(status=201)
def create_supplier():
    payload = request.get_json(silent=True) or {}
    return supplier_service.create_supplier(store_id=g.store_id, payload=payload).to_dict()


@suppliers_bp.get("/<int:supplier_id>")
@require_store
@service_result()
def get_supplier(supplier_id: int):
    return supplier_service.get_supplier(store_id=g.store_id, supplier_id=supplier_id)


@suppliers_bp.put("/<int:supplier_id>")
@require_store
@service_result()
def update_supplier(supplier_id: int):
    payload = request.get_json(silent=True) or {}
    return supplier_service.update_supplier(
        store_id=g.store_id, supplier_id=supplier_id, payload=payload
    ).to_dict()


@suppliers_bp.delete("/<int:supplier_id>")
@require_store
@service_result()
def delete_supplier(supplier_id: int):
    supplier_service.delete_supplier(store_id=g.store_id, supplier_id=supplier_id)
    return {"id": supplier_id, "deleted": True}


@suppliers_bp.post("/<int:supplier_id>/payments")
@require_store
@service_result(status=201)
def record_payment(supplier_id: int):
    payload = request.get_json(silent=True) or {}
    return supplier_service.record_supplier_payment(store_id=g.store_id, supplier_id=supplier_id, payload=payload)
