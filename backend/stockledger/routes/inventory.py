# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..decorators import require_store, service_result
from ..services import stock_service

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/history")
@require_store
@service_result()
def stock_history():
    """Newest stock entries first, optionally for one product (limit defaults to 50)."""
    limit = request.args.get("limit", 50, type=int)
    return stock_service.get_stock_history(
        g.store_id,
        product_id=request.args.get("product_id", type=int),
        limit=max(1, min(limit, 500)),
        entry_type=request.args.get("entry_type"),
    )
