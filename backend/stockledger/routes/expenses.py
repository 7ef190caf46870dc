# Overview: Flask API routes for expense operations; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..decorators import require_store, service_result
from ..validation import parse_datetime
from ..services import account_service

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@require_store
@service_result()
def list_expenses():
    return account_service.list_expenses(
        store_id=g.store_id,
        search=request.args.get("search"),
        category=request.args.get("category"),
        start=parse_datetime(request.args.get("start"), "start"),
        end=parse_datetime(request.args.get("end"), "end"),
        page=request.args.get("page", type=int),
        page_size=request.args.get("page_size", type=int),
    )


@expenses_bp.post("")
@require_store
@service_result(status=201)
def create_expense():
    payload = request.get_json(silent=True) or {}
    return account_service.create_expense(store_id=g.store_id, payload=payload)
