# Overview: Flask API routes for account transactions; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..decorators import require_store, service_result
from ..validation import parse_datetime
from ..services import account_service, ledger_service

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.get("")
@require_store
@service_result()
def list_transactions():
    return ledger_service.list_transactions(
        store_id=g.store_id,
        search=request.args.get("search"),
        transaction_type=request.args.get("transaction_type"),
        reference_type=request.args.get("reference_type"),
        account_id=request.args.get("account_id", type=int),
        start=parse_datetime(request.args.get("start"), "start"),
        end=parse_datetime(request.args.get("end"), "end"),
        page=request.args.get("page", type=int),
        page_size=request.args.get("page_size", type=int),
    )


@transactions_bp.post("")
@require_store
@service_result(status=201)
def create_transaction():
    payload = request.get_json(silent=True) or {}
    return account_service.create_manual_transaction(store_id=g.store_id, payload=payload)
