# Overview: Flask API routes for account operations; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..decorators import require_store, service_result
from ..services import account_service

accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")


@accounts_bp.get("")
@require_store
@service_result()
def list_accounts():
    return account_service.list_accounts(
        store_id=g.store_id,
        search=request.args.get("search"),
        page=request.args.get("page", type=int),
        page_size=request.args.get("page_size", type=int),
    )


@accounts_bp.post("")
@require_store
@service_result(status=201)
def create_account():
    payload = request.get_json(silent=True) or {}
    return account_service.create_account(store_id=g.store_id, payload=payload).to_dict()


@accounts_bp.post("/defaults")
@require_store
@service_result()
def ensure_defaults():
    return account_service.ensure_defaults(store_id=g.store_id)


@accounts_bp.put("/<int:account_id>")
@require_store
@service_result()
def update_account(account_id: int):
    payload = request.get_json(silent=True) or {}
    return account_service.update_account(store_id=g.store_id, account_id=account_id, payload=payload).to_dict()


@accounts_bp.delete("/<int:account_id>")
@require_store
@service_result()
def delete_account(account_id: int):
    account_service.delete_account(store_id=g.store_id, account_id=account_id)
    return {"id": account_id, "deleted": True}
