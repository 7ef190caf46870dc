# Overview: Flask API routes for reports; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..decorators import require_store, service_result
from ..services import reporting_service

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
@require_store
@service_result()
def dashboard():
    return reporting_service.dashboard_stats(store_id=g.store_id)


@reports_bp.get("/sales")
@require_store
@service_result()
def sales_report():
    return reporting_service.sales_report(
        store_id=g.store_id,
        start=request.args.get("start"),
        end=request.args.get("end"),
        group_by=request.args.get("group_by", "day"),
    )
