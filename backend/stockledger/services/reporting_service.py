# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..validation import ValidationError
from ..models import Sale, Product, PAYMENT_STATUS_PAID, PAYMENT_STATUS_PARTIAL, PAYMENT_STATUS_PENDING
from ..time_utils import to_utc_naive, period_key, days_ago, utcnow, to_utc_z


class ReportError(ValidationError):
    """Raised when report generation fails."""
    pass


GROUP_BY_CHOICES = ("day", "week", "month")


def _parse_range(start, end) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = to_utc_naive(start)
        end_dt = to_utc_naive(end)
    except ValueError as exc:
        raise ReportError("start and end must be ISO-8601 datetimes") from exc
    return start_dt, end_dt


def sales_report(
    *,
    store_id: int,
    start=None,
    end=None,
    group_by: str = "day",
) -> dict:
    """
    Sales in [start, end] with a summary and per-period totals.

    Periods are bucketed in Python so that weeks follow ISO numbering on
    every database backend.
    """
    group_by = (group_by or "day").strip().lower()
    if group_by not in GROUP_BY_CHOICES:
        raise ReportError("group_by must be day, week, or month")
    start_dt, end_dt = _parse_range(start, end)

    query = db.session.query(Sale).filter(Sale.store_id == store_id)
    if start_dt:
        query = query.filter(Sale.sale_date >= start_dt)
    if end_dt:
        query = query.filter(Sale.sale_date <= end_dt)
    sales = query.order_by(Sale.sale_date.asc(), Sale.id.asc()).all()

    summary = {
        "total_sales_cents": 0,
        "total_paid_cents": 0,
        "total_pending_cents": 0,
        "total_discount_cents": 0,
        "total_tax_cents": 0,
        "total_profit_cents": 0,
        "total_refunded_cents": 0,
        "total_net_paid_cents": 0,
        "total_count": len(sales),
        "paid_count": 0,
        "pending_count": 0,
        "partial_count": 0,
    }
    grouped: dict[str, dict] = {}
    for sale in sales:
        summary["total_sales_cents"] += sale.total_amount_cents or 0
        summary["total_paid_cents"] += sale.paid_amount_cents or 0
        summary["total_pending_cents"] += sale.remaining_cents
        summary["total_discount_cents"] += sale.discount_amount_cents or 0
        summary["total_tax_cents"] += sale.tax_amount_cents or 0
        summary["total_profit_cents"] += sale.profit_amount_cents or 0
        summary["total_refunded_cents"] += sale.refunded_amount_cents or 0
        summary["total_net_paid_cents"] += sale.net_paid_cents
        if sale.payment_status == PAYMENT_STATUS_PAID:
            summary["paid_count"] += 1
        elif sale.payment_status == PAYMENT_STATUS_PARTIAL:
            summary["partial_count"] += 1
        elif sale.payment_status == PAYMENT_STATUS_PENDING:
            summary["pending_count"] += 1

        key = period_key(sale.sale_date, group_by)
        row = grouped.setdefault(key, {
            "period": key,
            "total_sales_cents": 0,
            "total_paid_cents": 0,
            "total_profit_cents": 0,
            "count": 0,
        })
        row["total_sales_cents"] += sale.total_amount_cents or 0
        row["total_paid_cents"] += sale.paid_amount_cents or 0
        row["total_profit_cents"] += sale.profit_amount_cents or 0
        row["count"] += 1

    return {
        "group_by": group_by,
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "summary": summary,
        "grouped": [grouped[k] for k in sorted(grouped)],
        "sales": [s.to_dict(include_children=False) for s in sales],
    }


def dashboard_stats(*, store_id: int, now: datetime | None = None) -> dict:
    now = now or utcnow()

    totals = db.session.query(
        func.coalesce(func.sum(Sale.total_amount_cents), 0),
        func.coalesce(func.sum(Sale.profit_amount_cents), 0),
        func.count(Sale.id),
    ).filter(Sale.store_id == store_id).one()

    pending = db.session.query(
        func.coalesce(func.sum(Sale.total_amount_cents - Sale.paid_amount_cents), 0),
    ).filter(Sale.store_id == store_id, Sale.payment_status != PAYMENT_STATUS_PAID).scalar()

    low_stock = db.session.query(func.count(Product.id)).filter(
        Product.store_id == store_id,
        Product.is_active.is_(True),
        Product.stock_level <= Product.min_stock_level,
    ).scalar()

    recent = (
        db.session.query(Sale)
        .filter(Sale.store_id == store_id)
        .order_by(Sale.sale_date.desc(), Sale.id.desc())
        .limit(5)
        .all()
    )

    chart_start = days_ago(6, now=now)
    chart = {}
    for i in range(7):
        day = chart_start + timedelta(days=i)
        chart[period_key(day, "day")] = {"date": period_key(day, "day"), "total_sales_cents": 0, "count": 0}
    window = db.session.query(Sale).filter(Sale.store_id == store_id, Sale.sale_date >= chart_start).all()
    for sale in window:
        bucket = chart.get(period_key(sale.sale_date, "day"))
        if bucket is None:
            continue
        bucket["total_sales_cents"] += sale.total_amount_cents or 0
        bucket["count"] += 1

    return {
        "total_revenue_cents": int(totals[0] or 0),
        "total_profit_cents": int(totals[1] or 0),
        "sales_count": int(totals[2] or 0),
        "low_stock_count": int(low_stock or 0),
        "total_pending_cents": int(pending or 0),
        "recent_sales": [s.to_dict(include_children=False) for s in recent],
        "sales_chart": list(chart.values()),
    }
