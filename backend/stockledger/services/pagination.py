# Overview: Shared page/page_size handling for listing operations.

from __future__ import annotations

from flask import current_app


def normalize_page(page, page_size) -> tuple[int, int]:
    default_size = current_app.config.get("DEFAULT_PAGE_SIZE", 20)
    max_size = current_app.config.get("MAX_PAGE_SIZE", 100)
    try:
        page = int(page) if page is not None else 1
    except (TypeError, ValueError):
        page = 1
    try:
        page_size = int(page_size) if page_size is not None else default_size
    except (TypeError, ValueError):
        page_size = default_size
    page = max(page, 1)
    page_size = min(max(page_size, 1), max_size)
    return page, page_size


def paginate(query, *, page=None, page_size=None, serialize=None) -> dict:
    """
    Apply offset pagination to a query.

    Returns {"data": [...], "total", "page", "page_size", "total_pages"}.
    """
    page, page_size = normalize_page(page, page_size)
    total = query.order_by(None).count()
    total_pages = (total + page_size - 1) // page_size if total > 0 else 1

    rows = query.offset((page - 1) * page_size).limit(page_size).all()
    serialize = serialize or (lambda row: row.to_dict())

    return {
        "data": [serialize(row) for row in rows],
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": total_pages,
    }
