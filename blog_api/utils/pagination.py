"""
Query-string helpers shared by the listing endpoints:
page/limit parsing, sort allowlists and the pagination meta block.
"""
from __future__ import annotations

import math
from typing import Dict, Tuple

from flask import request, abort

DEFAULT_LIMIT = 10
MAX_LIMIT = 50


def parse_pagination() -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", str(DEFAULT_LIMIT)))
    except ValueError:
        abort(400, description="page and limit must be integers")
    page = max(page, 1)
    limit = max(1, min(limit, MAX_LIMIT))
    return page, limit


def parse_sort(columns: Dict[str, object], default: str = "created_at"):
    """
    sort_by must be one of ``columns`` (unknown values fall back to ``default``);
    sort_order is "asc" or anything else for descending.
    """
    key = request.args.get("sort_by", default)
    column = columns.get(key, columns[default])
    if request.args.get("sort_order", "desc").lower() == "asc":
        return column.asc()
    return column.desc()


def parse_published_filter():
    """"true"/"false" filter on the published flag; anything else means no filter."""
    raw = (request.args.get("published") or "").lower()
    if raw == "true":
        return True
    if raw == "false":
        return False
    return None


def pagination_meta(page: int, limit: int, total: int) -> dict:
    total_pages = math.ceil(total / limit) if total else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": total_pages,
        "has_next_page": page < total_pages,
        "has_previous_page": page > 1,
    }


def paginate(query, order_by, page: int, limit: int):
    """Return (rows, total) for ``query`` ordered by the ``order_by`` clauses."""
    total = query.order_by(None).count()
    rows = query.order_by(*order_by).offset((page - 1) * limit).limit(limit).all()
    return rows, total
