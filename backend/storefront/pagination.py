"""Page/limit handling shared by list endpoints."""

from __future__ import annotations


DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 50


def clamp_page(page: int | None, per_page: int | None, *, max_per_page: int = MAX_PER_PAGE) -> tuple[int, int]:
    page = max(1, page or 1)
    per_page = per_page or DEFAULT_PER_PAGE
    per_page = max(1, min(per_page, max_per_page))
    return page, per_page


def paginate(query, *, page: int | None, per_page: int | None, serialize, max_per_page: int = MAX_PER_PAGE) -> dict:
    """
    Run `query` one page at a time.

    Returns:
        {"items": [...], "count": n, "pagination": {page, per_page, total,
        total_pages, has_next, has_prev}}
    """
    page, per_page = clamp_page(page, per_page, max_per_page=max_per_page)

    total = query.order_by(None).count()
    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    return {
        "items": [serialize(row) for row in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
