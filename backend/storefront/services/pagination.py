from __future__ import annotations

from typing import Callable


def paginate(query, page: int, limit: int, serialize: Callable) -> dict:
    """
    Apply offset/limit to query and build the list envelope.

    page is 1-indexed; callers clamp limit.
    """
    page = max(page, 1)
    total = query.order_by(None).count()
    total_pages = (total + limit - 1) // limit if total > 0 else 1

    rows = query.offset((page - 1) * limit).limit(limit).all()

    return {
        "items": [serialize(row) for row in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
