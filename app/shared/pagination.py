"""Shared pagination helpers for list endpoints"""

import math

from sqlalchemy.orm import Query

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def build_pagination(total_count: int, page: int, limit: int) -> dict:
    total_pages = math.ceil(total_count / limit) if limit else 0
    return {
        "total_count": total_count,
        "total_pages": total_pages,
        "current_page": page,
        "limit": limit,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


def paginate(query: Query, page: int = DEFAULT_PAGE, limit: int = DEFAULT_LIMIT) -> tuple[list, dict]:
    """Apply offset/limit to a query and return (items, pagination)"""
    page = max(page or DEFAULT_PAGE, 1)
    limit = min(max(limit or DEFAULT_LIMIT, 1), MAX_LIMIT)

    total_count = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, build_pagination(total_count, page, limit)
