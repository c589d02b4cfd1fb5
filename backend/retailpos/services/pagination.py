from __future__ import annotations

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def paginate(query, page: int | None, limit: int | None, serialize=None) -> dict:
    """Offset pagination returning {"data": [...], "meta": {...}}."""
    limit = min(max(limit or DEFAULT_LIMIT, 1), MAX_LIMIT)
    page = max(page or 1, 1)

    total = query.count()
    total_pages = (total + limit - 1) // limit if total > 0 else 1

    rows = query.offset((page - 1) * limit).limit(limit).all()
    serialize = serialize or (lambda row: row.to_dict())

    return {
        "data": [serialize(row) for row in rows],
        "meta": {
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": total_pages,
        },
    }
