import math


def paginate(q, page: int, limit: int):
    """Returns (rows, total) for a query, page is 1-based."""
    total = q.count()
    rows = q.offset((page - 1) * limit).limit(limit).all()
    return rows, total


def page_payload(data, total: int, page: int, limit: int) -> dict:
    return {
        "data": data,
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }
