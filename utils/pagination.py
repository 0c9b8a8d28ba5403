from flask import current_app, request


def page_args() -> tuple[int, int]:
    """Reads ?page=&limit= with sane bounds."""
    default_limit = current_app.config.get("DEFAULT_PAGE_SIZE", 12)
    max_limit = current_app.config.get("MAX_PAGE_SIZE", 100)

    page = request.args.get("page", 1, type=int) or 1
    limit = request.args.get("limit", default_limit, type=int) or default_limit
    return max(page, 1), min(max(limit, 1), max_limit)


def paginate(query, page: int, limit: int):
    total = query.count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    meta = {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit,
    }
    return rows, meta
