from flask import request
from sqlalchemy import or_

MAX_PER_PAGE = 100


def paginated_response(query, model, search_columns, serialize=None):
    """
    Filters ``query`` by the ``search`` query-string term across
    ``search_columns`` and returns one page as a JSON-ready dict.

    Query-string args: ``page`` (1-based), ``per_page`` (capped at
    MAX_PER_PAGE) and ``search``.
    """
    page = request.args.get('page', 1, type=int)
    per_page = request.args.get('per_page', 10, type=int)
    search_term = request.args.get('search', '', type=str).strip()

    if search_term:
        query = query.filter(or_(*[
            getattr(model, col).ilike(f"%{search_term}%") for col in search_columns
        ]))

    page = page if page > 0 else 1
    per_page = min(per_page, MAX_PER_PAGE) if per_page > 0 else 10
    paginated = query.paginate(page=page, per_page=per_page, error_out=False)

    serialize = serialize or (lambda item: item.to_dict())
    return {
        "items": [serialize(item) for item in paginated.items],
        "total": paginated.total,
        "page": paginated.page,
        "pages": paginated.pages,
        "per_page": per_page,
    }
