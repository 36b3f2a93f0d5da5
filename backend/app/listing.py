"""
Search, filter and pagination helpers.

The in-memory helpers back the admin list views (client side); the query
helpers back the REST listings (server side). Both report pagination through
``pagination_meta`` so ``totalPages`` is computed the same way everywhere.
"""
import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import or_
from sqlalchemy.orm import Query

# Filter values that mean "no filter" (select boxes send "all")
NO_FILTER = (None, "", "all")


def _get(item: Any, name: str):
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def matches_search(item: Any, search: str | None, fields: Sequence[str]) -> bool:
    if not search:
        return True
    needle = search.strip().lower()
    if not needle:
        return True
    for name in fields:
        value = _get(item, name)
        if value is not None and needle in str(value).lower():
            return True
    return False


def matches_filters(item: Any, filters: Mapping[str, Any] | None) -> bool:
    for name, wanted in (filters or {}).items():
        if wanted in NO_FILTER:
            continue
        if _get(item, name) != wanted:
            return False
    return True


def filter_items(
    items: Iterable[Any],
    search: str | None = None,
    fields: Sequence[str] = (),
    filters: Mapping[str, Any] | None = None,
) -> list:
    """Case-insensitive substring search over ``fields`` plus equality filters. Order is preserved."""
    return [
        item for item in items
        if matches_search(item, search, fields) and matches_filters(item, filters)
    ]


def total_pages(total: int, page_size: int) -> int:
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    return math.ceil(total / page_size)


def pagination_meta(total: int, page: int, limit: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": total_pages(total, limit),
    }


@dataclass
class Page:
    items: list
    page: int
    page_size: int
    total: int
    total_pages: int

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    def meta(self) -> dict:
        return pagination_meta(self.total, self.page, self.page_size)


def paginate(items: Sequence[Any], page: int = 1, page_size: int = 10) -> Page:
    page = max(page, 1)
    pages = total_pages(len(items), page_size)
    start = (page - 1) * page_size
    return Page(
        items=list(items[start:start + page_size]),
        page=page,
        page_size=page_size,
        total=len(items),
        total_pages=pages,
    )


def apply_search(query: Query, search: str | None, columns: Sequence) -> Query:
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(*[col.ilike(pattern) for col in columns]))
    return query


def apply_filters(query: Query, model, filters: Mapping[str, Any]) -> Query:
    for name, wanted in filters.items():
        if wanted in NO_FILTER:
            continue
        query = query.filter(getattr(model, name) == wanted)
    return query


def paginate_query(query: Query, page: int, limit: int) -> tuple[list, dict]:
    """Count, then fetch one page. Ordering must already be applied."""
    page = max(page, 1)
    total = query.count()
    rows = query.limit(limit).offset((page - 1) * limit).all()
    return rows, pagination_meta(total, page, limit)
