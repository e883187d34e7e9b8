"""
Searching, sorting and paging shared by the list endpoints.

Sort keys are closed enumerations mapped to columns; anything outside them is
rejected instead of silently falling back to a default ordering.
"""

import math
from enum import Enum
from typing import Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from errors import ValidationFailure
from models import Order, Product


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ProductSort(str, Enum):
    NAME = "name"
    PRICE = "price"
    CREATED = "created"


class OrderSort(str, Enum):
    CREATED = "created"
    TOTAL = "total"
    STATUS = "status"


PRODUCT_SORT_COLUMNS = {
    ProductSort.NAME: Product.name,
    ProductSort.PRICE: Product.price,
    ProductSort.CREATED: Product.created_at,
}

ORDER_SORT_COLUMNS = {
    OrderSort.CREATED: Order.created_at,
    OrderSort.TOTAL: Order.total_amount,
    OrderSort.STATUS: Order.status,
}


def matches(column, term: str):
    """Case-insensitive substring match. LIKE wildcards in ``term`` are literal."""
    return func.lower(column).contains(term.strip().lower(), autoescape=True)


def _parse(enum_cls, value: Optional[str], label: str):
    if value is None or value == "":
        return None
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationFailure(f"Unknown {label} '{value}'. Allowed: {allowed}")


def product_ordering(sort_by: Optional[str], sort_order: Optional[str]):
    """ORDER BY clause for products.

    No sortBy -> newest first. With a sortBy and no sortOrder the direction
    is ascending.
    """
    key = _parse(ProductSort, sort_by, "sortBy")
    direction = _parse(SortOrder, sort_order, "sortOrder")
    if key is None:
        return Product.created_at.desc(), Product.id.desc()
    column = PRODUCT_SORT_COLUMNS[key]
    if direction is SortOrder.DESC:
        return column.desc(), Product.id.desc()
    return column.asc(), Product.id.asc()


def order_ordering(sort_by: Optional[str], sort_order: Optional[str]):
    """ORDER BY clause for orders; defaults to created, descending."""
    key = _parse(OrderSort, sort_by, "sortBy") or OrderSort.CREATED
    direction = _parse(SortOrder, sort_order, "sortOrder") or SortOrder.DESC
    column = ORDER_SORT_COLUMNS[key]
    if direction is SortOrder.ASC:
        return column.asc(), Order.id.asc()
    return column.desc(), Order.id.desc()


def paginate(db: Session, stmt, page: int, page_size: int) -> Tuple[list, int, int]:
    """Run ``stmt`` for one page. Returns (rows, total_count, total_pages)."""
    total = db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    total_pages = math.ceil(total / page_size) if page_size else 0
    offset = max(page - 1, 0) * page_size
    rows = db.scalars(stmt.limit(page_size).offset(offset)).unique().all()
    return list(rows), total, total_pages
