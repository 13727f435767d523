"""
Catalog filtering, sorting and pagination over an in-memory product list.

Products are plain dicts as returned by the API: `name`, `price` (text such
as "12.500 TND" or a number), `average_rating`, `category_name`,
`subcategory_name`, `in_stock` and `badge`.
"""
import math
import re
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, Field

ALL = "Tous"
SORT_KEYS = ("name", "price", "rating")
SORT_ORDERS = ("asc", "desc")
DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 100

_NON_NUMERIC = re.compile(r"[^\d.-]")


def parse_price(value: Any) -> float:
    """Numeric value of a display price, 0.0 when none can be read."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    cleaned = _NON_NUMERIC.sub("", str(value))
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def _to_float(raw: Any) -> Optional[float]:
    if raw is None or raw == "":
        return None
    try:
        number = float(raw)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def _to_int(raw: Any) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _to_bool(raw: Any) -> Optional[bool]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    return None


def _is_all(value: Optional[str]) -> bool:
    return not value or value == ALL


class CatalogQuery(BaseModel):
    category: str = ALL
    subcategory: str = ALL
    search: str = ""
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_rating: float = 0.0
    sort_by: str = "name"
    sort_order: str = "asc"
    page: int = 1
    page_size: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    in_stock: Optional[bool] = None
    badge: Optional[str] = None

    @classmethod
    def from_params(
        cls,
        category: Optional[str] = None,
        subcategory: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Any = None,
        max_price: Any = None,
        min_rating: Any = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
        page: Any = None,
        page_size: Any = None,
        in_stock: Any = None,
        badge: Optional[str] = None,
    ) -> "CatalogQuery":
        """Build a query from raw query-string values.

        Anything malformed falls back to its default instead of failing:
        prices lose their bound, the rating threshold becomes 0, an unknown
        sort key sorts by name and an unknown direction sorts ascending.
        Page numbers are kept as given, so an out-of-range page stays out of
        range and yields an empty page.
        """
        sort_by = (sort_by or "").strip().lower()
        sort_order = (sort_order or "").strip().lower()
        size = _to_int(page_size)
        if size is None or size < 1:
            size = DEFAULT_PAGE_SIZE
        number = _to_int(page)
        return cls(
            category=category if not _is_all(category) else ALL,
            subcategory=subcategory if not _is_all(subcategory) else ALL,
            search=(search or "").strip(),
            min_price=_to_float(min_price),
            max_price=_to_float(max_price),
            min_rating=_to_float(min_rating) or 0.0,
            sort_by=sort_by if sort_by in SORT_KEYS else "name",
            sort_order=sort_order if sort_order in SORT_ORDERS else "asc",
            page=number if number is not None else 1,
            page_size=min(size, MAX_PAGE_SIZE),
            in_stock=_to_bool(in_stock),
            badge=badge or None,
        )


class CatalogPage(BaseModel):
    items: List[dict]
    total: int
    pages: int
    current_page: int
    page_size: int


def product_rating(product: dict) -> float:
    return float(product.get("average_rating") or 0)


def matches(product: dict, query: CatalogQuery) -> bool:
    if not _is_all(query.category) and product.get("category_name") != query.category:
        return False
    if not _is_all(query.subcategory) and product.get("subcategory_name") != query.subcategory:
        return False
    if query.search and query.search.lower() not in (product.get("name") or "").lower():
        return False
    price = parse_price(product.get("price"))
    if query.min_price is not None and price < query.min_price:
        return False
    if query.max_price is not None and price > query.max_price:
        return False
    if product_rating(product) < query.min_rating:
        return False
    if query.in_stock is not None and bool(product.get("in_stock", True)) != query.in_stock:
        return False
    if query.badge and (product.get("badge") or "").lower() != query.badge.lower():
        return False
    return True


def _sort_key(sort_by: str):
    if sort_by == "price":
        return lambda p: parse_price(p.get("price"))
    if sort_by == "rating":
        return product_rating
    return lambda p: (p.get("name") or "").lower()


def sort_products(products: List[dict], sort_by: str = "name", sort_order: str = "asc") -> List[dict]:
    # sorted() stays stable with reverse=True, equal keys keep input order
    return sorted(products, key=_sort_key(sort_by), reverse=sort_order == "desc")


def paginate(items: List[dict], page: int, page_size: int) -> Tuple[List[dict], int]:
    if page_size < 1:
        raise ValueError(f"page_size must be at least 1, got {page_size}")
    pages = math.ceil(len(items) / page_size) if items else 0
    if page < 1 or page > pages:
        return [], pages
    start = (page - 1) * page_size
    return items[start:start + page_size], pages


def query_catalog(products: List[dict], query: CatalogQuery) -> CatalogPage:
    filtered = [p for p in products if matches(p, query)]
    ordered = sort_products(filtered, query.sort_by, query.sort_order)
    items, pages = paginate(ordered, query.page, query.page_size)
    return CatalogPage(
        items=items,
        total=len(ordered),
        pages=pages,
        current_page=query.page,
        page_size=query.page_size,
    )
