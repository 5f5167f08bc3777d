"""Query predicate builder - turn list filters into backend-neutral predicates."""

from typing import Iterable, Optional

from hobbly.models.activity import ActivityFilters, PageRequest
from hobbly.models.query import OrderBy, Predicate, Query
from hobbly.services.activity_mapper import SORTABLE_COLUMNS
from hobbly.utils.catalog_config import CatalogConfig
from hobbly.utils.errors import CatalogValidationError


MIN_PAGE_SIZE = 1

# Columns matched by the free-text search, in this order
SEARCH_COLUMNS = ("title", "description", "location", "organizer_name")


def _present(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ""


def build_filter_predicates(filters: Optional[ActivityFilters]) -> list[Predicate]:
    """
    Lower user filters to predicates.

    Tag filters are not handled here: they need a lookup first (see tag_resolution).
    The output order is fixed, so equal filters always give equal lists.
    """
    if filters is None:
        return []

    predicates: list[Predicate] = []

    if _present(filters.search):
        term = filters.search.strip()
        predicates.append(Predicate.any_of(*(Predicate.ilike(column, term) for column in SEARCH_COLUMNS)))

    if _present(filters.category_id):
        predicates.append(Predicate.eq("category_id", filters.category_id))

    if filters.type is not None:
        predicates.append(Predicate.eq("type", filters.type.value))

    if _present(filters.location):
        predicates.append(Predicate.ilike("location", filters.location.strip()))

    if filters.free_only:
        # Bounds are ignored for free-only
        predicates.append(Predicate.eq("price", 0))
    else:
        if filters.min_price is not None:
            predicates.append(Predicate.gte("price", filters.min_price))
        if filters.max_price is not None:
            predicates.append(Predicate.lte("price", filters.max_price))

    return predicates


def merge_predicates(*groups: Iterable[Predicate]) -> list[Predicate]:
    """Concatenate predicate groups, keeping the first occurrence of duplicates."""
    merged: list[Predicate] = []
    seen: set[Predicate] = set()
    for group in groups:
        for predicate in group:
            if predicate in seen:
                continue
            seen.add(predicate)
            merged.append(predicate)
    return merged


def normalize_page(
    page: int,
    page_size: int,
    max_page_size: Optional[int] = None,
) -> tuple[int, int]:
    """
    Clamp pagination into the valid range.

    Leniency policy: a page below 1 becomes 1, a size at or below zero becomes
    the minimum size, and a size above the maximum becomes the maximum. Callers
    never get an error for out-of-range paging.
    """
    max_size = max_page_size or CatalogConfig.MAX_PAGE_SIZE
    page = max(page, 1)
    page_size = min(max(page_size, MIN_PAGE_SIZE), max_size)
    return page, page_size


def build_order(field: str, ascending: bool = False) -> OrderBy:
    """Ordering directive for an allow-listed column."""
    column = SORTABLE_COLUMNS.get(field)
    if column is None:
        raise CatalogValidationError(
            f"Cannot sort by '{field}'",
            errors=[f"order_by must be one of: {', '.join(sorted(SORTABLE_COLUMNS))}"],
        )
    return OrderBy(field=column, ascending=ascending)


def build_query(
    predicates: list[Predicate],
    page_request: Optional[PageRequest] = None,
    max_page_size: Optional[int] = None,
) -> Query:
    """Bundle predicates, ordering and range into one counted query."""
    page_request = page_request or PageRequest()
    page, page_size = normalize_page(page_request.page, page_request.page_size, max_page_size)
    return Query(
        predicates=predicates,
        order=build_order(page_request.order_by, page_request.ascending),
        offset=(page - 1) * page_size,
        limit=page_size,
        count=True,
    )
