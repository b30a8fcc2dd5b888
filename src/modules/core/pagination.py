"""Offset pagination shared by the query services.

Pagination is computed in the service layer (not by a DRF paginator) so
that every caller, HTTP or not, receives the same page envelope:
``current_page``, ``total_pages``, ``total_count``, ``has_next_page``,
``has_prev_page`` and the effective ``limit``.
"""

from __future__ import annotations

from typing import Any, List, Tuple

from django.conf import settings
from django.core.paginator import EmptyPage, Paginator
from pydantic import BaseModel, ConfigDict


class PageInfo(BaseModel):
    """Immutable pagination metadata for a single page."""

    model_config = ConfigDict(frozen=True)

    current_page: int
    total_pages: int
    total_count: int
    has_next_page: bool
    has_prev_page: bool
    limit: int


def clamp_page(page: Any, limit: Any) -> Tuple[int, int]:
    """Normalise raw page/limit values: ``page >= 1``, ``1 <= limit <= max``."""
    max_limit = getattr(settings, "ORDERS_MAX_PAGE_SIZE", 100)
    default_limit = getattr(settings, "ORDERS_DEFAULT_PAGE_SIZE", 10)
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = default_limit
    return max(1, page), min(max_limit, max(1, limit))


def paginate(queryset: Any, page: Any, limit: Any) -> Tuple[List[Any], PageInfo]:
    """Slice *queryset* into a single page with Django's ``Paginator``.

    The queryset must already be ordered deterministically.  Each call
    issues one ``COUNT`` and one ``LIMIT/OFFSET`` query; pages fetched in
    separate calls are not snapshot-consistent with each other.  A page
    past the end is returned empty rather than raising.
    """
    page, limit = clamp_page(page, limit)
    paginator = Paginator(queryset, limit, allow_empty_first_page=True)
    total_pages = paginator.num_pages if paginator.count else 0
    try:
        current = paginator.page(page)
    except EmptyPage:
        items: List[Any] = []
        has_next, has_prev = False, page > 1
    else:
        items = list(current.object_list)
        has_next, has_prev = current.has_next(), current.has_previous()
    info = PageInfo(
        current_page=page,
        total_pages=total_pages,
        total_count=paginator.count,
        has_next_page=has_next,
        has_prev_page=has_prev,
        limit=limit,
    )
    return items, info
