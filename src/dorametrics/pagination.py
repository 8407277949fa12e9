"""Time-windowed page walking over newest-first GitHub collections."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence, TypeVar

from .timeutils import in_window

logger = logging.getLogger(__name__)

T = TypeVar("T")

PAGE_SIZE = 100


def fetch_window(
    fetch_page: Callable[[int, int], Sequence[T]],
    created_at: Callable[[T], datetime],
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    enrich: Optional[Callable[[List[T]], List[T]]] = None,
    page_size: int = PAGE_SIZE,
) -> List[T]:
    """Collect every record with ``since <= created_at < until``.

    Pages are requested one at a time through ``fetch_page(page, per_page)``.
    The walk stops on a short page, or as soon as the oldest record of a page
    predates ``since``: the collection is ordered newest first, so later pages
    cannot contain in-window records. Without ``since`` the whole collection is
    walked.

    Args:
        fetch_page: Returns one page of records for a 1-based page number.
        created_at: Extracts the creation timestamp used for windowing.
        since: Inclusive lower bound, or ``None`` for unbounded.
        until: Exclusive upper bound, or ``None`` for unbounded.
        enrich: Optional hook called once per page with the in-window records;
            its return value is what gets accumulated.
        page_size: Number of records requested per page.

    Returns:
        In-window records in upstream order.
    """
    records: List[T] = []
    page = 1

    while True:
        page_items = list(fetch_page(page, page_size))
        in_range = [item for item in page_items if in_window(created_at(item), since, until)]

        if enrich is not None and in_range:
            in_range = enrich(in_range)
        records.extend(in_range)

        logger.debug(
            "Fetched page",
            extra={"page": page, "page_items": len(page_items), "in_window": len(in_range)},
        )

        if len(page_items) < page_size:
            break

        if since is not None and min(created_at(item) for item in page_items) < since:
            logger.debug("Stopping pagination past window start", extra={"page": page})
            break

        page += 1

    return records
