"""Pagination engine for ordered record collections.

Pure functions: the caller owns the current page and is responsible for
resetting it to 1 whenever the page size changes.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Sequence, Tuple

from .models import PageResult, PaginationInfo, ProcessingError


MAX_PAGE_SIZE = 100
MIN_PAGE_SIZE = 10


def paginate(data: Sequence[Any], page: int, page_size: int) -> PageResult:
    """Return the slice for a 1-based page plus its descriptor.

    Pages outside ``[1, total_pages]`` are clamped rather than rejected.
    An empty collection has ``total_pages == 0`` and ``current_page == 1``.

    Raises:
        ProcessingError: If ``page_size`` is not a positive integer.
    """
    if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size <= 0:
        raise ProcessingError(f"Page size must be a positive integer, got {page_size!r}")
    try:
        page = int(page)
    except (TypeError, ValueError):
        raise ProcessingError(f"Page must be an integer, got {page!r}") from None

    total_items = len(data)
    total_pages = math.ceil(total_items / page_size)
    current_page = max(1, min(page, total_pages)) if total_pages > 0 else 1

    start_index = (current_page - 1) * page_size
    end_index = min(start_index + page_size, total_items)

    return PageResult(
        data=tuple(data[start_index:end_index]),
        pagination=PaginationInfo(
            current_page=current_page,
            total_pages=total_pages,
            total_items=total_items,
            page_size=page_size,
            has_next_page=current_page < total_pages,
            has_previous_page=current_page > 1,
            start_index=start_index,
            end_index=end_index,
        ),
    )


def calculate_optimal_page_size(
    viewport_height: float, item_height: float = 60, buffer_multiplier: int = 2
) -> int:
    """Suggest a page size that fills the viewport a few times over.

    Never below 10 and capped at 100 rows.
    """
    if item_height <= 0 or viewport_height <= 0:
        return MIN_PAGE_SIZE
    visible_items = math.floor(viewport_height / item_height)
    return min(max(MIN_PAGE_SIZE, visible_items * buffer_multiplier), MAX_PAGE_SIZE)


def pagination_metadata(total_items: int, page_size: int) -> Dict[str, Any]:
    """Page count plus page-size choices suited to the data volume."""
    total_pages = math.ceil(total_items / page_size) if page_size > 0 else 0

    if total_items > 1000:
        page_sizes, recommended = [25, 50, 100, 200], 50
    elif total_items > 100:
        page_sizes, recommended = [10, 25, 50, 100], 25
    else:
        page_sizes, recommended = [5, 10, 25, 50], 10

    return {
        "total_pages": total_pages,
        "page_sizes": page_sizes,
        "recommended_page_size": recommended,
    }


class LazyBatchLoader:
    """Serve fixed-size batches of a record sequence on demand.

    Batches are sliced the first time they are requested and memoized, so
    detail panes can page through a large result without copying it whole.
    """

    def __init__(self, records: Sequence[Any], batch_size: int = 20):
        if batch_size <= 0:
            raise ProcessingError(f"Batch size must be positive, got {batch_size!r}")
        self.records = records
        self.batch_size = batch_size
        self._batches: Dict[int, Tuple[Any, ...]] = {}

    @property
    def total_batches(self) -> int:
        return math.ceil(len(self.records) / self.batch_size)

    @property
    def loaded_batches(self) -> List[int]:
        return sorted(self._batches)

    def load_batch(self, start_index: int) -> Tuple[Any, ...]:
        """Return the batch containing ``start_index``."""
        return self._ensure_batch(max(0, start_index) // self.batch_size)

    def preload_next_batch(self, current_index: int) -> None:
        """Slice the batch after the one containing ``current_index``."""
        next_batch = max(0, current_index) // self.batch_size + 1
        if next_batch * self.batch_size < len(self.records):
            self._ensure_batch(next_batch)

    def _ensure_batch(self, batch_index: int) -> Tuple[Any, ...]:
        if batch_index not in self._batches:
            start = batch_index * self.batch_size
            end = min(start + self.batch_size, len(self.records))
            self._batches[batch_index] = tuple(self.records[start:end])
        return self._batches[batch_index]
