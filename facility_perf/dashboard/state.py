"""Dashboard data state: the orchestration layer.

Owns the raw records and the view parameters (filters, sort, page, scroll)
and recomputes the derived views on every change:

    raw records -> filter + sort -> page slice -> virtual window -> rendered rows

Only the stages downstream of a change are recomputed: a scroll update
re-windows the current page, a page change re-slices the processed data,
and a filter/sort/data change runs the whole chain.
"""

from __future__ import annotations

import asyncio
import json
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..data.cache import CacheError, CacheSweepWorker, IntelligentCache
from ..data.models import (
    DatasetInfo,
    FilterSpec,
    PaginationInfo,
    ProcessingError,
    Record,
    SortDirection,
    VirtualWindow,
    freeze_records,
    record_value,
)
from ..data.pagination import paginate
from ..data.processing import DataProcessor, dataset_fingerprint
from ..data.virtual_scroll import calculate_virtual_window, full_window, visible_slice
from ..insights.performance import PerformanceMonitor
from ..logs import log
from ..sources.base import BaseRecordSource
from ..sources.request_manager import RequestManager
from ..sources.retry import retry_async
from .config import Config


FETCH_NAMESPACE = "records"
RECORD_NAMESPACE = "record"


@dataclass(frozen=True)
class DashboardSnapshot:
    """Read-only view of the dashboard data state after a recompute."""

    all_data: Tuple[Record, ...]
    filtered_data: Tuple[Record, ...]
    paginated_data: Tuple[Record, ...]
    pagination: PaginationInfo
    virtual_scroll: VirtualWindow
    loading: bool
    error: Optional[Exception]
    performance_stats: Dict[str, Any] = field(default_factory=dict)
    cache_stats: Dict[str, Any] = field(default_factory=dict)
    request_stats: Dict[str, Any] = field(default_factory=dict)
    dataset: Optional[DatasetInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase shape consumed by the view layer."""
        return {
            "allData": [dict(r) for r in self.all_data],
            "filteredData": [dict(r) for r in self.filtered_data],
            "paginatedData": [dict(r) for r in self.paginated_data],
            "pagination": self.pagination.to_dict(),
            "virtualScroll": self.virtual_scroll.to_dict(),
            "loading": self.loading,
            "error": str(self.error) if self.error is not None else None,
            "performanceStats": self.performance_stats,
            "cacheStats": self.cache_stats,
            "requestStats": self.request_stats,
            "dataset": {
                "name": self.dataset.name,
                "fingerprint": self.dataset.fingerprint,
                "recordCount": self.dataset.record_count,
                "loadedAt": self.dataset.loaded_at,
                "fromCache": self.dataset.from_cache,
            } if self.dataset is not None else None,
        }


Listener = Callable[[DashboardSnapshot], None]


class DashboardDataState:
    """Data state for one dashboard table.

    Each instance should get its own cache and request manager; keys are
    namespaced by the configured dataset name regardless.

    Args:
        source: Record source used by refresh_data and fetch_record
        cache: Intelligent cache shared by fetches and processing
        request_manager: Deduplicates and batches remote fetches
        processor: Filter + sort engine
        monitor: Records operation timings
        config: Dashboard configuration
        initial_records: Records available before the first refresh
        query: Equality filter passed to the source on every fetch
    """

    def __init__(
        self,
        source: BaseRecordSource,
        *,
        cache: Optional[IntelligentCache] = None,
        request_manager: Optional[RequestManager] = None,
        processor: Optional[DataProcessor] = None,
        monitor: Optional[PerformanceMonitor] = None,
        config: Optional[Config] = None,
        initial_records: Sequence[Record] = (),
        query: Optional[Mapping[str, Any]] = None,
    ):
        self.config = config or Config()
        self.dataset = self.config.dataset
        self.source = source
        self.query = dict(query or {})

        self.cache = cache if cache is not None else IntelligentCache(
            max_entries=self.config.cache.max_entries,
            max_size_bytes=self.config.cache.max_size_bytes,
            max_age=self.config.cache.max_age,
        )
        self.request_manager = request_manager or RequestManager(self.config.requests)
        self.processor = processor or DataProcessor(self.cache, namespace=self.dataset)
        self.monitor = monitor or PerformanceMonitor(
            capacity=self.config.monitoring.capacity,
            cache=self.cache,
            enabled=self.config.monitoring.enabled,
        )
        self._geometry = self.config.virtual_scroll.to_geometry()

        # View parameters are stored as given and validated on recompute
        self._filters: Any = FilterSpec(search_fields=self.config.processing.search_fields)
        self._sort_field: Any = "contractor_name"
        self._sort_direction: Any = SortDirection.ASC
        self._page: Any = 1
        self._page_size: Any = self.config.page_size
        self._scroll_top = 0.0

        self._all_data: Tuple[Record, ...] = ()
        self._filtered: Tuple[Record, ...] = ()
        self._page_result = paginate((), 1, self._fallback_page_size())
        self._window = full_window(0, self._geometry.item_height)
        self._rendered: Tuple[Record, ...] = ()
        self._dataset_info = DatasetInfo(name=self.dataset)
        self._loading = False
        self._fetch_error: Optional[Exception] = None
        self._processing_error: Optional[ProcessingError] = None

        self._listeners: List[Listener] = []
        self._snapshot: Optional[DashboardSnapshot] = None
        self._snapshot_lock = threading.Lock()
        self._sweeper: Optional[CacheSweepWorker] = None

        self._load_records(initial_records, from_cache=False, notify=False)

    # ------------------------------------------------------------------
    # View-layer interface
    # ------------------------------------------------------------------

    def snapshot(self) -> DashboardSnapshot:
        with self._snapshot_lock:
            return self._snapshot

    def actions(self) -> Dict[str, Callable[..., Any]]:
        """Action callables keyed by their view-layer names."""
        return {
            "setFilters": self.set_filters,
            "setSorting": self.set_sorting,
            "setPage": self.set_page,
            "setPageSize": self.set_page_size,
            "updateScrollPosition": self.update_scroll_position,
            "clearCaches": self.clear_caches,
            "refreshData": self.refresh_data,
            "optimizeMemory": self.optimize_memory,
            "fetchRecord": self.fetch_record,
        }

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def set_filters(self, filters: Any) -> None:
        """Replace the filter spec; resets to page 1 and scrolls to the top."""
        if isinstance(filters, Mapping) and "search_fields" not in filters:
            filters = {**filters, "search_fields": self.config.processing.search_fields}
        self._filters = filters
        self._page = 1
        self._scroll_top = 0.0
        self._recompute()

    def set_sorting(self, sort_field: Any, direction: Any = SortDirection.ASC) -> None:
        self._sort_field = sort_field
        self._sort_direction = direction
        self._page = 1
        self._recompute()

    def set_page(self, page: Any) -> None:
        self._page = page
        self._scroll_top = 0.0
        self._recompute(process=False)

    def set_page_size(self, page_size: Any) -> None:
        self._page_size = page_size
        self._page = 1
        self._recompute(process=False)

    def update_scroll_position(self, scroll_top: Any) -> None:
        """Re-window the current page; non-numeric offsets scroll to the top."""
        try:
            offset = float(scroll_top)
        except (TypeError, ValueError):
            offset = 0.0
        if not math.isfinite(offset):
            offset = 0.0
        self._scroll_top = max(0.0, offset)
        self._recompute(process=False, repaginate=False)

    def clear_caches(self) -> None:
        """Drop cached results and request bookkeeping, then recompute."""
        self.processor.clear()
        try:
            self.cache.clear()
        except CacheError as exc:
            log(f"[dashboard:{self.dataset}] Cache unavailable during clear: {exc}")
        self.request_manager.clear_all()
        log(f"[dashboard:{self.dataset}] Caches cleared")
        self._recompute()

    def optimize_memory(self) -> Dict[str, int]:
        """Purge expired cache entries and trim old processing results.

        Returns:
            Dict with the number of expired and trimmed entries removed.
        """
        try:
            expired = self.cache.purge_expired()
        except CacheError:
            expired = 0
        trimmed = self.processor.trim(self.config.processing.retention)
        log(f"[dashboard:{self.dataset}] Memory optimized: {expired} expired, {trimmed} trimmed")
        self._publish()
        return {"expired": expired, "trimmed": trimmed}

    async def refresh_data(self, force: bool = False, *, attempts: int = 1) -> Tuple[bool, str]:
        """Reload the raw records.

        Args:
            force: Skip the cached copy and fetch from the source
            attempts: Fetch attempts; more than one retries with the
                configured backoff

        Returns:
            Tuple of (success, message)
        """
        key = self.fetch_cache_key()

        if not force:
            cached = self._cache_get(key)
            if cached is not None:
                self._load_records(cached, from_cache=True)
                return True, f"Loaded {len(cached)} records from cache."

        self._loading = True
        self._publish()

        try:
            records = await self.monitor.measure_operation(
                "fetch_records",
                lambda: retry_async(
                    lambda: self.request_manager.dedupe(key, self._fetch_all),
                    attempts=attempts,
                    backoff=self.config.requests.retry_backoff,
                    on_retry=self._log_retry,
                ),
                cache_hit=False,
            )
        except Exception as exc:
            log(f"[dashboard:{self.dataset}] Refresh failed: {exc}")
            self._loading = False
            self._fetch_error = exc
            self._publish()
            return False, f"Refresh failed: {exc}"

        self._loading = False
        self._fetch_error = None
        self._invalidate_single_records()
        self._load_records(records, from_cache=False)
        log(f"[dashboard:{self.dataset}] Refreshed {len(records)} records")
        return True, f"Refreshed {len(records)} records."

    async def fetch_record(self, record_id: Any) -> Record:
        """Load a single record, coalescing concurrent lookups into one call.

        Raises:
            BatchResultMissingError: If the source has no such record.
            RecordSourceError: If the batched fetch failed.
        """
        key = f"{RECORD_NAMESPACE}:{self.dataset}:{record_id}"
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        record = await self.request_manager.batch(
            f"{self.dataset}:by-id", record_id, self._fetch_batch
        )
        self._cache_set(key, record)
        return record

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_background_sweep(self) -> Optional[CacheSweepWorker]:
        interval = self.config.cache.sweep_interval
        if interval <= 0 or self._sweeper is not None:
            return self._sweeper
        self._sweeper = CacheSweepWorker(self.cache, interval_seconds=interval)
        self._sweeper.start()
        return self._sweeper

    def close(self) -> None:
        """Stop the sweep worker and release the cache and source."""
        if self._sweeper is not None:
            self._sweeper.stop()
            self._sweeper = None
        self.request_manager.clear_all()
        self.cache.close()
        self.source.close()

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def fetch_cache_key(self) -> str:
        query = json.dumps(self.query, sort_keys=True, default=str)
        return f"{FETCH_NAMESPACE}:{self.dataset}:{query}"

    async def _fetch_all(self) -> Tuple[Record, ...]:
        records = freeze_records(await asyncio.to_thread(self.source.fetch_records, self.query))
        # Populated here so that the entry is written even if every caller
        # stopped waiting.
        self._cache_set(self.fetch_cache_key(), records)
        return records

    async def _fetch_batch(self, ids: List[Any]) -> List[Optional[Record]]:
        rows = await asyncio.to_thread(self.source.fetch_by_ids, ids)
        by_id = {str(record_value(row, "id")): row for row in rows}
        return [by_id.get(str(record_id)) for record_id in ids]

    def _invalidate_single_records(self) -> None:
        # Single-record lookups must not outlive the data set they came from
        try:
            dropped = self.cache.delete_prefix(f"{RECORD_NAMESPACE}:{self.dataset}:")
        except CacheError:
            return
        if dropped:
            log(f"[dashboard:{self.dataset}] Invalidated {dropped} cached records")

    def _log_retry(self, attempt: int, exc: BaseException, delay: float) -> None:
        log(f"[dashboard:{self.dataset}] Fetch attempt {attempt} failed ({exc}); retrying in {delay}s")

    def _cache_get(self, key: str) -> Any:
        try:
            return self.cache.get(key)
        except CacheError:
            return None

    def _cache_set(self, key: str, value: Any) -> bool:
        try:
            return self.cache.set(key, value)
        except CacheError:
            return False

    # ------------------------------------------------------------------
    # Recompute chain
    # ------------------------------------------------------------------

    def _load_records(self, records: Sequence[Record], *, from_cache: bool, notify: bool = True) -> None:
        self._all_data = freeze_records(records)
        self._dataset_info = DatasetInfo(
            name=self.dataset,
            fingerprint=dataset_fingerprint(self._all_data),
            record_count=len(self._all_data),
            loaded_at=time.time() if self._all_data else None,
            from_cache=from_cache,
        )
        self._recompute(notify=notify)

    def _fallback_page_size(self) -> int:
        size = self.config.page_size
        if isinstance(size, int) and not isinstance(size, bool) and size > 0:
            return size
        return 25

    def _process(self) -> Tuple[Record, ...]:
        records = self._all_data
        return self.monitor.measure_operation(
            "filter_and_sort",
            lambda: self.processor.filter_and_sort(
                records,
                self._filters,
                self._sort_field,
                self._sort_direction,
                caching_enabled=self.config.processing.caching_enabled,
                dataset_key=self._dataset_info.fingerprint,
            ),
            item_count=len(records),
            cache_hit=lambda: self.processor.last_cache_hit,
        )

    def _recompute(self, *, process: bool = True, repaginate: bool = True, notify: bool = True) -> None:
        # A previous failure leaves the derived views empty; rebuild them all
        if self._processing_error is not None:
            process = repaginate = True

        error: Optional[ProcessingError] = None
        if process:
            try:
                self._filtered = self._process()
            except ProcessingError as exc:
                error = exc
                self._filtered = ()

        if process or repaginate:
            try:
                self._page_result = paginate(self._filtered, self._page, self._page_size)
            except ProcessingError as exc:
                error = error or exc
                self._filtered = ()
                self._page_result = paginate((), 1, self._fallback_page_size())
            self._page = self._page_result.pagination.current_page

        if error is not None:
            log(f"[dashboard:{self.dataset}] Processing failed: {error}")
        if process or repaginate:
            self._processing_error = error

        page_items = self._page_result.data
        if self.config.virtual_scroll.enabled:
            self._window = calculate_virtual_window(self._scroll_top, len(page_items), self._geometry)
        else:
            self._window = full_window(len(page_items), self._geometry.item_height)
        self._rendered = visible_slice(page_items, self._window)

        self._publish(notify=notify)

    def _publish(self, notify: bool = True) -> None:
        performance_stats = self.monitor.get_performance_stats()
        performance_stats["isDegrading"] = self.monitor.is_performance_degrading()
        cache_stats = self.cache.get_stats().to_dict()
        cache_stats["processor"] = self.processor.get_cache_stats()

        snapshot = DashboardSnapshot(
            all_data=self._all_data,
            filtered_data=self._filtered,
            paginated_data=self._rendered,
            pagination=self._page_result.pagination,
            virtual_scroll=self._window,
            loading=self._loading,
            error=self._processing_error or self._fetch_error,
            performance_stats=performance_stats,
            cache_stats=cache_stats,
            request_stats=self.request_manager.get_stats(),
            dataset=self._dataset_info,
        )
        with self._snapshot_lock:
            self._snapshot = snapshot

        if not notify:
            return
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as exc:
                log(f"[dashboard:{self.dataset}] Listener failed: {exc}")


def build_dashboard_state(
    config: Config,
    source: BaseRecordSource,
    *,
    initial_records: Sequence[Record] = (),
    start_sweeper: bool = False,
) -> DashboardDataState:
    """Create a dashboard state with its own cache, request manager and monitor."""
    cache = IntelligentCache(
        max_entries=config.cache.max_entries,
        max_size_bytes=config.cache.max_size_bytes,
        max_age=config.cache.max_age,
    )
    state = DashboardDataState(
        source,
        cache=cache,
        request_manager=RequestManager(config.requests),
        processor=DataProcessor(cache, namespace=config.dataset),
        monitor=PerformanceMonitor(
            capacity=config.monitoring.capacity,
            cache=cache,
            enabled=config.monitoring.enabled,
        ),
        config=config,
        initial_records=initial_records,
    )
    if start_sweeper:
        state.start_background_sweep()
    return state
