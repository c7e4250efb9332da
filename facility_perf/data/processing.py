"""Filtering and sorting of raw record collections.

Predicates run cheapest-first and short-circuit:
1. Status equality
2. Contract type equality
3. Free-text search across the configured text fields
4. Service category equality
5. Contract period overlap with the filter date range

Results are tuples and are shared with the cache, so callers must treat
them as immutable snapshots.
"""

from __future__ import annotations

import hashlib
import json
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .cache import CacheError, IntelligentCache
from .models import (
    ALL,
    FilterSpec,
    ProcessingError,
    Record,
    SortDirection,
    SortSpec,
    freeze_records,
    parse_timestamp,
    record_value,
    service_category,
)


CACHE_NAMESPACE = "processed"
DEFAULT_RETENTION = 50


def dataset_fingerprint(records: Sequence[Record]) -> str:
    """Identity of a record set: its size plus a digest of every record's content.

    Field order does not matter; any changed value gives a new fingerprint.
    """
    digest = hashlib.sha1()
    for record in records:
        digest.update(json.dumps(record, sort_keys=True, default=str).encode("utf-8"))
        digest.update(b"\x1e")
    return f"{len(records)}_{digest.hexdigest()[:16]}"


def is_date_field(field_name: str) -> bool:
    """Fields compared as timestamps when sorting."""
    return "date" in field_name or field_name.endswith("_at")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _sort_key(value: Any, date_field: bool) -> Optional[Tuple[int, Any]]:
    """Comparable key for a field value, or None when it sorts last.

    Numbers sort before text so that mixed columns still order
    deterministically.
    """
    if value is None:
        return None
    if date_field:
        timestamp = parse_timestamp(value)
        if timestamp is None:
            return None
        return (0, timestamp)
    if _is_number(value):
        return (0, value)
    return (1, str(value).lower())


# =============================================================================
# Predicates
# =============================================================================


def matches_search(record: Record, term: str, fields: Sequence[str]) -> bool:
    """Case-insensitive substring match on any of ``fields``."""
    needle = term.lower()
    for name in fields:
        value = record_value(record, name)
        if value is not None and needle in str(value).lower():
            return True
    return False


def overlaps_range(record: Record, start: float, end: float) -> bool:
    """True if the record's contract period overlaps ``[start, end]``."""
    record_start = parse_timestamp(record_value(record, "start_date"))
    record_end = parse_timestamp(record_value(record, "end_date"))
    if record_start is None or record_end is None:
        return False
    return (
        start <= record_start <= end
        or start <= record_end <= end
        or (record_start <= start and record_end >= end)
    )


def filter_records(records: Sequence[Record], filters: FilterSpec) -> List[Record]:
    """Apply every active predicate of ``filters``; order is preserved."""
    if filters.is_empty:
        return list(records)

    status = filters.status if filters.status not in (None, ALL) else None
    contract_type = filters.contract_type if filters.contract_type not in (None, ALL) else None
    search = filters.search or ""
    category = filters.service_category or None
    bounds = filters.date_range.bounds() if filters.date_range is not None else None

    result = []
    for record in records:
        if status is not None and record_value(record, "status") != status:
            continue
        if contract_type is not None and record_value(record, "contract_type") != contract_type:
            continue
        if search and not matches_search(record, search, filters.search_fields):
            continue
        if category is not None and service_category(record) != category:
            continue
        if bounds is not None and not overlaps_range(record, *bounds):
            continue
        result.append(record)
    return result


def sort_records(records: Sequence[Record], sort: SortSpec) -> List[Record]:
    """Stable sort with missing values last regardless of direction."""
    date_field = is_date_field(sort.field)
    keyed = []
    missing = []
    for record in records:
        key = _sort_key(record_value(record, sort.field), date_field)
        if key is None:
            missing.append(record)
        else:
            keyed.append((key, record))

    keyed.sort(key=lambda pair: pair[0], reverse=sort.direction is SortDirection.DESC)
    return [record for _, record in keyed] + missing


# =============================================================================
# Processor
# =============================================================================


class DataProcessor:
    """Filter + sort with results memoized in an IntelligentCache.

    The processor remembers which cache keys it wrote so that memory
    optimization can trim its share of the cache without touching remote
    fetch results stored alongside.
    """

    def __init__(self, cache: Optional[IntelligentCache] = None, namespace: str = "default"):
        self.cache = cache
        self.namespace = namespace
        self._keys: "OrderedDict[str, None]" = OrderedDict()
        self.last_cache_hit: Optional[bool] = None

    def cache_key(
        self,
        dataset_key: str,
        filters: FilterSpec,
        sort_field: str,
        sort_direction: SortDirection,
    ) -> str:
        payload = json.dumps(
            {
                "dataset": dataset_key,
                "filters": filters.to_dict(),
                "sort": [sort_field, sort_direction.value],
            },
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        return f"{CACHE_NAMESPACE}:{self.namespace}:{payload}"

    def filter_and_sort(
        self,
        records: Sequence[Record],
        filters: Any = None,
        sort_field: str = "contractor_name",
        sort_direction: Any = SortDirection.ASC,
        caching_enabled: bool = True,
        dataset_key: Optional[str] = None,
    ) -> Tuple[Record, ...]:
        """Filter then sort ``records``.

        Args:
            records: Raw record collection
            filters: FilterSpec or plain dict accepted by FilterSpec.from_dict
            sort_field: Field to order by
            sort_direction: 'asc' or 'desc'
            caching_enabled: Consult and populate the cache
            dataset_key: Identity of ``records``; fingerprinted when omitted

        Returns:
            Tuple of matching records. On a cache hit, the same tuple object
            returned by the computation that populated the entry.

        Raises:
            ProcessingError: If the filter or sort input is malformed.
        """
        filter_spec = FilterSpec.from_dict(filters)
        sort = SortSpec(field=sort_field, direction=sort_direction)
        self.last_cache_hit = None

        if not records:
            return ()

        key = None
        if caching_enabled and self.cache is not None:
            key = self.cache_key(
                dataset_key or dataset_fingerprint(records), filter_spec, sort.field, sort.direction
            )
            cached = self._cache_get(key)
            if cached is not None:
                self.last_cache_hit = True
                if key in self._keys:
                    self._keys.move_to_end(key)
                return cached
            self.last_cache_hit = False

        result = freeze_records(sort_records(filter_records(records, filter_spec), sort))

        if key is not None:
            self._cache_set(key, result)
        return result

    def trim(self, retention: int = DEFAULT_RETENTION) -> int:
        """Drop the oldest processor results beyond ``retention``.

        Returns:
            Number of cache entries removed.
        """
        removed = 0
        while len(self._keys) > max(0, retention):
            key, _ = self._keys.popitem(last=False)
            if self._cache_delete(key):
                removed += 1
        return removed

    def clear(self) -> int:
        """Drop every processor result from the cache."""
        return self.trim(0)

    def get_cache_stats(self) -> Dict[str, int]:
        live = 0
        if self.cache is not None and not self.cache.closed:
            live = sum(1 for key in self._keys if self.cache.has(key))
        return {"trackedEntries": len(self._keys), "liveEntries": live}

    # --- cache access; an unavailable cache behaves as a miss ---

    def _cache_get(self, key: str) -> Optional[Tuple[Record, ...]]:
        try:
            return self.cache.get(key)
        except CacheError:
            return None

    def _cache_set(self, key: str, value: Tuple[Record, ...]) -> None:
        try:
            stored = self.cache.set(key, value)
        except CacheError:
            return
        if stored:
            self._keys[key] = None
            self._keys.move_to_end(key)

    def _cache_delete(self, key: str) -> bool:
        try:
            return self.cache.delete(key)
        except CacheError:
            return False
