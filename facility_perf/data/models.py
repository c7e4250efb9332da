"""Data models for the dashboard data performance layer.

This module defines the structures passed between the processing stages,
following these semantic principles:

1. RECORDS ARE PLAIN MAPPINGS
   - Records arrive from the remote API as decoded JSON objects
   - The only required field is a stable unique ``id``
   - Every other field is read with ``record_value`` and may be missing

2. QUERIES ARE VALUE OBJECTS
   - FilterSpec and SortSpec are frozen and serialize deterministically,
     so the same query always produces the same cache key

3. DERIVED VIEWS ARE SNAPSHOTS
   - PageResult and VirtualWindow are recomputed on every state change
   - Record sequences handed out are tuples and must not be mutated
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple


Record = Mapping[str, Any]

ALL = "all"

DEFAULT_SEARCH_FIELDS: Tuple[str, ...] = ("contractor_name", "service_provided", "notes")


class ProcessingError(Exception):
    """Raised when filter, sort or paging input is malformed."""


# =============================================================================
# Contractor Enumerations
# =============================================================================


class ContractStatus(str, Enum):
    """Lifecycle status of a contractor agreement."""

    ACTIVE = "Active"
    EXPIRED = "Expired"
    PENDING = "Pending"


class SortDirection(str, Enum):
    """Sort direction for table columns."""

    ASC = "asc"
    DESC = "desc"

    @classmethod
    def parse(cls, value: Any) -> "SortDirection":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ProcessingError(f"Unknown sort direction: {value!r}") from None


# =============================================================================
# Record Helpers
# =============================================================================


def record_value(record: Record, field_name: str) -> Any:
    """Read a field from a record, returning None when it is absent."""
    if isinstance(record, Mapping):
        return record.get(field_name)
    return getattr(record, field_name, None)


def parse_timestamp(value: Any) -> Optional[float]:
    """Parse a date-like value into a POSIX timestamp.

    Accepts ISO-8601 strings (with or without a trailing ``Z``), ``date`` and
    ``datetime`` objects, and numeric epoch values. Naive values are read as
    UTC. Returns None for anything that cannot be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def service_category(record: Record) -> str:
    """Derive the service category shown in the category filter.

    The category is the first two words of ``service_provided`` when it has
    more than two words, otherwise its first word.
    """
    service = record_value(record, "service_provided") or ""
    words = str(service).split(" ")
    if len(words) > 2:
        return " ".join(words[:2])
    return words[0] or "Other"


# =============================================================================
# Query Objects
# =============================================================================


@dataclass(frozen=True)
class DateRange:
    """Inclusive date range used by the contract period filter."""

    start: str
    end: str

    def bounds(self) -> Tuple[float, float]:
        """Return (start, end) timestamps, raising ProcessingError if invalid."""
        start_ts = parse_timestamp(self.start)
        end_ts = parse_timestamp(self.end)
        if start_ts is None or end_ts is None:
            raise ProcessingError(f"Invalid date range: {self.start!r} .. {self.end!r}")
        return start_ts, end_ts

    def to_dict(self) -> Dict[str, str]:
        return {"start": str(self.start), "end": str(self.end)}


@dataclass(frozen=True)
class FilterSpec:
    """Set of filter predicates combined with logical AND.

    ``"all"`` (or None) disables the status and contract type predicates;
    an empty search string and a None category or date range disable theirs.
    """

    status: Optional[str] = ALL
    contract_type: Optional[str] = ALL
    search: str = ""
    service_category: Optional[str] = None
    date_range: Optional[DateRange] = None
    search_fields: Tuple[str, ...] = DEFAULT_SEARCH_FIELDS

    def __post_init__(self):
        for name in ("status", "contract_type", "service_category"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                raise ProcessingError(f"Invalid {name} filter: {value!r}")
        if not isinstance(self.search, str):
            raise ProcessingError(f"Search term must be a string, got {self.search!r}")
        if self.date_range is not None and not isinstance(self.date_range, DateRange):
            raise ProcessingError(f"Invalid date range: {self.date_range!r}")

        fields = self.search_fields
        if not isinstance(fields, (list, tuple)) or not all(isinstance(f, str) for f in fields):
            raise ProcessingError(f"Search fields must be a list of field names, got {fields!r}")
        object.__setattr__(self, "search_fields", tuple(fields))

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "FilterSpec":
        """Create a filter spec from a plain dict.

        Accepts both snake_case keys and the camelCase keys used by the
        view layer (``contractType``, ``serviceCategory``, ``dateRange``).
        """
        if data is None:
            return cls()
        if isinstance(data, FilterSpec):
            return data
        if not isinstance(data, Mapping):
            raise ProcessingError(f"Filters must be a mapping, got {type(data).__name__}")

        raw_range = data.get("date_range", data.get("dateRange"))
        date_range = None
        if isinstance(raw_range, DateRange):
            date_range = raw_range
        elif isinstance(raw_range, Mapping):
            date_range = DateRange(start=raw_range.get("start"), end=raw_range.get("end"))
        elif raw_range is not None:
            raise ProcessingError(f"Invalid date range: {raw_range!r}")

        search_fields = data.get("search_fields", DEFAULT_SEARCH_FIELDS)

        return cls(
            status=data.get("status", ALL),
            contract_type=data.get("contract_type", data.get("contractType", ALL)),
            search=data.get("search") or "",
            service_category=data.get("service_category", data.get("serviceCategory")),
            date_range=date_range,
            search_fields=search_fields,
        )

    @property
    def is_empty(self) -> bool:
        """True when no predicate is active."""
        return (
            self.status in (None, ALL)
            and self.contract_type in (None, ALL)
            and not self.search
            and not self.service_category
            and self.date_range is None
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dict with a deterministic shape."""
        return {
            "status": self.status,
            "contract_type": self.contract_type,
            "search": self.search,
            "service_category": self.service_category,
            "date_range": self.date_range.to_dict() if self.date_range else None,
            "search_fields": list(self.search_fields),
        }


@dataclass(frozen=True)
class SortSpec:
    """Field selector plus direction."""

    field: str = "contractor_name"
    direction: SortDirection = SortDirection.ASC

    def __post_init__(self):
        if not isinstance(self.field, str) or not self.field:
            raise ProcessingError(f"Sort field must be a non-empty string, got {self.field!r}")
        object.__setattr__(self, "direction", SortDirection.parse(self.direction))


# =============================================================================
# Derived Views
# =============================================================================


@dataclass(frozen=True)
class PaginationInfo:
    """Descriptor for one page of a paginated collection.

    ``start_index``/``end_index`` are zero-based and half-open over the
    full collection.
    """

    current_page: int
    total_pages: int
    total_items: int
    page_size: int
    has_next_page: bool
    has_previous_page: bool
    start_index: int
    end_index: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentPage": self.current_page,
            "totalPages": self.total_pages,
            "totalItems": self.total_items,
            "pageSize": self.page_size,
            "hasNextPage": self.has_next_page,
            "hasPreviousPage": self.has_previous_page,
            "startIndex": self.start_index,
            "endIndex": self.end_index,
        }


@dataclass(frozen=True)
class PageResult:
    """A page slice plus its descriptor."""

    data: Tuple[Any, ...]
    pagination: PaginationInfo


@dataclass(frozen=True)
class VirtualWindow:
    """Index window that must be rendered inside a scroll container."""

    start_index: int
    end_index: int
    visible_items: int
    total_height: float
    offset_y: float
    should_virtualize: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startIndex": self.start_index,
            "endIndex": self.end_index,
            "visibleItems": self.visible_items,
            "totalHeight": self.total_height,
            "offsetY": self.offset_y,
            "shouldVirtualize": self.should_virtualize,
        }


@dataclass(frozen=True)
class VirtualScrollConfig:
    """Geometry of the scroll container, in pixels."""

    item_height: float = 60
    container_height: float = 400
    overscan: int = 5  # Rows rendered beyond each edge of the viewport
    threshold: int = 50  # Minimum item count before windowing kicks in


def freeze_records(records: Sequence[Any]) -> Tuple[Any, ...]:
    """Return records as a tuple, reusing the input when it already is one."""
    if isinstance(records, tuple):
        return records
    return tuple(records)


@dataclass
class DatasetInfo:
    """Identity of a loaded record set, used to namespace cache keys."""

    name: str
    fingerprint: str = ""
    record_count: int = 0
    loaded_at: Optional[float] = None
    from_cache: bool = False
