"""Data layer - models, pagination, windowing, processing, and caching."""

from .cache import CacheError, CacheStats, CacheSweepWorker, IntelligentCache
from .models import (
    ContractStatus,
    DateRange,
    FilterSpec,
    PageResult,
    PaginationInfo,
    ProcessingError,
    SortDirection,
    SortSpec,
    VirtualScrollConfig,
    VirtualWindow,
)
from .pagination import LazyBatchLoader, calculate_optimal_page_size, paginate, pagination_metadata
from .processing import DataProcessor, dataset_fingerprint
from .virtual_scroll import calculate_virtual_window, visible_slice

__all__ = [
    "CacheError",
    "CacheStats",
    "CacheSweepWorker",
    "IntelligentCache",
    "ContractStatus",
    "DateRange",
    "FilterSpec",
    "PageResult",
    "PaginationInfo",
    "ProcessingError",
    "SortDirection",
    "SortSpec",
    "VirtualScrollConfig",
    "VirtualWindow",
    "LazyBatchLoader",
    "calculate_optimal_page_size",
    "paginate",
    "pagination_metadata",
    "DataProcessor",
    "dataset_fingerprint",
    "calculate_virtual_window",
    "visible_slice",
]
