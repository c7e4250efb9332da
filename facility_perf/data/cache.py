"""Intelligent in-memory cache for processed results and remote fetches.

Entries are evicted by three rules:
- Age: anything older than ``max_age`` is a miss and gets purged
- Budget: after every ``set`` the least recently accessed entries are
  dropped until both the entry-count and the byte budget hold
- Explicit: ``delete`` and ``clear``

The cache lives for one dashboard session only. Nothing is persisted.
"""

from __future__ import annotations

import json
import sys
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from ..logs import log


DEFAULT_MAX_ENTRIES = 1000
DEFAULT_MAX_SIZE_BYTES = 50 * 1024 * 1024
DEFAULT_MAX_AGE = timedelta(minutes=30)
# Entries larger than this share of the byte budget are never stored
MAX_ENTRY_SHARE = 0.1


class CacheError(Exception):
    """Raised when the cache is unavailable (closed)."""


@dataclass
class CacheEntry:
    """A cached value with its bookkeeping."""

    key: str
    value: Any
    created_at: float
    last_accessed: float
    size: int
    access_count: int = 0


@dataclass(frozen=True)
class CacheStats:
    """Immutable snapshot of cache statistics."""

    entries: int = 0
    size_bytes: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        """Hit rate as a float in [0.0, 1.0]; 0.0 when no lookups."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    @property
    def size_mb(self) -> float:
        return self.size_bytes / (1024 * 1024)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": self.entries,
            "sizeBytes": self.size_bytes,
            "sizeMB": round(self.size_mb, 4),
            "hits": self.hits,
            "misses": self.misses,
            "hitRate": self.hit_rate,
            "evictions": self.evictions,
            "expirations": self.expirations,
        }


def estimate_size(value: Any) -> int:
    """Approximate the memory footprint of a value from its JSON encoding."""
    try:
        return len(json.dumps(value, default=str).encode("utf-8"))
    except (TypeError, ValueError):
        return sys.getsizeof(value)


class IntelligentCache:
    """Time-bounded LRU cache with entry-count and byte budgets.

    Thread-safe: a lock guards all state so that a CacheSweepWorker can purge
    expired entries while the event loop reads and writes.

    Args:
        max_entries: Maximum number of entries kept
        max_size_bytes: Maximum total approximate size of all entries
        max_age: Entries older than this (since insertion) are misses
        clock: Monotonic time source in seconds; injectable for tests
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES,
        max_age: timedelta = DEFAULT_MAX_AGE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max(1, max_entries)
        self.max_size_bytes = max(1, max_size_bytes)
        self.max_age = max_age
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._size = 0
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        self._closed = False
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or ``default`` on a miss.

        A hit refreshes the entry's last-access time and makes it the most
        recently used entry.
        """
        with self._lock:
            self._check_open()
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return default

            now = self._clock()
            if self._is_expired(entry, now):
                self._remove(key)
                self._expirations += 1
                self._misses += 1
                return default

            entry.last_accessed = now
            entry.access_count += 1
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, size_hint: Optional[int] = None) -> bool:
        """Store a value, evicting least recently used entries as needed.

        Args:
            key: Namespaced cache key
            value: Value to cache; stored by reference
            size_hint: Approximate size in bytes; estimated when omitted

        Returns:
            True if stored, False if the value alone exceeds the per-entry limit.
            An oversized value still evicts any entry previously stored under
            ``key``.
        """
        size = size_hint if size_hint is not None else estimate_size(value)
        size = max(0, int(size))

        with self._lock:
            self._check_open()
            if key in self._entries:
                self._remove(key)
            if size > self.max_size_bytes * MAX_ENTRY_SHARE:
                log(f"[cache] Not caching {key}: {size} bytes exceeds per-entry limit")
                return False

            now = self._clock()
            self._purge_expired_locked(now)
            self._entries[key] = CacheEntry(
                key=key, value=value, created_at=now, last_accessed=now, size=size
            )
            self._size += size
            self._evict_to_budget()
            return True

    def has(self, key: str) -> bool:
        """Check presence without counting a hit or miss."""
        with self._lock:
            self._check_open()
            entry = self._entries.get(key)
            if entry is None:
                return False
            if self._is_expired(entry, self._clock()):
                self._remove(key)
                self._expirations += 1
                return False
            return True

    def delete(self, key: str) -> bool:
        """Remove a key; returns True if it was present."""
        with self._lock:
            self._check_open()
            if key not in self._entries:
                return False
            self._remove(key)
            return True

    def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``; returns the count."""
        with self._lock:
            self._check_open()
            matched = [key for key in self._entries if key.startswith(prefix)]
            for key in matched:
                self._remove(key)
            return len(matched)

    def clear(self) -> None:
        """Remove all entries and reset the hit/miss counters."""
        with self._lock:
            self._check_open()
            self._entries.clear()
            self._size = 0
            self._hits = 0
            self._misses = 0
            self._evictions = 0
            self._expirations = 0

    def purge_expired(self) -> int:
        """Remove every entry older than ``max_age``; returns the count."""
        with self._lock:
            self._check_open()
            return self._purge_expired_locked(self._clock())

    def keys(self):
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._entries)

    def get_stats(self) -> CacheStats:
        with self._lock:
            if not self._closed:
                self._purge_expired_locked(self._clock())
            return CacheStats(
                entries=len(self._entries),
                size_bytes=self._size,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expirations=self._expirations,
            )

    def close(self) -> None:
        """Drop all entries and mark the cache unavailable."""
        with self._lock:
            self._entries.clear()
            self._size = 0
            self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    # ------------------------------------------------------------------
    # Internals (lock held)
    # ------------------------------------------------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise CacheError("Cache is closed")

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at > self.max_age.total_seconds()

    def _remove(self, key: str) -> None:
        entry = self._entries.pop(key)
        self._size -= entry.size

    def _purge_expired_locked(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            self._remove(key)
        self._expirations += len(expired)
        return len(expired)

    def _evict_to_budget(self) -> None:
        while self._entries and (
            len(self._entries) > self.max_entries or self._size > self.max_size_bytes
        ):
            oldest_key = next(iter(self._entries))
            self._remove(oldest_key)
            self._evictions += 1


class CacheSweepWorker(threading.Thread):
    """Background worker that purges expired cache entries periodically."""

    daemon = True

    def __init__(self, cache: IntelligentCache, interval_seconds: float = 300):
        super().__init__(name="cache-sweep-worker")
        self.cache = cache
        self.interval = max(1.0, interval_seconds)
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self.interval):
            if self.cache.closed:
                break
            removed = self.sweep()
            if removed:
                log(f"[cache] Swept {removed} expired entries")

    def sweep(self) -> int:
        try:
            return self.cache.purge_expired()
        except CacheError:
            self._stop_event.set()
            return 0

    def stop(self) -> None:
        self._stop_event.set()
