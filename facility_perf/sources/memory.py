"""In-memory record source.

Serves a fixed record set. Used for offline fixtures and tests, and as the
reference behaviour for the query semantics of the REST source.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .base import BaseRecordSource, RecordSourceError


class InMemoryRecordSource(BaseRecordSource):
    """Record source backed by a list of dicts.

    Records are copied on the way in and on the way out so that callers can
    never mutate the source through a fetched record.
    """

    def __init__(self, records: Iterable[Mapping[str, Any]] = (), name: str = "memory"):
        self._name = name
        self._records: List[Dict[str, Any]] = [dict(r) for r in records]
        self.fetch_count = 0
        self.fetch_by_ids_calls: List[List[Any]] = []
        self.fail_with: Optional[Exception] = None

    @property
    def name(self) -> str:
        return self._name

    def replace_records(self, records: Iterable[Mapping[str, Any]]) -> None:
        """Swap the served record set (simulates a write by the surrounding UI)."""
        self._records = [dict(r) for r in records]

    def fetch_records(self, query: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        self.fetch_count += 1
        self._raise_if_failing()
        query = query or {}
        return [
            dict(record)
            for record in self._records
            if all(record.get(key) == value for key, value in query.items())
        ]

    def fetch_by_ids(self, ids: Sequence[Any]) -> List[Dict[str, Any]]:
        self.fetch_by_ids_calls.append(list(ids))
        self._raise_if_failing()
        wanted = set(ids)
        return [dict(record) for record in self._records if record.get("id") in wanted]

    def _raise_if_failing(self) -> None:
        if self.fail_with is not None:
            raise RecordSourceError(self.name, str(self.fail_with), self.fail_with)
