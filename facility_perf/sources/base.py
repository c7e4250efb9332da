"""Base record source interface for remote data APIs."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence


class BaseRecordSource(ABC):
    """Abstract base class for record sources.

    A record source performs idempotent, side-effect-free reads against the
    remote data API and returns plain records (dicts with at least an ``id``).
    Calls are blocking; the dashboard state runs them off the event loop.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this source.

        Returns:
            A short, lowercase identifier (e.g., 'contractors', 'water_zones')
        """
        pass

    @abstractmethod
    def fetch_records(self, query: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """Fetch the record set, optionally narrowed by simple equality filters.

        Raises:
            RecordSourceError: If the fetch fails.
        """
        pass

    @abstractmethod
    def fetch_by_ids(self, ids: Sequence[Any]) -> List[Dict[str, Any]]:
        """Fetch several records in one call (multi-key fetch).

        Records that do not exist are simply absent from the result.

        Raises:
            RecordSourceError: If the fetch fails.
        """
        pass

    def close(self) -> None:
        """Release transport resources."""


class RecordSourceError(Exception):
    """Exception raised when a record source fails to fetch data."""

    def __init__(
        self,
        source_name: str,
        message: str,
        cause: Optional[Exception] = None,
        status_code: Optional[int] = None,
    ):
        self.source_name = source_name
        self.cause = cause
        self.status_code = status_code
        super().__init__(f"[{source_name}] {message}")

    @property
    def is_client_error(self) -> bool:
        """True for HTTP 4xx responses, which retrying cannot fix."""
        return self.status_code is not None and 400 <= self.status_code < 500
