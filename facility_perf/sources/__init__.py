"""Record sources - remote API transport, request deduplication, and retries."""

from .base import BaseRecordSource, RecordSourceError
from .memory import InMemoryRecordSource
from .request_manager import BatchResultMissingError, RequestCancelledError, RequestManager
from .rest import RestRecordSource
from .retry import retry_async

__all__ = [
    "BaseRecordSource",
    "RecordSourceError",
    "InMemoryRecordSource",
    "BatchResultMissingError",
    "RequestCancelledError",
    "RequestManager",
    "RestRecordSource",
    "retry_async",
]
