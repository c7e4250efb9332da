"""Request deduplication and batching for remote fetches.

Two mechanisms keep redundant network calls down:

1. DEDUPLICATION
   - At most one fetch per key is in flight; concurrent callers for the
     same key await the same task and observe the same value or exception
   - The registration is removed as soon as the task settles

2. BATCHING
   - Requests for the same batch key arriving within ``batch_window`` are
     coalesced into one multi-key call
   - A batch closes when the window elapses or ``max_batch_size`` is reached

Keys are shared by every consumer of a manager instance, so callers must
namespace them (dataset name plus query parameters).
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..dashboard.config import RequestConfig
from ..logs import log


class BatchResultMissingError(Exception):
    """Raised when a batch executor returns no result for a request."""

    def __init__(self, batch_key: str, index: int):
        self.batch_key = batch_key
        self.index = index
        super().__init__(f"Batch result missing for index {index} in {batch_key!r}")


class RequestCancelledError(Exception):
    """Raised to callers whose batched request was dropped by clear_all()."""


@dataclass
class PendingRequest:
    """An in-flight fetch shared by every caller of its key."""

    key: str
    task: "asyncio.Task[Any]"
    created_at: float
    subscribers: int = 1


@dataclass
class _PendingBatch:
    """Requests queued under one batch key, waiting for the window to close."""

    key: str
    executor: Callable[[List[Any]], Awaitable[Sequence[Any]]]
    params: List[Any] = field(default_factory=list)
    futures: List["asyncio.Future[Any]"] = field(default_factory=list)
    timer: Optional[asyncio.TimerHandle] = None


class RequestManager:
    """Deduplicates concurrent identical fetches and batches compatible ones.

    The timeout in the config is informational: it is enforced by the fetch
    transport, not here. Must be used from a single event loop.
    """

    def __init__(self, config: Optional[RequestConfig] = None):
        self.config = config or RequestConfig()
        self._pending: Dict[str, PendingRequest] = {}
        self._batches: Dict[str, _PendingBatch] = {}
        self._batch_tasks: set = set()
        self._executed = 0
        self._deduplicated = 0
        self._batches_executed = 0

    # ------------------------------------------------------------------
    # Deduplication
    # ------------------------------------------------------------------

    async def dedupe(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Run ``factory()`` unless a fetch for ``key`` is already in flight.

        A caller that is cancelled stops waiting but does not cancel the
        shared fetch; it still completes for the other callers.
        """
        pending = self._pending.get(key)
        if pending is not None:
            pending.subscribers += 1
            self._deduplicated += 1
        else:
            task = asyncio.ensure_future(factory())
            pending = PendingRequest(key=key, task=task, created_at=time.time())
            self._pending[key] = pending
            self._executed += 1
            task.add_done_callback(lambda t, k=key: self._settle(k, t))
        return await asyncio.shield(pending.task)

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def _settle(self, key: str, task: "asyncio.Task[Any]") -> None:
        current = self._pending.get(key)
        if current is not None and current.task is task:
            del self._pending[key]
        # Consume the exception so the loop does not report it as unretrieved
        # when every caller has abandoned interest.
        if not task.cancelled():
            task.exception()

    # ------------------------------------------------------------------
    # Batching
    # ------------------------------------------------------------------

    async def batch(
        self,
        batch_key: str,
        params: Any,
        executor: Callable[[List[Any]], Awaitable[Sequence[Any]]],
    ) -> Any:
        """Queue ``params`` for a coalesced ``executor`` call.

        Args:
            batch_key: Requests sharing this key are merged
            params: This caller's parameters
            executor: Coroutine function taking the list of queued params and
                returning one result per param, in order

        Returns:
            The executor's result at this caller's index.

        Raises:
            BatchResultMissingError: If the executor returned too few results.
            RequestCancelledError: If clear_all() dropped the batch first.
        """
        loop = asyncio.get_running_loop()
        batch = self._batches.get(batch_key)
        if batch is None:
            batch = _PendingBatch(key=batch_key, executor=executor)
            batch.timer = loop.call_later(self.config.batch_window, self._flush, batch_key)
            self._batches[batch_key] = batch

        future = loop.create_future()
        batch.params.append(params)
        batch.futures.append(future)

        if len(batch.futures) >= self.config.max_batch_size:
            self._flush(batch_key)

        return await future

    def _flush(self, batch_key: str) -> None:
        batch = self._batches.pop(batch_key, None)
        if batch is None:
            return
        if batch.timer is not None:
            batch.timer.cancel()
        task = asyncio.ensure_future(self._execute_batch(batch))
        self._batch_tasks.add(task)
        task.add_done_callback(self._batch_tasks.discard)

    async def _execute_batch(self, batch: _PendingBatch) -> None:
        self._batches_executed += 1
        try:
            results = await batch.executor(list(batch.params))
        except Exception as exc:
            log(f"[request-manager] Batch {batch.key!r} failed ({len(batch.futures)} requests): {exc}")
            for future in batch.futures:
                if not future.done():
                    future.set_exception(exc)
            return

        results = list(results or [])
        for index, future in enumerate(batch.futures):
            if future.done():
                continue
            if index < len(results) and results[index] is not None:
                future.set_result(results[index])
            else:
                future.set_exception(BatchResultMissingError(batch.key, index))

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def clear_all(self) -> None:
        """Forget in-flight registrations and pending batches; reset counters.

        In-flight fetches are not aborted: their callers still receive the
        result, but new callers start a fresh fetch.
        """
        self._pending.clear()
        for batch in self._batches.values():
            if batch.timer is not None:
                batch.timer.cancel()
            for future in batch.futures:
                if not future.done():
                    future.set_exception(RequestCancelledError(f"Batch {batch.key!r} was cleared"))
        self._batches.clear()
        self._executed = 0
        self._deduplicated = 0
        self._batches_executed = 0

    def get_stats(self) -> Dict[str, Any]:
        return {
            "pendingRequests": len(self._pending),
            "pendingBatches": len(self._batches),
            "executedRequests": self._executed,
            "deduplicatedRequests": self._deduplicated,
            "batchesExecuted": self._batches_executed,
            "config": self.config.to_dict(),
        }
