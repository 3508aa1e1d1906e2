"""
Rate-limited batch writer for a destination table.

Each submitted page becomes one task on a bounded write pool. The task
splits the page into batch-write sized chunks, acquires write capacity for
every chunk and re-issues whatever the store reports as unprocessed until
it is written or the retry ceiling is hit.

Example:
    >>> consumer = TableWriteConsumer(store, "orders-copy", write_limiter, max_workers=8)
    >>> future = consumer.submit(page)
    >>> consumer.shutdown(drain=True)
"""

from __future__ import annotations

import functools
import logging
import threading
from collections.abc import Iterator, Sequence
from concurrent.futures import Future, ThreadPoolExecutor

from dynamocopy.capacity import write_capacity_units
from dynamocopy.exceptions import (
    ConsumerClosedError,
    TransferInterruptedError,
    UnprocessedItemsError,
)
from dynamocopy.models import Item, ScanPage, TransferStats
from dynamocopy.observability import (
    ATTR_CAPACITY_UNITS,
    ATTR_ITEM_COUNT,
    ATTR_SEGMENT,
    ATTR_TABLE_NAME,
    Tracer,
    create_tracer,
)
from dynamocopy.rate_limiter import RateLimiter
from dynamocopy.retry import RetryConfig, calculate_backoff, retry_call, sleep_backoff
from dynamocopy.stores.interface import MAX_BATCH_WRITE_ITEMS, TableStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 16
WAIT_POLL_INTERVAL_SECONDS = 0.1


def chunked(items: Sequence[Item], size: int = MAX_BATCH_WRITE_ITEMS) -> Iterator[list[Item]]:
    """Split items into consecutive chunks of at most ``size``."""
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


class TableWriteConsumer:
    """
    Writes pages into a destination table through a bounded thread pool.

    ``submit`` blocks while ``max_pending_pages`` pages are already queued
    or running, so a slow destination throttles the scan side instead of
    letting scanned pages pile up in memory.

    The pool is created on the first submit and torn down by ``shutdown``.
    The first page that fails stops every other page task at its next
    chunk boundary.

    Attributes:
        table_name: Destination table
        max_workers: Maximum pages written concurrently
        max_pending_pages: Maximum pages accepted but not yet finished
    """

    def __init__(
        self,
        store: TableStore,
        table_name: str,
        limiter: RateLimiter,
        max_workers: int = DEFAULT_MAX_WORKERS,
        retry: RetryConfig | None = None,
        stats: TransferStats | None = None,
        max_pending_pages: int | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the consumer.

        Args:
            store: Store holding the destination table
            table_name: Destination table name
            limiter: Write-side rate limiter
            max_workers: Write pool size
            retry: Backoff policy for transient failures and unprocessed
                items (uses defaults if None)
            stats: Transfer counters to update
            max_pending_pages: Backpressure bound, defaults to twice the
                pool size
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable OpenTelemetry tracing.
                Ignored if tracer is explicitly provided.
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        if max_pending_pages is not None and max_pending_pages < 1:
            raise ValueError(f"max_pending_pages must be >= 1, got {max_pending_pages}")

        self.table_name = table_name
        self.max_workers = max_workers
        self.max_pending_pages = max_pending_pages or max_workers * 2

        self._store = store
        self._limiter = limiter
        self._retry = retry or RetryConfig()
        self._stats = stats or TransferStats()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

        self._executor: ThreadPoolExecutor | None = None
        self._slots = threading.BoundedSemaphore(self.max_pending_pages)
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._outstanding = 0
        self._closed = False

    @property
    def stats(self) -> TransferStats:
        return self._stats

    @property
    def outstanding(self) -> int:
        """Pages accepted by submit that have not finished yet."""
        with self._lock:
            return self._outstanding

    @property
    def is_closed(self) -> bool:
        return self._closed

    def submit(self, page: ScanPage, cancel_event: threading.Event | None = None) -> Future[int]:
        """
        Schedule a page for writing.

        Blocks while the pending-page bound is reached.

        Args:
            page: Page to write
            cancel_event: Interrupts the wait for a free slot

        Returns:
            Future resolving to the number of items written

        Raises:
            ConsumerClosedError: If the consumer has been shut down
            TransferInterruptedError: If cancel_event was set while waiting
        """
        while not self._slots.acquire(timeout=WAIT_POLL_INTERVAL_SECONDS):
            if self._closed or self._stop.is_set():
                raise ConsumerClosedError(f"Write consumer for {self.table_name} is shut down")
            if cancel_event is not None and cancel_event.is_set():
                raise TransferInterruptedError()

        with self._lock:
            if self._closed or self._stop.is_set():
                self._slots.release()
                raise ConsumerClosedError(f"Write consumer for {self.table_name} is shut down")
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers,
                    thread_name_prefix=f"write-{self.table_name}",
                )
            self._outstanding += 1
            future = self._executor.submit(self._write_page, page)

        future.add_done_callback(self._on_done)
        return future

    def _on_done(self, future: Future[int]) -> None:
        with self._lock:
            self._outstanding -= 1
            if not self._outstanding:
                self._idle.notify_all()
        self._slots.release()

    def shutdown(self, drain: bool = True, cancel_event: threading.Event | None = None) -> None:
        """
        Shut down the write pool.

        Args:
            drain: Wait for every accepted page (True), or cancel pages that
                have not started and stop running ones at their next chunk
                (False). Either way the call returns once no write is in
                flight.
            cancel_event: Turns a drain into an abort once set

        Raises:
            TransferInterruptedError: If cancel_event was set before the
                drain finished
        """
        with self._lock:
            first = not self._closed
            self._closed = True
            executor = self._executor

        interrupted = drain and cancel_event is not None and not self._wait_idle(cancel_event)
        if interrupted:
            drain = False
        # A later shutdown(drain=False) still stops a drain that is under way.
        if not drain:
            self._stop.set()
        if executor is not None:
            executor.shutdown(wait=True, cancel_futures=not drain)
        if first:
            logger.info(
                "Write consumer for %s shut down",
                self.table_name,
                extra={"table": self.table_name, "drained": drain},
            )
        if interrupted:
            raise TransferInterruptedError()

    def _wait_idle(self, cancel_event: threading.Event) -> bool:
        with self._idle:
            while self._outstanding:
                if cancel_event.is_set():
                    return False
                self._idle.wait(WAIT_POLL_INTERVAL_SECONDS)
        return True

    # -------------------------------------------------------------------------
    # Write path (runs on pool threads)
    # -------------------------------------------------------------------------

    def _write_page(self, page: ScanPage) -> int:
        with self._tracer.span(
            "dynamocopy.consumer.write_page",
            {
                ATTR_TABLE_NAME: self.table_name,
                ATTR_SEGMENT: page.segment.index,
                ATTR_ITEM_COUNT: page.item_count,
            },
        ) as span:
            try:
                written = 0
                for chunk in chunked(page.items):
                    written += self._write_chunk(chunk)
            except Exception:
                self._stop.set()
                raise
            if span is not None:
                span.set_attribute(ATTR_CAPACITY_UNITS, write_capacity_units(page.items))

        logger.debug(
            "Wrote page from segment %s",
            page.segment,
            extra={"table": self.table_name, "segment": page.segment.index, "items": written},
        )
        return written

    def _write_chunk(self, items: list[Item]) -> int:
        pending = items
        attempt = 0

        while True:
            self._limiter.acquire(write_capacity_units(pending), self._stop)
            unprocessed = retry_call(
                functools.partial(self._store.batch_write, self.table_name, pending),
                config=self._retry,
                operation_name=f"batch_write {self.table_name}",
                cancel_event=self._stop,
                on_retry=lambda attempt, error: self._stats.record_write_retry(),
            )
            self._stats.record_written(len(pending) - len(unprocessed))
            if not unprocessed:
                return len(items)

            if attempt >= self._retry.max_retries:
                raise UnprocessedItemsError(self.table_name, len(unprocessed), attempt + 1)

            delay = calculate_backoff(attempt, self._retry)
            logger.warning(
                "Re-issuing %d unprocessed items",
                len(unprocessed),
                extra={
                    "table": self.table_name,
                    "attempt": attempt + 1,
                    "max_retries": self._retry.max_retries,
                    "delay_seconds": delay,
                },
            )
            self._stats.record_unprocessed_reissue()
            sleep_backoff(delay, self._stop)
            attempt += 1
            pending = unprocessed


__all__ = [
    "DEFAULT_MAX_WORKERS",
    "TableWriteConsumer",
    "chunked",
]
