"""
Segment scanning.

A ScanSegmentTask drives one segment of a parallel scan to exhaustion,
pacing itself against the shared read-side RateLimiter and yielding pages
in the order the store returns them.

Example:
    >>> task = ScanSegmentTask(store, "orders", Segment(0, 4), read_limiter)
    >>> for page in task:
    ...     handle(page)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

from dynamocopy.capacity import items_size_bytes, read_capacity_units
from dynamocopy.models import ScanKey, ScanPage, Segment, TransferStats
from dynamocopy.observability import (
    ATTR_CAPACITY_UNITS,
    ATTR_CONSISTENT_READ,
    ATTR_ITEM_COUNT,
    ATTR_PAGE_BYTES,
    ATTR_SEGMENT,
    ATTR_TABLE_NAME,
    ATTR_TOTAL_SEGMENTS,
    Tracer,
    create_tracer,
)
from dynamocopy.rate_limiter import RateLimiter
from dynamocopy.retry import RetryConfig, retry_call
from dynamocopy.stores.interface import ScanResponse, TableStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanOptions:
    """
    Options shared by every segment scan of a transfer.

    Attributes:
        consistent_read: Use strongly consistent scans (twice the read cost)
        page_limit: Maximum items per page request, None for the store default
        retry: Backoff policy for transient scan failures
    """

    consistent_read: bool = False
    page_limit: int | None = None
    retry: RetryConfig = field(default_factory=RetryConfig)

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.page_limit is not None and self.page_limit < 1:
            raise ValueError(f"page_limit must be >= 1 or None, got {self.page_limit}")


class ScanSegmentTask:
    """
    Scans one segment from the first page to the last.

    Before each page request the task acquires the read limiter for the
    estimated cost of that page. The first page is estimated at the minimum
    cost; later pages are estimated from what the previous page actually
    consumed, preferring the capacity the store reported over the computed
    size.

    Transient store errors are retried with bounded exponential backoff.
    Anything else, or exhausting the retries, ends the scan with an
    exception from the iterator.

    Attributes:
        segment: The segment being scanned
        pages_scanned: Pages produced so far
        exhausted: True once the store reported no continuation token
    """

    def __init__(
        self,
        store: TableStore,
        table_name: str,
        segment: Segment,
        limiter: RateLimiter,
        options: ScanOptions | None = None,
        stats: TransferStats | None = None,
        cancel_event: threading.Event | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the scan task.

        Args:
            store: Store holding the source table
            table_name: Source table name
            segment: Segment to scan
            limiter: Read-side rate limiter shared by all segments
            options: Scan options (uses defaults if None)
            stats: Transfer counters to update
            cancel_event: Stops the scan between page requests when set
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable OpenTelemetry tracing.
                Ignored if tracer is explicitly provided.
        """
        self.segment = segment
        self.pages_scanned = 0
        self.exhausted = False

        self._store = store
        self._table_name = table_name
        self._limiter = limiter
        self._options = options or ScanOptions()
        self._stats = stats
        self._cancel_event = cancel_event
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    def __iter__(self) -> Iterator[ScanPage]:
        return self.pages()

    def pages(self) -> Iterator[ScanPage]:
        """
        Yield pages of the segment until it is exhausted.

        Raises:
            TransferInterruptedError: If the cancel event was set
            UnrecoverableStoreError: On a non-retryable store error or when
                transient errors outlast the retry policy
        """
        consistent = self._options.consistent_read
        start_key: ScanKey | None = None
        estimate = read_capacity_units(0, consistent)

        while True:
            self._limiter.acquire(estimate, self._cancel_event)

            with self._tracer.span(
                "dynamocopy.scan.page",
                {
                    ATTR_TABLE_NAME: self._table_name,
                    ATTR_SEGMENT: self.segment.index,
                    ATTR_TOTAL_SEGMENTS: self.segment.total,
                    ATTR_CONSISTENT_READ: consistent,
                },
            ) as span:
                response = self._scan_page(start_key)
                size = items_size_bytes(response.items)
                if span is not None:
                    span.set_attribute(ATTR_ITEM_COUNT, len(response.items))
                    span.set_attribute(ATTR_PAGE_BYTES, size)
                    if response.consumed_capacity is not None:
                        span.set_attribute(ATTR_CAPACITY_UNITS, response.consumed_capacity)

            page = ScanPage(
                items=response.items,
                segment=self.segment,
                last_evaluated_key=response.last_evaluated_key,
                size_bytes=size,
                consumed_capacity=response.consumed_capacity,
            )
            self.pages_scanned += 1
            logger.debug(
                "Scanned page %d of segment %s",
                self.pages_scanned,
                self.segment,
                extra={
                    "table": self._table_name,
                    "segment": self.segment.index,
                    "items": page.item_count,
                    "size_bytes": size,
                },
            )

            if page.is_last:
                self.exhausted = True
                logger.info(
                    "Segment %s exhausted after %d pages",
                    self.segment,
                    self.pages_scanned,
                    extra={"table": self._table_name, "segment": self.segment.index},
                )
            yield page

            if page.is_last:
                return
            start_key = page.last_evaluated_key
            estimate = self._next_estimate(response, size)

    def run(self, sink: Callable[[ScanPage], None]) -> int:
        """
        Scan the whole segment, handing every page to ``sink``.

        Returns:
            Number of pages produced
        """
        for page in self.pages():
            sink(page)
        return self.pages_scanned

    def _scan_page(self, start_key: ScanKey | None) -> ScanResponse:
        def on_retry(attempt: int, error: Exception) -> None:
            if self._stats is not None:
                self._stats.record_scan_retry()

        return retry_call(
            lambda: self._store.scan(
                self._table_name,
                self.segment.index,
                self.segment.total,
                exclusive_start_key=start_key,
                consistent_read=self._options.consistent_read,
                limit=self._options.page_limit,
            ),
            config=self._options.retry,
            operation_name=f"scan segment {self.segment}",
            cancel_event=self._cancel_event,
            on_retry=on_retry,
        )

    def _next_estimate(self, response: ScanResponse, size_bytes: int) -> float:
        if response.consumed_capacity is not None and response.consumed_capacity > 0:
            return response.consumed_capacity
        return read_capacity_units(size_bytes, self._options.consistent_read)


__all__ = [
    "ScanOptions",
    "ScanSegmentTask",
]
