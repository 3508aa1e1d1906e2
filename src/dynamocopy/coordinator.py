"""
ScanCoordinator - runs a parallel scan and feeds a consumer.

The coordinator runs one ScanSegmentTask per owned segment on a scan pool
sized to the number of segments. Workers push their pages onto a single
bounded results queue; the calling thread takes pages off that queue in
arrival order and submits each one to the consumer.

Responsibilities:
    - Scan every owned segment to exhaustion
    - Forward pages to the consumer as they arrive
    - Wait for the consumer to acknowledge every page
    - Stop all work on the first fatal error and propagate it

Usage:
    >>> coordinator = ScanCoordinator(store, "orders", segments, read_limiter)
    >>> outcome = coordinator.run(consumer)
    >>> print(outcome.stats.to_dict())
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass

from dynamocopy.consumers.interface import PageConsumer
from dynamocopy.exceptions import ConsumerClosedError, TransferInterruptedError
from dynamocopy.models import ScanPage, Segment, TransferOutcome, TransferStats
from dynamocopy.observability import (
    ATTR_ERROR_TYPE,
    ATTR_TABLE_NAME,
    ATTR_TOTAL_SEGMENTS,
    Tracer,
    create_tracer,
)
from dynamocopy.rate_limiter import RateLimiter
from dynamocopy.scan import ScanOptions, ScanSegmentTask
from dynamocopy.stores.interface import TableStore

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 0.1


@dataclass(frozen=True)
class _SegmentFinished:
    segment: Segment
    pages: int


@dataclass(frozen=True)
class _SegmentFailed:
    segment: Segment
    error: Exception


class ScanCoordinator:
    """
    Runs the scan side of a transfer and hands pages to a consumer.

    ``run`` blocks until every owned segment has been drained and every page
    acknowledged by the consumer, or until the first fatal error from either
    side. On failure the remaining scans stop before their next page
    request, the consumer is shut down without draining, and the error is
    raised from ``run``. Requests already in flight are allowed to finish.

    The scan pool and the consumer are torn down before ``run`` returns,
    on success and on failure alike.

    Attributes:
        table_name: Source table
        segments: Segments owned by this process
    """

    def __init__(
        self,
        store: TableStore,
        table_name: str,
        segments: Sequence[Segment],
        limiter: RateLimiter,
        options: ScanOptions | None = None,
        stats: TransferStats | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            store: Store holding the source table
            table_name: Source table name
            segments: Segments to scan (usually from SegmentPlan.owned_segments)
            limiter: Read-side rate limiter shared by all segments
            options: Scan options (uses defaults if None)
            stats: Transfer counters to update
            poll_interval: How often blocked waits re-check for cancellation
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable OpenTelemetry tracing.
                Ignored if tracer is explicitly provided.
        """
        if not segments:
            raise ValueError("At least one segment is required")
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {poll_interval}")

        self.table_name = table_name
        self.segments = list(segments)

        self._store = store
        self._limiter = limiter
        self._options = options or ScanOptions()
        self._stats = stats or TransferStats()
        self._poll_interval = poll_interval
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._running = False
        self._outcome: TransferOutcome | None = None

        # Per-run state
        self._segments_completed = 0
        self._pages_completed = 0
        self._write_errors: list[BaseException] = []

    @property
    def stats(self) -> TransferStats:
        return self._stats

    @property
    def outcome(self) -> TransferOutcome | None:
        """Result of the last run, None before the first run finishes."""
        return self._outcome

    @property
    def is_cancelled(self) -> bool:
        return self._stop.is_set()

    def cancel(self) -> None:
        """
        Ask a running transfer to stop.

        ``run`` raises TransferInterruptedError once the workers have
        noticed, also when it is blocked on a full consumer. Safe to call
        from any thread.
        """
        self._stop.set()
        logger.info("Transfer cancellation requested", extra={"table": self.table_name})

    def run(self, consumer: PageConsumer) -> TransferOutcome:
        """
        Scan every owned segment into ``consumer``.

        Args:
            consumer: Destination for the pages

        Returns:
            A successful TransferOutcome

        Raises:
            TransferInterruptedError: If the run was cancelled or interrupted
            UnrecoverableStoreError: On a fatal scan or write error
            DynamoCopyError: Any other fatal error from a scan or the consumer
        """
        with self._lock:
            if self._running:
                raise RuntimeError("ScanCoordinator.run is already in progress")
            self._running = True
        self._segments_completed = 0
        self._pages_completed = 0
        self._write_errors = []
        self._outcome = None

        started = time.monotonic()
        logger.info(
            "Scanning %d segments of %s",
            len(self.segments),
            self.table_name,
            extra={"table": self.table_name, "segments": [s.index for s in self.segments]},
        )

        with self._tracer.span(
            "dynamocopy.coordinator.run",
            {ATTR_TABLE_NAME: self.table_name, ATTR_TOTAL_SEGMENTS: len(self.segments)},
        ) as span:
            results: queue.Queue[ScanPage | _SegmentFinished | _SegmentFailed] = queue.Queue(
                maxsize=len(self.segments)
            )
            executor = ThreadPoolExecutor(
                max_workers=len(self.segments),
                thread_name_prefix="scan",
            )
            try:
                for segment in self.segments:
                    executor.submit(self._scan_segment, segment, results)
                self._forward_pages(consumer, results)
                consumer.shutdown(drain=True, cancel_event=self._stop)
                self._raise_write_failure()
            except BaseException as e:
                error = self._fail(consumer, e, started)
                if span is not None:
                    span.set_attribute(ATTR_ERROR_TYPE, type(error).__name__)
                if error is e:
                    raise
                if isinstance(e, KeyboardInterrupt):
                    raise error from e
                raise error from None
            finally:
                self._stop.set()
                executor.shutdown(wait=True, cancel_futures=True)
                self._stop.clear()
                with self._lock:
                    self._running = False

        self._outcome = TransferOutcome(
            success=True,
            segments_total=len(self.segments),
            segments_completed=self._segments_completed,
            pages_completed=self._pages_completed,
            duration_seconds=time.monotonic() - started,
            stats=self._stats,
        )
        logger.info(
            "Scan of %s complete",
            self.table_name,
            extra={"table": self.table_name, **self._stats.to_dict()},
        )
        return self._outcome

    # -------------------------------------------------------------------------
    # Calling thread
    # -------------------------------------------------------------------------

    def _forward_pages(
        self,
        consumer: PageConsumer,
        results: queue.Queue[ScanPage | _SegmentFinished | _SegmentFailed],
    ) -> None:
        remaining = len(self.segments)
        while remaining:
            self._raise_write_failure()
            if self._stop.is_set():
                raise TransferInterruptedError()
            try:
                message = results.get(timeout=self._poll_interval)
            except queue.Empty:
                continue

            if isinstance(message, ScanPage):
                future = consumer.submit(message, cancel_event=self._stop)
                self._stats.record_page(message)
                future.add_done_callback(self._on_page_done)
            elif isinstance(message, _SegmentFinished):
                remaining -= 1
                self._segments_completed += 1
            else:
                logger.error(
                    "Scan of segment %s failed: %s",
                    message.segment,
                    message.error,
                    extra={"table": self.table_name, "segment": message.segment.index},
                )
                raise message.error

    def _on_page_done(self, future: Future[int]) -> None:
        if future.cancelled():
            return
        error = future.exception()
        with self._lock:
            if error is None:
                self._pages_completed += 1
            else:
                self._write_errors.append(error)

    def _write_failure(self) -> BaseException | None:
        with self._lock:
            if not self._write_errors:
                return None
            # Pages stopped by another page's failure report an interruption;
            # report the failure that caused it.
            causes = [
                e for e in self._write_errors if not isinstance(e, TransferInterruptedError)
            ]
            return causes[0] if causes else self._write_errors[0]

    def _raise_write_failure(self) -> None:
        error = self._write_failure()
        if error is not None:
            raise error

    def _fail(self, consumer: PageConsumer, error: BaseException, started: float) -> BaseException:
        self._stop.set()
        if isinstance(error, KeyboardInterrupt):
            error = TransferInterruptedError("Transfer interrupted by signal")
        try:
            consumer.shutdown(drain=False)
        except Exception:
            logger.exception("Consumer shutdown failed after transfer error")
        if isinstance(error, (ConsumerClosedError, TransferInterruptedError)):
            # A failed page stops the consumer before its own future resolves,
            # so the real cause may only be recorded after shutdown returns.
            error = self._write_failure() or error

        self._outcome = TransferOutcome(
            success=False,
            segments_total=len(self.segments),
            segments_completed=self._segments_completed,
            pages_completed=self._pages_completed,
            duration_seconds=time.monotonic() - started,
            stats=self._stats,
            error=error,
        )
        logger.error(
            "Transfer of %s failed: %s",
            self.table_name,
            error,
            extra={
                "table": self.table_name,
                "error_type": type(error).__name__,
                "segments_completed": self._segments_completed,
                "pages_completed": self._pages_completed,
            },
        )
        return error

    # -------------------------------------------------------------------------
    # Scan pool threads
    # -------------------------------------------------------------------------

    def _scan_segment(
        self,
        segment: Segment,
        results: queue.Queue[ScanPage | _SegmentFinished | _SegmentFailed],
    ) -> None:
        task = ScanSegmentTask(
            self._store,
            self.table_name,
            segment,
            self._limiter,
            options=self._options,
            stats=self._stats,
            cancel_event=self._stop,
            tracer=self._tracer,
        )
        try:
            for page in task:
                if not self._post(results, page):
                    return
        except Exception as e:
            self._post(results, _SegmentFailed(segment, e))
        else:
            self._post(results, _SegmentFinished(segment, task.pages_scanned))

    def _post(
        self,
        results: queue.Queue[ScanPage | _SegmentFinished | _SegmentFailed],
        message: ScanPage | _SegmentFinished | _SegmentFailed,
    ) -> bool:
        while True:
            try:
                results.put(message, timeout=self._poll_interval)
                return True
            except queue.Full:
                if self._stop.is_set():
                    return False


__all__ = [
    "DEFAULT_POLL_INTERVAL_SECONDS",
    "ScanCoordinator",
]
