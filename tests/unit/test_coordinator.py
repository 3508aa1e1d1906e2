"""
Unit tests for ScanCoordinator.

These run the full scan side against the in-memory store with real
threads, covering both consumers.
"""

from __future__ import annotations

import threading
import time
from collections import Counter

import pytest

from dynamocopy.consumers import BoundedQueueConsumer, TableWriteConsumer
from dynamocopy.coordinator import ScanCoordinator
from dynamocopy.exceptions import (
    TransferInterruptedError,
    UnprocessedItemsError,
    UnrecoverableStoreError,
)
from dynamocopy.models import END_OF_STREAM, Segment, TransferStats
from dynamocopy.observability import MockTracer
from dynamocopy.rate_limiter import RateLimiter
from dynamocopy.retry import RetryConfig
from dynamocopy.scan import ScanOptions
from dynamocopy.stores.in_memory import InMemoryTableStore


def all_segments(total: int) -> list[Segment]:
    return [Segment(i, total) for i in range(total)]


def run_with_reader(coordinator: ScanCoordinator, consumer: BoundedQueueConsumer) -> list:
    """Run the coordinator while a reader thread drains the queue."""
    received: list = []
    reader = threading.Thread(target=lambda: received.extend(consumer))
    reader.start()
    try:
        coordinator.run(consumer)
    finally:
        reader.join(timeout=10)
    assert not reader.is_alive()
    return received


class FailingSegmentStore(InMemoryTableStore):
    """Store whose scans of one segment always fail."""

    def __init__(self, failing_segment: int, **kwargs) -> None:
        super().__init__(**kwargs)
        self.failing_segment = failing_segment

    def scan(self, table_name, segment, total_segments, **kwargs):
        if segment == self.failing_segment:
            raise UnrecoverableStoreError("access denied", "scan", "AccessDeniedException")
        return super().scan(table_name, segment, total_segments, **kwargs)


class RejectingStore(InMemoryTableStore):
    """Store that never applies a batch write."""

    def batch_write(self, table_name, items):
        return list(items)


def start_run(
    coordinator: ScanCoordinator, consumer: BoundedQueueConsumer
) -> tuple[threading.Thread, list[BaseException]]:
    """Start ``coordinator.run`` on a thread, collecting what it raises."""
    errors: list[BaseException] = []

    def run() -> None:
        try:
            coordinator.run(consumer)
        except BaseException as e:
            errors.append(e)

    thread = threading.Thread(target=run)
    thread.start()
    return thread, errors


def scan_threads() -> list[threading.Thread]:
    return [t for t in threading.enumerate() if t.name.startswith("scan")]


class TestConstruction:
    """Tests for ScanCoordinator construction."""

    def test_requires_segments(self, memory_store, fast_limiter) -> None:
        with pytest.raises(ValueError, match="segment"):
            ScanCoordinator(memory_store, "t", [], fast_limiter)

    def test_rejects_bad_poll_interval(self, memory_store, fast_limiter) -> None:
        with pytest.raises(ValueError, match="poll_interval"):
            ScanCoordinator(memory_store, "t", all_segments(1), fast_limiter, poll_interval=0)


class TestQueueConsumer:
    """Tests for scanning into a BoundedQueueConsumer."""

    def test_every_item_delivered_exactly_once(
        self,
        memory_store: InMemoryTableStore,
        source_table: str,
        source_items: list,
        fast_limiter: RateLimiter,
        ids,
    ) -> None:
        coordinator = ScanCoordinator(memory_store, source_table, all_segments(4), fast_limiter)
        consumer = BoundedQueueConsumer(maxsize=2)

        pages = run_with_reader(coordinator, consumer)

        items = [item for page in pages for item in page.items]
        counts = Counter(item["id"]["S"] for item in items)
        assert all(count == 1 for count in counts.values())
        assert ids(items) == ids(source_items)
        # The reader consumed the single END_OF_STREAM marker and nothing follows it.
        assert consumer.queue.empty()

        outcome = coordinator.outcome
        assert outcome is not None
        assert outcome.success
        assert outcome.segments_total == 4
        assert outcome.segments_completed == 4
        assert outcome.pages_completed == len(pages) == coordinator.stats.pages_scanned
        assert coordinator.stats.items_scanned == len(source_items)

    def test_pages_of_a_segment_keep_store_order(
        self,
        memory_store: InMemoryTableStore,
        source_table: str,
        fast_limiter: RateLimiter,
    ) -> None:
        coordinator = ScanCoordinator(memory_store, source_table, all_segments(3), fast_limiter)
        consumer = BoundedQueueConsumer(maxsize=4)

        pages = run_with_reader(coordinator, consumer)

        for index in range(3):
            keys = [p.items[0]["id"]["S"] for p in pages if p.segment.index == index and p.items]
            assert keys == sorted(keys)
            segment_pages = [p for p in pages if p.segment.index == index]
            assert segment_pages[-1].is_last
            assert not any(p.is_last for p in segment_pages[:-1])

    def test_subset_of_segments(
        self,
        memory_store: InMemoryTableStore,
        source_table: str,
        source_items: list,
        fast_limiter: RateLimiter,
        ids,
    ) -> None:
        segments = [Segment(1, 4), Segment(3, 4)]
        coordinator = ScanCoordinator(memory_store, source_table, segments, fast_limiter)
        consumer = BoundedQueueConsumer(maxsize=100)

        coordinator.run(consumer)

        received = [item for page in consumer for item in page.items]
        expected = [
            item
            for item in source_items
            if memory_store.segment_of(source_table, item, 4) in (1, 3)
        ]
        assert ids(received) == ids(expected)

    def test_empty_table(self, memory_store: InMemoryTableStore, fast_limiter: RateLimiter) -> None:
        memory_store.add_table("empty", hash_key="id")
        coordinator = ScanCoordinator(memory_store, "empty", all_segments(2), fast_limiter)
        consumer = BoundedQueueConsumer()

        outcome = coordinator.run(consumer)

        assert outcome.success
        assert [p.item_count for p in consumer] == [0, 0]


class TestWriteConsumer:
    """Tests for scanning into a TableWriteConsumer."""

    def test_copies_table(
        self,
        memory_store: InMemoryTableStore,
        source_table: str,
        destination_table: str,
        source_items: list,
        fast_limiter: RateLimiter,
        stats: TransferStats,
        ids,
    ) -> None:
        coordinator = ScanCoordinator(
            memory_store, source_table, all_segments(4), fast_limiter, stats=stats
        )
        consumer = TableWriteConsumer(
            memory_store, destination_table, fast_limiter, max_workers=3, stats=stats
        )

        outcome = coordinator.run(consumer)

        assert outcome.success
        assert ids(memory_store.items(destination_table)) == ids(source_items)
        assert stats.items_written == len(source_items)
        assert consumer.is_closed

    def test_write_failure_fails_the_run(
        self,
        source_items: list,
        fast_limiter: RateLimiter,
        fast_retry: RetryConfig,
    ) -> None:
        store = RejectingStore(page_size=7)
        store.add_table("source", hash_key="id")
        store.add_table("destination", hash_key="id")
        store.put_items("source", source_items)

        coordinator = ScanCoordinator(store, "source", all_segments(4), fast_limiter)
        consumer = TableWriteConsumer(store, "destination", fast_limiter, retry=fast_retry)

        with pytest.raises(UnprocessedItemsError):
            coordinator.run(consumer)

        assert coordinator.outcome is not None
        assert not coordinator.outcome.success
        assert isinstance(coordinator.outcome.error, UnprocessedItemsError)
        assert consumer.is_closed
        assert scan_threads() == []


class TestFailures:
    """Tests for failure and cancellation."""

    def test_scan_failure_stops_everything(
        self,
        source_items: list,
        fast_limiter: RateLimiter,
        fast_retry: RetryConfig,
    ) -> None:
        store = FailingSegmentStore(failing_segment=2, page_size=7)
        store.add_table("source", hash_key="id")
        store.put_items("source", source_items)
        coordinator = ScanCoordinator(
            store,
            "source",
            all_segments(4),
            fast_limiter,
            options=ScanOptions(retry=fast_retry),
        )
        consumer = BoundedQueueConsumer(maxsize=1000)

        with pytest.raises(UnrecoverableStoreError, match="access denied"):
            coordinator.run(consumer)

        outcome = coordinator.outcome
        assert outcome is not None
        assert not outcome.success
        assert outcome.segments_completed < 4
        assert consumer.is_closed
        # Whatever was accepted was discarded; the reader still terminates.
        assert consumer.get(timeout=1.0) is END_OF_STREAM
        assert scan_threads() == []

    def test_cancel_interrupts_run(
        self,
        memory_store: InMemoryTableStore,
        source_table: str,
    ) -> None:
        slow_limiter = RateLimiter(rate=1.0)
        coordinator = ScanCoordinator(
            memory_store, source_table, all_segments(2), slow_limiter, poll_interval=0.02
        )
        consumer = BoundedQueueConsumer(maxsize=1000)
        errors: list[BaseException] = []

        def run() -> None:
            try:
                coordinator.run(consumer)
            except TransferInterruptedError as e:
                errors.append(e)

        thread = threading.Thread(target=run)
        started = time.monotonic()
        thread.start()
        time.sleep(0.1)
        coordinator.cancel()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert len(errors) == 1
        assert time.monotonic() - started < 3.0
        assert not coordinator.outcome.success
        assert consumer.is_closed
        assert scan_threads() == []

    def test_cancel_while_blocked_on_full_queue(
        self,
        memory_store: InMemoryTableStore,
        source_table: str,
        fast_limiter: RateLimiter,
    ) -> None:
        coordinator = ScanCoordinator(memory_store, source_table, all_segments(1), fast_limiter)
        # No reader: the second page blocks in submit.
        consumer = BoundedQueueConsumer(maxsize=1)
        thread, errors = start_run(coordinator, consumer)

        time.sleep(0.3)
        assert thread.is_alive()
        coordinator.cancel()
        thread.join(timeout=3)

        assert not thread.is_alive()
        assert [type(e) for e in errors] == [TransferInterruptedError]
        assert consumer.get(timeout=1.0) is END_OF_STREAM
        assert consumer.queue.empty()
        assert scan_threads() == []

    def test_cancel_while_waiting_to_end_the_stream(
        self,
        source_items: list,
        fast_limiter: RateLimiter,
    ) -> None:
        store = InMemoryTableStore(page_size=1000)
        store.add_table("single-page", hash_key="id", read_capacity=100, write_capacity=100)
        store.put_items("single-page", source_items)
        coordinator = ScanCoordinator(store, "single-page", all_segments(1), fast_limiter)
        # The only page fills the queue, leaving no room for END_OF_STREAM.
        consumer = BoundedQueueConsumer(maxsize=1)
        thread, errors = start_run(coordinator, consumer)

        time.sleep(0.3)
        assert thread.is_alive()
        coordinator.cancel()
        thread.join(timeout=3)

        assert not thread.is_alive()
        assert [type(e) for e in errors] == [TransferInterruptedError]
        assert consumer.get(timeout=1.0) is END_OF_STREAM
        assert consumer.queue.empty()

    def test_keyboard_interrupt_becomes_interruption(
        self,
        memory_store: InMemoryTableStore,
        source_table: str,
        fast_limiter: RateLimiter,
    ) -> None:
        class InterruptingConsumer(BoundedQueueConsumer):
            def submit(self, page, cancel_event=None):
                raise KeyboardInterrupt

        coordinator = ScanCoordinator(memory_store, source_table, all_segments(2), fast_limiter)
        consumer = InterruptingConsumer(maxsize=10)

        with pytest.raises(TransferInterruptedError) as exc_info:
            coordinator.run(consumer)

        assert isinstance(exc_info.value.__cause__, KeyboardInterrupt)
        assert consumer.is_closed

    def test_coordinator_can_run_again(
        self,
        memory_store: InMemoryTableStore,
        source_table: str,
        fast_limiter: RateLimiter,
    ) -> None:
        coordinator = ScanCoordinator(memory_store, source_table, all_segments(2), fast_limiter)
        first = coordinator.run(BoundedQueueConsumer(maxsize=1000))
        second = coordinator.run(BoundedQueueConsumer(maxsize=1000))
        assert first.success and second.success
        assert second.segments_completed == 2


class TestTracing:
    """Tests for span emission."""

    def test_run_and_page_spans(
        self,
        memory_store: InMemoryTableStore,
        source_table: str,
        fast_limiter: RateLimiter,
        mock_tracer: MockTracer,
    ) -> None:
        coordinator = ScanCoordinator(
            memory_store, source_table, all_segments(2), fast_limiter, tracer=mock_tracer
        )
        coordinator.run(BoundedQueueConsumer(maxsize=1000))

        names = mock_tracer.span_names
        assert names[0] == "dynamocopy.coordinator.run"
        assert names.count("dynamocopy.scan.page") == coordinator.stats.pages_scanned
