"""
Bounded queue consumer.

Hands scanned pages to a reader outside the pipeline (an exporter, a
transformation step, a test) through a bounded queue. The queue carries
``ScanPage`` entries followed by exactly one ``END_OF_STREAM`` marker.

Example:
    >>> consumer = BoundedQueueConsumer(maxsize=8)
    >>> reader = threading.Thread(target=lambda: [export(p) for p in consumer])
    >>> reader.start()
    >>> coordinator.run(consumer)
    >>> reader.join()
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Iterator
from concurrent.futures import Future
from typing import Any

from dynamocopy.consumers.interface import completed_future
from dynamocopy.exceptions import ConsumerClosedError, TransferInterruptedError
from dynamocopy.models import END_OF_STREAM, EndOfStream, QueueEntry, ScanPage

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 16
CANCEL_POLL_INTERVAL_SECONDS = 0.05


class PageQueue(queue.Queue):
    """
    A bounded queue that can be closed with a single end-of-stream marker.

    Once closed, further ``put`` calls (including ones blocked waiting for
    room) raise ConsumerClosedError. The marker itself is appended by
    ``close`` and always lands after every page that was accepted.

    Blocking ``put`` and ``close`` calls take an optional cancel event and
    raise TransferInterruptedError once it is set.
    """

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE) -> None:
        if maxsize < 1:
            raise ValueError(f"maxsize must be >= 1, got {maxsize}")
        super().__init__(maxsize)
        self.closed = False

    def put(
        self,
        item: Any,
        block: bool = True,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        if isinstance(item, EndOfStream):
            raise ValueError("END_OF_STREAM is added by close(), not put()")
        if timeout is not None and timeout < 0:
            raise ValueError("'timeout' must be a non-negative number")

        with self.not_full:
            deadline = None if timeout is None else time.monotonic() + timeout
            while not self.closed and self._qsize() >= self.maxsize:
                if not block:
                    raise queue.Full
                if deadline is None:
                    self._wait_for_room(None, cancel_event)
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0.0:
                        raise queue.Full
                    self._wait_for_room(remaining, cancel_event)
            if self.closed:
                raise ConsumerClosedError("Page queue is closed")
            self._put(item)
            self.unfinished_tasks += 1
            self.not_empty.notify()

    def close(self, discard: bool = False, cancel_event: threading.Event | None = None) -> bool:
        """
        Close the queue and append END_OF_STREAM.

        Args:
            discard: Drop pages no reader has taken yet. Without discard the
                call blocks until there is room for the marker.
            cancel_event: Stops the wait for room; the queue stays open so
                a later ``close(discard=True)`` can still end the stream

        Returns:
            True if this call closed the queue, False if it was already closed

        Raises:
            TransferInterruptedError: If cancel_event was set while waiting
        """
        with self.not_full:
            if self.closed:
                return False
            if discard:
                dropped = self._qsize()
                self.queue.clear()
                self.unfinished_tasks = max(0, self.unfinished_tasks - dropped)
                if dropped:
                    logger.warning("Discarded %d unread pages", dropped)
            else:
                while not self.closed and self._qsize() >= self.maxsize:
                    self._wait_for_room(None, cancel_event)
                # Another close may have finished while this one waited.
                if self.closed:
                    return False
            self.closed = True
            self._put(END_OF_STREAM)
            self.unfinished_tasks += 1
            self.not_empty.notify_all()
            self.not_full.notify_all()
            return True

    def _wait_for_room(self, timeout: float | None, cancel_event: threading.Event | None) -> None:
        # Called with not_full held.
        if cancel_event is None:
            self.not_full.wait(timeout)
            return
        if cancel_event.is_set():
            raise TransferInterruptedError()
        interval = CANCEL_POLL_INTERVAL_SECONDS
        self.not_full.wait(interval if timeout is None else min(timeout, interval))
        if cancel_event.is_set():
            raise TransferInterruptedError()


class BoundedQueueConsumer:
    """
    Consumer that publishes pages to a bounded queue for an external reader.

    ``submit`` blocks while the queue is full, so a slow reader throttles
    the scan. A page counts as accepted once it is on the queue.

    ``shutdown(drain=True)`` appends END_OF_STREAM after the last page,
    blocking if the queue is full. ``shutdown(drain=False)`` discards pages
    the reader has not taken and still appends the marker, so the reader
    always terminates. Either way the marker appears exactly once.

    A cancel event passed to ``submit`` or ``shutdown`` ends the wait for
    room with TransferInterruptedError, leaving the queue open for a
    following ``shutdown(drain=False)``.

    Attributes:
        queue: The underlying PageQueue, for readers that poll it directly
    """

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE, page_queue: PageQueue | None = None):
        """
        Initialize the consumer.

        Args:
            maxsize: Queue capacity in pages (ignored if page_queue is given)
            page_queue: Existing queue to publish to
        """
        self.queue = page_queue if page_queue is not None else PageQueue(maxsize)
        self._pages_accepted = 0
        self._lock = threading.Lock()

    @property
    def pages_accepted(self) -> int:
        with self._lock:
            return self._pages_accepted

    @property
    def is_closed(self) -> bool:
        return self.queue.closed

    def submit(self, page: ScanPage, cancel_event: threading.Event | None = None) -> Future[int]:
        """
        Put a page on the queue, blocking until there is room.

        Raises:
            ConsumerClosedError: If the consumer has been shut down
            TransferInterruptedError: If cancel_event was set while waiting
        """
        self.queue.put(page, cancel_event=cancel_event)
        with self._lock:
            self._pages_accepted += 1
        return completed_future(page.item_count)

    def shutdown(self, drain: bool = True, cancel_event: threading.Event | None = None) -> None:
        if self.queue.close(discard=not drain, cancel_event=cancel_event):
            logger.info(
                "Queue consumer closed after %d pages",
                self.pages_accepted,
                extra={"pages": self.pages_accepted, "drained": drain},
            )

    # -------------------------------------------------------------------------
    # Reader side
    # -------------------------------------------------------------------------

    def get(self, timeout: float | None = None) -> QueueEntry:
        """
        Take the next entry: a ScanPage or END_OF_STREAM.

        Raises:
            queue.Empty: If timeout elapsed with nothing to read
        """
        entry = self.queue.get(timeout=timeout)
        self.queue.task_done()
        return entry

    def __iter__(self) -> Iterator[ScanPage]:
        """Yield pages until END_OF_STREAM is read."""
        while True:
            entry = self.get()
            if isinstance(entry, EndOfStream):
                return
            yield entry


__all__ = [
    "DEFAULT_QUEUE_SIZE",
    "BoundedQueueConsumer",
    "PageQueue",
]
