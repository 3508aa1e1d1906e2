"""
Consumer contract for scanned pages.

A consumer is the destination side of a transfer. The ScanCoordinator hands
it every page exactly once through ``submit`` and finishes the run with
``shutdown``.

Implementations:
- TableWriteConsumer: rate-limited batch writes into a destination table
- BoundedQueueConsumer: hands pages to an external reader through a
  bounded queue terminated by END_OF_STREAM
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Protocol, runtime_checkable

from dynamocopy.models import ScanPage


@runtime_checkable
class PageConsumer(Protocol):
    """
    Protocol for anything that accepts scanned pages.

    ``submit`` may block to apply backpressure. The returned future resolves
    to the number of items accepted once the page has been fully handled,
    or raises the error that made the page fail.

    ``shutdown(drain=True)`` blocks until every submitted page is handled.
    ``shutdown(drain=False)`` stops accepting work and abandons pages that
    have not started; work already in flight is allowed to finish.
    Submitting after shutdown raises ConsumerClosedError.

    Both calls take an optional cancel event. Setting it while either call
    is blocked makes the call raise TransferInterruptedError; the caller
    then finishes with ``shutdown(drain=False)``.
    """

    def submit(self, page: ScanPage, cancel_event: threading.Event | None = None) -> Future[int]:
        """
        Hand a page to the consumer.

        Args:
            page: Page to consume
            cancel_event: Interrupts a blocked submit

        Returns:
            Future resolving to the number of items the page carried
        """
        ...

    def shutdown(self, drain: bool = True, cancel_event: threading.Event | None = None) -> None:
        """
        Stop the consumer.

        Args:
            drain: Wait for accepted pages to finish (True) or discard
                pending work (False)
            cancel_event: Interrupts a blocked drain
        """
        ...


def completed_future(result: int) -> Future[int]:
    """Build an already-resolved future for synchronously accepted pages."""
    future: Future[int] = Future()
    future.set_result(result)
    return future


__all__ = [
    "PageConsumer",
    "completed_future",
]
