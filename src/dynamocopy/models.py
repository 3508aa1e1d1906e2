"""
Core data structures for a table transfer.

This module provides:
- Segment: One partition of a parallel table scan
- SectionAssignment: Which slice of the segments this process owns
- ScanPage: One page of scanned items from one segment
- EndOfStream / END_OF_STREAM: Queue marker for "no more pages"
- TransferStats: Counters updated while a transfer runs
- TransferOutcome: Terminal result of a transfer
"""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeAlias

from dynamocopy.exceptions import SectionOutOfRangeError

# A scanned item in the store's wire format: attribute name -> typed value,
# e.g. {"id": {"S": "abc"}, "count": {"N": "3"}}.
Item: TypeAlias = dict[str, Any]

# Continuation token returned by a scan (the store's LastEvaluatedKey).
ScanKey: TypeAlias = Mapping[str, Any]


@dataclass(frozen=True, order=True)
class Segment:
    """
    One partition of a parallel scan.

    Attributes:
        index: Segment number (0 to total - 1)
        total: Total number of segments the table scan is split into
    """

    index: int
    total: int

    def __post_init__(self) -> None:
        """Validate segment bounds."""
        if self.total < 1:
            raise ValueError(f"total segments must be >= 1, got {self.total}")
        if not 0 <= self.index < self.total:
            raise ValueError(f"segment index {self.index} out of range for {self.total} segments")

    def __str__(self) -> str:
        return f"{self.index}/{self.total}"


@dataclass(frozen=True)
class SectionAssignment:
    """
    The section of a multi-process transfer handled by this process.

    Segments are dealt round-robin across sections: segment ``i`` belongs to
    section ``i % total_sections``.

    Attributes:
        section: This process's section number
        total_sections: Number of cooperating processes
    """

    section: int = 0
    total_sections: int = 1

    def __post_init__(self) -> None:
        """Validate the section is in range."""
        if self.total_sections < 1 or not 0 <= self.section < self.total_sections:
            raise SectionOutOfRangeError(self.section, self.total_sections)

    def owns(self, segment_index: int) -> bool:
        """Check whether a segment index belongs to this section."""
        return segment_index % self.total_sections == self.section


@dataclass(frozen=True)
class ScanPage:
    """
    One page of items returned by a segment scan.

    Pages are produced by a ScanSegmentTask and handed to exactly one
    consumer. They are never cached once the consumer acknowledges them.

    Attributes:
        items: Items in the order the store returned them
        segment: Segment the page was read from
        last_evaluated_key: Continuation token, None when the segment is exhausted
        size_bytes: Computed size of all items, used for capacity accounting
        consumed_capacity: Capacity units the store reported for the request,
            if it reported any
    """

    items: Sequence[Item]
    segment: Segment
    last_evaluated_key: ScanKey | None = None
    size_bytes: int = 0
    consumed_capacity: float | None = None

    @property
    def item_count(self) -> int:
        """Number of items in the page."""
        return len(self.items)

    @property
    def is_last(self) -> bool:
        """True when the segment has no further pages."""
        return self.last_evaluated_key is None

    def __str__(self) -> str:
        return (
            f"ScanPage(segment={self.segment}, items={self.item_count}, "
            f"bytes={self.size_bytes}, last={self.is_last})"
        )


class EndOfStream:
    """
    Marker placed on a page queue after the final page.

    Use the module-level END_OF_STREAM instance; readers test for it with
    ``isinstance(entry, EndOfStream)`` so it can never be confused with a
    real page.
    """

    _instance: EndOfStream | None = None

    def __new__(cls) -> EndOfStream:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "END_OF_STREAM"


END_OF_STREAM = EndOfStream()

QueueEntry: TypeAlias = ScanPage | EndOfStream


@dataclass
class TransferStats:
    """
    Counters for a running transfer.

    Shared by the scan and write sides; every update goes through the
    ``record_*`` methods, which hold an internal lock.

    Attributes:
        pages_scanned: Pages forwarded to the consumer
        items_scanned: Items contained in those pages
        items_written: Items acknowledged by the destination
        scan_retries: Transient scan failures that were retried
        write_retries: Transient batch write failures that were retried
        unprocessed_reissues: Batch writes re-issued for unprocessed items
    """

    pages_scanned: int = 0
    items_scanned: int = 0
    items_written: int = 0
    scan_retries: int = 0
    write_retries: int = 0
    unprocessed_reissues: int = 0
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def record_page(self, page: ScanPage) -> None:
        with self._lock:
            self.pages_scanned += 1
            self.items_scanned += page.item_count

    def record_written(self, count: int) -> None:
        with self._lock:
            self.items_written += count

    def record_scan_retry(self) -> None:
        with self._lock:
            self.scan_retries += 1

    def record_write_retry(self) -> None:
        with self._lock:
            self.write_retries += 1

    def record_unprocessed_reissue(self) -> None:
        with self._lock:
            self.unprocessed_reissues += 1

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for JSON serialization.

        Returns:
            Dictionary representation of statistics
        """
        with self._lock:
            return {
                "pages_scanned": self.pages_scanned,
                "items_scanned": self.items_scanned,
                "items_written": self.items_written,
                "scan_retries": self.scan_retries,
                "write_retries": self.write_retries,
                "unprocessed_reissues": self.unprocessed_reissues,
            }


@dataclass(frozen=True)
class TransferOutcome:
    """
    Result of a transfer run.

    Attributes:
        success: Whether every owned segment was drained and every page accepted
        segments_total: Segments owned by this process
        segments_completed: Segments scanned to exhaustion
        pages_completed: Pages acknowledged by the consumer
        duration_seconds: Wall-clock time of the run
        stats: Counters collected during the run
        error: First fatal error observed, None on success
    """

    success: bool
    segments_total: int
    segments_completed: int
    pages_completed: int
    duration_seconds: float
    stats: TransferStats = field(default_factory=TransferStats)
    error: BaseException | None = None

    @property
    def error_message(self) -> str | None:
        """String form of the terminal error, if any."""
        return str(self.error) if self.error is not None else None
