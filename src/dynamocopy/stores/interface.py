"""
Table store interface and core data structures.

A table store is the only thing the transfer pipeline talks to over the
network. Implementations translate their client's failures into the
dynamocopy error taxonomy:

- TransientStoreError for throttling and timeouts (retried by callers)
- TableNotFoundError when a table does not exist
- UnrecoverableStoreError for everything else

This module provides:
- ScanResponse: One page returned by a segment scan
- TableStore: Abstract base class for table store implementations
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from dynamocopy.models import Item, ScanKey

# Maximum number of put requests the store accepts in one batch write.
MAX_BATCH_WRITE_ITEMS = 25


@dataclass(frozen=True)
class ScanResponse:
    """
    One page of a segment scan, as returned by the store.

    Attributes:
        items: Items in store order
        last_evaluated_key: Continuation token, None when the segment is done
        consumed_capacity: Capacity units the store charged, if reported
    """

    items: list[Item] = field(default_factory=list)
    last_evaluated_key: ScanKey | None = None
    consumed_capacity: float | None = None


class TableStore(ABC):
    """
    Abstract base class for table stores.

    Scan and batch write calls must be safe to invoke from many threads at
    once; the transfer runs one scan thread per segment and a pool of write
    threads against the same store instance.
    """

    @abstractmethod
    def describe_table(self, table_name: str) -> dict[str, Any]:
        """
        Describe a table.

        Args:
            table_name: Table to describe

        Returns:
            The table description (the store's ``Table`` structure)

        Raises:
            TableNotFoundError: If the table does not exist
        """
        pass

    @abstractmethod
    def create_table(self, request: Mapping[str, Any]) -> None:
        """
        Issue a create table request.

        Args:
            request: Create request as produced by the SchemaConverter
        """
        pass

    @abstractmethod
    def wait_until_exists(self, table_name: str) -> None:
        """
        Block until a newly created table is ready for writes.

        Raises:
            TableCreationError: If the table never became ready
        """
        pass

    @abstractmethod
    def scan(
        self,
        table_name: str,
        segment: int,
        total_segments: int,
        exclusive_start_key: ScanKey | None = None,
        consistent_read: bool = False,
        limit: int | None = None,
    ) -> ScanResponse:
        """
        Read one page of one segment.

        Args:
            table_name: Table to scan
            segment: Segment index
            total_segments: Number of segments the scan is split into
            exclusive_start_key: Continuation token from the previous page
            consistent_read: Use strongly consistent reads
            limit: Maximum items per page (None for store default)

        Returns:
            ScanResponse for the page
        """
        pass

    @abstractmethod
    def batch_write(self, table_name: str, items: Sequence[Item]) -> list[Item]:
        """
        Put up to MAX_BATCH_WRITE_ITEMS items.

        Args:
            table_name: Destination table
            items: Items to put (blind overwrite)

        Returns:
            Items the store did not apply; empty when all were written
        """
        pass
