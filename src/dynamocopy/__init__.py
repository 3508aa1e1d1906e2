"""
dynamocopy - Throughput-aware bulk copy of DynamoDB tables.

This library provides:
- Parallel segment scans paced by a capacity-unit token bucket
- Rate-limited batch writes with unprocessed-item re-issue
- Bounded hand-off of scanned pages to an external reader
- Destination table creation from the source's description
- Splitting one transfer across cooperating processes (sections)
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("dynamocopy-py")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from dynamocopy.bootstrap import TableCopier, TransferPlan
from dynamocopy.capacity import (
    READ_UNIT_SIZE_BYTES,
    WRITE_UNIT_SIZE_BYTES,
    RateBudget,
    item_size_bytes,
    read_capacity_units,
    write_capacity_units,
)
from dynamocopy.config import TransferSettings
from dynamocopy.consumers import (
    BoundedQueueConsumer,
    PageConsumer,
    PageQueue,
    TableWriteConsumer,
)
from dynamocopy.coordinator import ScanCoordinator
from dynamocopy.exceptions import (
    ConfigurationError,
    ConsumerClosedError,
    DestinationTableMissingError,
    DuplicateIndexNameError,
    DynamoCopyError,
    NullReadCapacityError,
    NullWriteCapacityError,
    RetriesExhaustedError,
    SectionOutOfRangeError,
    StoreError,
    TableCreationError,
    TableNotFoundError,
    TransferInterruptedError,
    TransientStoreError,
    UnprocessedItemsError,
    UnrecoverableStoreError,
)
from dynamocopy.models import (
    END_OF_STREAM,
    EndOfStream,
    Item,
    QueueEntry,
    ScanPage,
    SectionAssignment,
    Segment,
    TransferOutcome,
    TransferStats,
)
from dynamocopy.rate_limiter import RateLimiter
from dynamocopy.retry import RetryConfig, retry_call
from dynamocopy.scan import ScanOptions, ScanSegmentTask
from dynamocopy.schema import SchemaConversionOptions, SchemaConverter
from dynamocopy.segments import SegmentPlan, SegmentPolicy
from dynamocopy.stores import (
    DynamoDBTableStore,
    InMemoryTableStore,
    ScanResponse,
    TableStore,
)

__all__ = [
    "__version__",
    # Pipeline
    "TableCopier",
    "TransferPlan",
    "ScanCoordinator",
    "ScanSegmentTask",
    "ScanOptions",
    "SegmentPlan",
    "SegmentPolicy",
    "RateLimiter",
    "RateBudget",
    "RetryConfig",
    "retry_call",
    # Consumers
    "PageConsumer",
    "TableWriteConsumer",
    "BoundedQueueConsumer",
    "PageQueue",
    # Schema and configuration
    "SchemaConverter",
    "SchemaConversionOptions",
    "TransferSettings",
    # Stores
    "TableStore",
    "ScanResponse",
    "DynamoDBTableStore",
    "InMemoryTableStore",
    # Models
    "Item",
    "Segment",
    "SectionAssignment",
    "ScanPage",
    "EndOfStream",
    "END_OF_STREAM",
    "QueueEntry",
    "TransferStats",
    "TransferOutcome",
    # Capacity
    "READ_UNIT_SIZE_BYTES",
    "WRITE_UNIT_SIZE_BYTES",
    "item_size_bytes",
    "read_capacity_units",
    "write_capacity_units",
    # Exceptions
    "DynamoCopyError",
    "ConfigurationError",
    "NullReadCapacityError",
    "NullWriteCapacityError",
    "SectionOutOfRangeError",
    "DuplicateIndexNameError",
    "DestinationTableMissingError",
    "TableCreationError",
    "StoreError",
    "TransientStoreError",
    "UnrecoverableStoreError",
    "RetriesExhaustedError",
    "UnprocessedItemsError",
    "TableNotFoundError",
    "TransferInterruptedError",
    "ConsumerClosedError",
]
