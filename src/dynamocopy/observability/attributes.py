"""
Standard span attributes for dynamocopy.

Attribute constants used by every traced component so spans from the scan
side and the write side can be correlated. Database attributes follow the
OpenTelemetry semantic conventions.

Example:
    >>> from dynamocopy.observability.attributes import ATTR_SEGMENT, ATTR_ITEM_COUNT
    >>>
    >>> with tracer.span(
    ...     "dynamocopy.scan.page",
    ...     {ATTR_SEGMENT: 3, ATTR_ITEM_COUNT: len(items)},
    ... ):
    ...     pass
"""

# =============================================================================
# Database Attributes (OTEL semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (e.g., 'dynamodb')."""

ATTR_DB_OPERATION = "db.operation"
"""Store operation name (e.g., 'scan', 'batch_write')."""

ATTR_TABLE_NAME = "aws.dynamodb.table_names"
"""Table the operation targets (string)."""

# =============================================================================
# Scan Attributes
# =============================================================================

ATTR_SEGMENT = "dynamocopy.segment"
"""Index of the scan segment (integer)."""

ATTR_TOTAL_SEGMENTS = "dynamocopy.total_segments"
"""Number of segments the table scan is split into (integer)."""

ATTR_SECTION = "dynamocopy.section"
"""Section handled by this process (integer)."""

ATTR_CONSISTENT_READ = "dynamocopy.consistent_read"
"""Whether the scan used strongly consistent reads (boolean)."""

# =============================================================================
# Page Attributes
# =============================================================================

ATTR_ITEM_COUNT = "dynamocopy.page.item_count"
"""Number of items in a page (integer)."""

ATTR_PAGE_BYTES = "dynamocopy.page.size_bytes"
"""Computed size of a page in bytes (integer)."""

ATTR_CAPACITY_UNITS = "dynamocopy.capacity_units"
"""Capacity units charged for an operation (float)."""

# =============================================================================
# Transfer Attributes
# =============================================================================

ATTR_SOURCE_TABLE = "dynamocopy.source_table"
"""Table being copied from (string)."""

ATTR_DESTINATION_TABLE = "dynamocopy.destination_table"
"""Table being copied to (string)."""

ATTR_ERROR_TYPE = "error.type"
"""Exception class name when an operation fails (string)."""
