"""
Observability utilities for dynamocopy.

Tracing support and standard attribute definitions shared by the scan
side, the write side and the table stores.

Note:
    OpenTelemetry is an optional dependency (``pip install dynamocopy-py[telemetry]``).
    Everything in this module works without it; tracers simply become no-ops.
"""

from dynamocopy.observability.attributes import (
    ATTR_CAPACITY_UNITS,
    ATTR_CONSISTENT_READ,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_DESTINATION_TABLE,
    ATTR_ERROR_TYPE,
    ATTR_ITEM_COUNT,
    ATTR_PAGE_BYTES,
    ATTR_SECTION,
    ATTR_SEGMENT,
    ATTR_SOURCE_TABLE,
    ATTR_TABLE_NAME,
    ATTR_TOTAL_SEGMENTS,
)
from dynamocopy.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)
from dynamocopy.observability.tracing import (
    OTEL_AVAILABLE,
    get_tracer,
    should_trace,
)

__all__ = [
    # Tracing
    "OTEL_AVAILABLE",
    "get_tracer",
    "should_trace",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    # Attributes - Database
    "ATTR_DB_SYSTEM",
    "ATTR_DB_OPERATION",
    "ATTR_TABLE_NAME",
    # Attributes - Scan
    "ATTR_SEGMENT",
    "ATTR_TOTAL_SEGMENTS",
    "ATTR_SECTION",
    "ATTR_CONSISTENT_READ",
    # Attributes - Page
    "ATTR_ITEM_COUNT",
    "ATTR_PAGE_BYTES",
    "ATTR_CAPACITY_UNITS",
    # Attributes - Transfer
    "ATTR_SOURCE_TABLE",
    "ATTR_DESTINATION_TABLE",
    "ATTR_ERROR_TYPE",
]
