"""
TableCopier - wires a complete table-to-table transfer.

Runs the pre-flight steps (describe both tables, create the destination if
asked to, derive the segment count and both throughput budgets) and then
drives a ScanCoordinator into a TableWriteConsumer.

Usage:
    >>> settings = TransferSettings.build(
    ...     source_table="orders",
    ...     destination_table="orders-copy",
    ...     read_throughput_ratio=0.5,
    ...     write_throughput_ratio=0.5,
    ... )
    >>> copier = TableCopier(source_store, destination_store, settings)
    >>> outcome = copier.transfer()
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from dynamocopy.capacity import READ_UNIT_SIZE_BYTES, WRITE_UNIT_SIZE_BYTES, RateBudget
from dynamocopy.config import TransferSettings
from dynamocopy.consumers.dynamodb import TableWriteConsumer
from dynamocopy.consumers.interface import PageConsumer
from dynamocopy.consumers.queue import BoundedQueueConsumer
from dynamocopy.coordinator import ScanCoordinator
from dynamocopy.exceptions import (
    DestinationTableMissingError,
    NullWriteCapacityError,
    TableNotFoundError,
    TransferInterruptedError,
)
from dynamocopy.models import Segment, TransferOutcome, TransferStats
from dynamocopy.observability import (
    ATTR_DESTINATION_TABLE,
    ATTR_SECTION,
    ATTR_SOURCE_TABLE,
    ATTR_TOTAL_SEGMENTS,
    Tracer,
    create_tracer,
)
from dynamocopy.rate_limiter import RateLimiter
from dynamocopy.retry import RetryConfig
from dynamocopy.schema import SchemaConverter
from dynamocopy.segments import SegmentPlan
from dynamocopy.stores.interface import TableStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferPlan:
    """
    Everything decided before the first page is read.

    Attributes:
        source_description: Description of the source table
        segment_count: Segments the source scan is split into
        segments: Segments owned by this process's section
        read_budget: Scan-side throughput ceiling
        destination_description: Description of the destination table, None
            when copying to a queue
        write_budget: Write-side throughput ceiling, None when copying to a
            queue
    """

    source_description: Mapping[str, Any]
    segment_count: int
    segments: list[Segment] = field(default_factory=list)
    read_budget: RateBudget | None = None
    destination_description: Mapping[str, Any] | None = None
    write_budget: RateBudget | None = None


def _provisioned(description: Mapping[str, Any], key: str) -> float | None:
    throughput = description.get("ProvisionedThroughput") or {}
    value = throughput.get(key)
    return float(value) if value else None


class TableCopier:
    """
    Copies one table into another according to TransferSettings.

    The read limiter is sized from the source's provisioned read capacity
    times the read ratio; the write limiter from the destination's
    provisioned write capacity times the write ratio. The two never share
    tokens.

    Attributes:
        settings: The transfer settings
    """

    def __init__(
        self,
        source_store: TableStore,
        destination_store: TableStore | None,
        settings: TransferSettings,
        segment_plan: SegmentPlan | None = None,
        retry: RetryConfig | None = None,
        burst_seconds: float = 1.0,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the copier.

        Args:
            source_store: Store holding the source table
            destination_store: Store holding the destination table (may be
                None when only copy_to_queue is used)
            settings: Validated transfer settings
            segment_plan: Segment count policy (uses defaults if None)
            retry: Backoff policy for scans and writes (uses defaults if None)
            burst_seconds: Seconds of idle refill each limiter may bank
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable OpenTelemetry tracing.
                Ignored if tracer is explicitly provided.
        """
        self.settings = settings
        self._source = source_store
        self._destination = destination_store
        self._segment_plan = segment_plan or SegmentPlan()
        self._retry = retry or RetryConfig()
        self._burst_seconds = burst_seconds
        self._enable_tracing = enable_tracing
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        # An explicit tracer is shared with the coordinator and consumer.
        self._component_tracer = tracer
        self._coordinator: ScanCoordinator | None = None
        self._cancelled = threading.Event()

    @property
    def coordinator(self) -> ScanCoordinator | None:
        """Coordinator of the current or last run."""
        return self._coordinator

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """
        Ask the transfer to stop.

        Before the scan starts, the next pre-flight step raises
        TransferInterruptedError; once it runs, the coordinator is cancelled.
        A cancelled copier stays cancelled. Safe to call from any thread and
        from signal handlers.
        """
        self._cancelled.set()
        coordinator = self._coordinator
        if coordinator is not None:
            coordinator.cancel()

    def _check_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise TransferInterruptedError("Transfer cancelled before the scan started")

    # -------------------------------------------------------------------------
    # Pre-flight
    # -------------------------------------------------------------------------

    def plan_scan(self) -> TransferPlan:
        """
        Describe the source and decide segments and the read budget.

        Raises:
            TableNotFoundError: If the source table does not exist
            NullReadCapacityError: If the source has no provisioned read capacity
        """
        settings = self.settings
        self._check_cancelled()
        source = self._source.describe_table(settings.source_table)
        segment_count = self._segment_plan.segment_count_for_table(source)
        segments = self._segment_plan.owned_segments(settings.section_assignment(), segment_count)
        read_budget = RateBudget.from_provisioned(
            _provisioned(source, "ReadCapacityUnits") or 0.0,
            settings.read_throughput_ratio,
            READ_UNIT_SIZE_BYTES,
        )
        return TransferPlan(
            source_description=source,
            segment_count=segment_count,
            segments=segments,
            read_budget=read_budget,
        )

    def prepare_destination(self, source_description: Mapping[str, Any]) -> dict[str, Any]:
        """
        Describe the destination, creating it first if configured to.

        Returns:
            The destination table description

        Raises:
            DestinationTableMissingError: If it is missing and creation is off
            TableCreationError: If creation failed or it never became ready
        """
        if self._destination is None:
            raise ValueError("TableCopier needs a destination store to copy into a table")

        name = self.settings.destination_table
        self._check_cancelled()
        try:
            return self._destination.describe_table(name)
        except TableNotFoundError as e:
            if not self.settings.create_destination:
                raise DestinationTableMissingError(name) from e

        converter = SchemaConverter(self.settings.schema_options())
        request = converter.convert(source_description, name)
        logger.info(
            "Destination table %s does not exist, creating it",
            name,
            extra={"destination": name},
        )
        self._check_cancelled()
        self._destination.create_table(request)
        self._destination.wait_until_exists(name)
        self._check_cancelled()
        return self._destination.describe_table(name)

    def plan(self) -> TransferPlan:
        """
        Run every pre-flight step for a table-to-table transfer.

        Raises:
            ConfigurationError: On any pre-flight failure
        """
        scan_plan = self.plan_scan()
        destination = self.prepare_destination(scan_plan.source_description)
        self._check_cancelled()

        write_capacity = _provisioned(destination, "WriteCapacityUnits")
        if write_capacity is None:
            raise NullWriteCapacityError(self.settings.destination_table)
        write_budget = RateBudget.from_provisioned(
            write_capacity,
            self.settings.write_throughput_ratio,
            WRITE_UNIT_SIZE_BYTES,
        )
        return TransferPlan(
            source_description=scan_plan.source_description,
            segment_count=scan_plan.segment_count,
            segments=scan_plan.segments,
            read_budget=scan_plan.read_budget,
            destination_description=destination,
            write_budget=write_budget,
        )

    # -------------------------------------------------------------------------
    # Runs
    # -------------------------------------------------------------------------

    def transfer(self) -> TransferOutcome:
        """
        Copy the owned segments of the source into the destination table.

        Returns:
            Successful TransferOutcome

        Raises:
            ConfigurationError: On a pre-flight failure
            UnrecoverableStoreError: On a fatal scan or write error
            TransferInterruptedError: If the transfer was cancelled
        """
        settings = self.settings
        with self._tracer.span(
            "dynamocopy.bootstrap.transfer",
            {
                ATTR_SOURCE_TABLE: settings.source_table,
                ATTR_DESTINATION_TABLE: settings.destination_table,
                ATTR_SECTION: settings.section,
            },
        ) as span:
            plan = self.plan()
            if span is not None:
                span.set_attribute(ATTR_TOTAL_SEGMENTS, plan.segment_count)

            assert self._destination is not None and plan.write_budget is not None
            stats = TransferStats()
            consumer = TableWriteConsumer(
                self._destination,
                settings.destination_table,
                RateLimiter(plan.write_budget.units_per_second, self._burst_seconds),
                max_workers=settings.max_write_threads,
                retry=self._retry,
                stats=stats,
                tracer=self._component_tracer,
                enable_tracing=self._enable_tracing,
            )
            return self._run(plan, consumer, stats, settings.destination_table)

    def copy_to_queue(self, consumer: BoundedQueueConsumer) -> TransferOutcome:
        """
        Scan the owned segments of the source into a bounded queue.

        The queue ends with END_OF_STREAM whether the scan succeeds or fails.
        No destination table is described or created.
        """
        try:
            plan = self.plan_scan()
        except BaseException:
            consumer.shutdown(drain=False)
            raise
        return self._run(plan, consumer, TransferStats(), "queue")

    def _run(
        self,
        plan: TransferPlan,
        consumer: PageConsumer,
        stats: TransferStats,
        destination: str,
    ) -> TransferOutcome:
        settings = self.settings
        if self._cancelled.is_set():
            consumer.shutdown(drain=False)
            raise TransferInterruptedError("Transfer cancelled before the scan started")
        if not plan.segments:
            logger.warning(
                "Section %d of %d owns none of the %d segments, nothing to copy",
                settings.section,
                settings.total_sections,
                plan.segment_count,
            )
            consumer.shutdown(drain=True)
            return TransferOutcome(
                success=True,
                segments_total=0,
                segments_completed=0,
                pages_completed=0,
                duration_seconds=0.0,
                stats=stats,
            )

        assert plan.read_budget is not None
        self._coordinator = ScanCoordinator(
            self._source,
            settings.source_table,
            plan.segments,
            RateLimiter(plan.read_budget.units_per_second, self._burst_seconds),
            options=settings.scan_options(self._retry),
            stats=stats,
            tracer=self._component_tracer,
            enable_tracing=self._enable_tracing,
        )
        if self._cancelled.is_set():
            # cancel() ran before this coordinator existed.
            self._coordinator.cancel()

        logger.info(
            "Starting transfer from %s to %s",
            settings.source_table,
            destination,
            extra={
                "source": settings.source_table,
                "destination": destination,
                "segment_count": plan.segment_count,
                "owned_segments": [s.index for s in plan.segments],
                "read_units_per_second": plan.read_budget.units_per_second,
                "write_units_per_second": (
                    plan.write_budget.units_per_second if plan.write_budget else None
                ),
            },
        )
        outcome = self._coordinator.run(consumer)
        logger.info(
            "Finished transfer from %s to %s in %.1fs",
            settings.source_table,
            destination,
            outcome.duration_seconds,
            extra={"source": settings.source_table, "destination": destination, **stats.to_dict()},
        )
        return outcome


__all__ = [
    "TableCopier",
    "TransferPlan",
]
