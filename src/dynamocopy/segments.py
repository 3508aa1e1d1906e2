"""
Parallel scan planning.

Decides how many segments a table scan is split into and which of those
segments a process owns when a transfer is spread across several processes
(sections).

This module provides:
- SegmentPolicy: Tuning knobs for the segment count estimate
- SegmentPlan: choose_segment_count / segments_owned_by / owned_segments
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from dynamocopy.exceptions import NullReadCapacityError
from dynamocopy.models import SectionAssignment, Segment

logger = logging.getLogger(__name__)

GIGABYTE = 1024 * 1024 * 1024


@dataclass(frozen=True)
class SegmentPolicy:
    """
    Tuning for the segment count estimate.

    The estimate grows with both table size and read capacity, and is
    clamped to ``[1, max_segments]``. It never exceeds the estimated number
    of items, since an empty segment does no useful work.

    Attributes:
        target_segment_bytes: Data one segment should scan at most
        capacity_units_per_segment: Read capacity one sequential segment
            scan can comfortably consume per second
        max_segments: Hard ceiling on parallelism

    Example:
        >>> policy = SegmentPolicy(target_segment_bytes=256 * 1024 * 1024, max_segments=16)
        >>> plan = SegmentPlan(policy)
    """

    target_segment_bytes: int = GIGABYTE
    capacity_units_per_segment: float = 1000.0
    max_segments: int = 64

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.target_segment_bytes < 1:
            raise ValueError(
                f"target_segment_bytes must be positive, got {self.target_segment_bytes}"
            )
        if self.capacity_units_per_segment <= 0:
            raise ValueError(
                "capacity_units_per_segment must be positive, "
                f"got {self.capacity_units_per_segment}"
            )
        if self.max_segments < 1:
            raise ValueError(f"max_segments must be >= 1, got {self.max_segments}")


@dataclass(frozen=True)
class SegmentPlan:
    """
    Chooses segment counts and section ownership.

    Example:
        >>> plan = SegmentPlan()
        >>> count = plan.choose_segment_count(5 * GIGABYTE, 400, 2000)
        >>> sorted(plan.segments_owned_by(0, 2, count))
        [0, 2, 4]
    """

    policy: SegmentPolicy = field(default_factory=SegmentPolicy)

    def choose_segment_count(
        self,
        table_size_bytes: int,
        average_item_size_bytes: int,
        read_capacity: float | None,
        table_name: str = "<source>",
    ) -> int:
        """
        Estimate how many segments a scan of the table should use.

        Args:
            table_size_bytes: Reported table size
            average_item_size_bytes: Reported or estimated item size
            read_capacity: Provisioned read capacity units, None or 0 when
                the table has none (on-demand)
            table_name: Used in the error message only

        Returns:
            Segment count, at least 1 and at most ``policy.max_segments``

        Raises:
            NullReadCapacityError: If the table has no read capacity
        """
        if not read_capacity:
            raise NullReadCapacityError(table_name)

        policy = self.policy
        by_size = math.ceil(max(table_size_bytes, 0) / policy.target_segment_bytes)
        by_capacity = math.ceil(read_capacity / policy.capacity_units_per_segment)
        count = max(1, by_size, by_capacity)

        if average_item_size_bytes > 0 and table_size_bytes > 0:
            estimated_items = max(1, table_size_bytes // average_item_size_bytes)
            count = min(count, estimated_items)

        count = min(count, policy.max_segments)
        logger.debug(
            "Chose %d segments for table %s",
            count,
            table_name,
            extra={
                "table_size_bytes": table_size_bytes,
                "average_item_size_bytes": average_item_size_bytes,
                "read_capacity": read_capacity,
            },
        )
        return count

    def segment_count_for_table(self, description: Mapping[str, Any]) -> int:
        """
        Estimate the segment count from a table description.

        Args:
            description: The store's table description (``Table`` of a
                describe call)

        Returns:
            Segment count

        Raises:
            NullReadCapacityError: If the table has no read capacity
        """
        size = int(description.get("TableSizeBytes") or 0)
        item_count = int(description.get("ItemCount") or 0)
        throughput = description.get("ProvisionedThroughput") or {}
        average = size // item_count if item_count else 0
        return self.choose_segment_count(
            size,
            average,
            throughput.get("ReadCapacityUnits"),
            description.get("TableName", "<source>"),
        )

    @staticmethod
    def segments_owned_by(section: int, total_sections: int, segment_count: int) -> set[int]:
        """
        Segment indices owned by one section.

        Args:
            section: Section number, ``0 <= section < total_sections``
            total_sections: Number of cooperating processes
            segment_count: Total segments the table is split into

        Returns:
            ``{i in [0, segment_count) : i % total_sections == section}``

        Raises:
            SectionOutOfRangeError: If section is outside [0, total_sections)
        """
        assignment = SectionAssignment(section, total_sections)
        return {i for i in range(segment_count) if assignment.owns(i)}

    def owned_segments(self, assignment: SectionAssignment, segment_count: int) -> list[Segment]:
        """Segments owned by ``assignment``, in index order."""
        if segment_count < 1:
            raise ValueError(f"segment_count must be >= 1, got {segment_count}")
        owned = self.segments_owned_by(
            assignment.section, assignment.total_sections, segment_count
        )
        return [Segment(i, segment_count) for i in sorted(owned)]


__all__ = [
    "GIGABYTE",
    "SegmentPolicy",
    "SegmentPlan",
]
