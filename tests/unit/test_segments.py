"""
Unit tests for segment planning.
"""

from __future__ import annotations

import pytest

from dynamocopy.exceptions import (
    ConfigurationError,
    NullReadCapacityError,
    SectionOutOfRangeError,
)
from dynamocopy.models import SectionAssignment, Segment
from dynamocopy.segments import GIGABYTE, SegmentPlan, SegmentPolicy


class TestSegmentPolicy:
    """Tests for SegmentPolicy validation."""

    def test_defaults(self) -> None:
        policy = SegmentPolicy()
        assert policy.target_segment_bytes == GIGABYTE
        assert policy.max_segments == 64

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"target_segment_bytes": 0},
            {"capacity_units_per_segment": 0},
            {"max_segments": 0},
        ],
    )
    def test_rejects_invalid_values(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            SegmentPolicy(**kwargs)


class TestChooseSegmentCount:
    """Tests for SegmentPlan.choose_segment_count."""

    def test_missing_read_capacity_is_configuration_error(self) -> None:
        plan = SegmentPlan()
        with pytest.raises(NullReadCapacityError) as exc_info:
            plan.choose_segment_count(GIGABYTE, 100, None, "orders")
        assert isinstance(exc_info.value, ConfigurationError)
        assert "orders" in str(exc_info.value)

    def test_zero_read_capacity_is_configuration_error(self) -> None:
        with pytest.raises(NullReadCapacityError):
            SegmentPlan().choose_segment_count(GIGABYTE, 100, 0)

    def test_empty_table_gets_one_segment(self) -> None:
        assert SegmentPlan().choose_segment_count(0, 0, 5) == 1

    def test_grows_with_table_size(self) -> None:
        plan = SegmentPlan()
        assert plan.choose_segment_count(5 * GIGABYTE, 400, 10) == 5

    def test_grows_with_read_capacity(self) -> None:
        plan = SegmentPlan()
        assert plan.choose_segment_count(GIGABYTE, 400, 10_000) == 10

    def test_never_exceeds_ceiling(self) -> None:
        plan = SegmentPlan(SegmentPolicy(max_segments=16))
        assert plan.choose_segment_count(1024 * GIGABYTE, 400, 100_000) == 16

    def test_never_exceeds_estimated_item_count(self) -> None:
        plan = SegmentPlan()
        assert plan.choose_segment_count(800, 400, 10_000) == 2

    def test_monotonic_in_size_and_capacity(self) -> None:
        plan = SegmentPlan(SegmentPolicy(max_segments=32))
        by_size = [plan.choose_segment_count(n * GIGABYTE, 400, 10) for n in range(0, 50, 5)]
        by_capacity = [plan.choose_segment_count(GIGABYTE, 400, c) for c in range(1, 50_000, 5000)]

        assert by_size == sorted(by_size)
        assert by_capacity == sorted(by_capacity)
        assert all(1 <= count <= 32 for count in by_size + by_capacity)

    def test_from_table_description(self) -> None:
        description = {
            "TableName": "orders",
            "TableSizeBytes": 3 * GIGABYTE,
            "ItemCount": 3_000_000,
            "ProvisionedThroughput": {"ReadCapacityUnits": 100, "WriteCapacityUnits": 100},
        }
        assert SegmentPlan().segment_count_for_table(description) == 3

    def test_description_without_throughput_fails(self) -> None:
        description = {"TableName": "orders", "TableSizeBytes": 10, "ItemCount": 1}
        with pytest.raises(NullReadCapacityError):
            SegmentPlan().segment_count_for_table(description)


class TestSegmentsOwnedBy:
    """Tests for dealing segments out to sections."""

    @pytest.mark.parametrize("total_sections", [1, 2, 3, 5, 8])
    @pytest.mark.parametrize("segment_count", [1, 4, 7, 12, 64])
    def test_sections_partition_segments(self, total_sections: int, segment_count: int) -> None:
        """Every segment is owned by exactly one section."""
        owned = [
            SegmentPlan.segments_owned_by(section, total_sections, segment_count)
            for section in range(total_sections)
        ]

        union: set[int] = set()
        for segment_set in owned:
            assert union.isdisjoint(segment_set)
            union |= segment_set
        assert union == set(range(segment_count))

    def test_round_robin_assignment(self) -> None:
        assert SegmentPlan.segments_owned_by(1, 3, 10) == {1, 4, 7}

    def test_section_beyond_total_is_range_error(self) -> None:
        with pytest.raises(SectionOutOfRangeError):
            SegmentPlan.segments_owned_by(3, 3, 10)

    def test_negative_section_is_range_error(self) -> None:
        with pytest.raises(SectionOutOfRangeError):
            SegmentPlan.segments_owned_by(-1, 3, 10)

    def test_owned_segments_are_sorted_segment_objects(self) -> None:
        segments = SegmentPlan().owned_segments(SectionAssignment(0, 2), 5)
        assert segments == [Segment(0, 5), Segment(2, 5), Segment(4, 5)]

    def test_section_may_own_nothing(self) -> None:
        assert SegmentPlan().owned_segments(SectionAssignment(3, 4), 2) == []
