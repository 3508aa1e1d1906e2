"""
Unit tests for InMemoryTableStore.
"""

from __future__ import annotations

import pytest

from dynamocopy.exceptions import TableCreationError, TableNotFoundError
from dynamocopy.stores.in_memory import InMemoryTableStore
from dynamocopy.stores.interface import MAX_BATCH_WRITE_ITEMS, TableStore


def drain_segment(store: InMemoryTableStore, table: str, segment: int, total: int) -> list:
    items: list = []
    start = None
    while True:
        response = store.scan(table, segment, total, exclusive_start_key=start)
        items.extend(response.items)
        if response.last_evaluated_key is None:
            return items
        start = response.last_evaluated_key


class TestTables:
    """Tests for table lifecycle."""

    def test_is_table_store(self, memory_store: InMemoryTableStore) -> None:
        assert isinstance(memory_store, TableStore)

    def test_rejects_bad_page_size(self) -> None:
        with pytest.raises(ValueError):
            InMemoryTableStore(page_size=0)

    def test_describe_reports_counts(self, memory_store: InMemoryTableStore, source_table: str) -> None:
        description = memory_store.describe_table(source_table)
        assert description["TableName"] == source_table
        assert description["TableStatus"] == "ACTIVE"
        assert description["ItemCount"] == 120
        assert description["TableSizeBytes"] > 0
        assert description["ProvisionedThroughput"]["ReadCapacityUnits"] == 1000

    def test_on_demand_table_has_no_throughput(self, memory_store: InMemoryTableStore) -> None:
        memory_store.add_table("ondemand", hash_key="id", read_capacity=None, write_capacity=None)
        assert "ProvisionedThroughput" not in memory_store.describe_table("ondemand")

    def test_describe_missing_table(self, memory_store: InMemoryTableStore) -> None:
        with pytest.raises(TableNotFoundError) as exc_info:
            memory_store.describe_table("nope")
        assert exc_info.value.table_name == "nope"

    def test_create_existing_table_fails(self, memory_store: InMemoryTableStore, source_table: str) -> None:
        with pytest.raises(TableCreationError):
            memory_store.add_table(source_table, hash_key="id")

    def test_wait_for_missing_table_fails(self, memory_store: InMemoryTableStore) -> None:
        with pytest.raises(TableCreationError):
            memory_store.wait_until_exists("nope")

    def test_put_overwrites_by_key(self, memory_store: InMemoryTableStore, make_item) -> None:
        memory_store.add_table("t", hash_key="id")
        memory_store.put_items("t", [make_item(1)])
        replacement = dict(make_item(1), n={"N": "99"})
        memory_store.put_items("t", [replacement])
        assert memory_store.items("t") == [replacement]

    def test_item_without_key_is_rejected(self, memory_store: InMemoryTableStore) -> None:
        memory_store.add_table("t", hash_key="id")
        with pytest.raises(ValueError, match="missing key attribute"):
            memory_store.put_items("t", [{"other": {"S": "x"}}])


class TestScan:
    """Tests for segment scans."""

    @pytest.mark.parametrize("total_segments", [1, 3, 8])
    def test_segments_partition_the_table(
        self,
        memory_store: InMemoryTableStore,
        source_table: str,
        source_items: list,
        ids,
        total_segments: int,
    ) -> None:
        seen: list = []
        for segment in range(total_segments):
            seen.extend(drain_segment(memory_store, source_table, segment, total_segments))
        assert ids(seen) == ids(source_items)

    def test_pages_respect_page_size(self, memory_store: InMemoryTableStore, source_table: str) -> None:
        response = memory_store.scan(source_table, 0, 1)
        assert len(response.items) == 7
        assert response.last_evaluated_key is not None
        assert set(response.last_evaluated_key) == {"id"}

    def test_limit_smaller_than_page_size(self, memory_store: InMemoryTableStore, source_table: str) -> None:
        response = memory_store.scan(source_table, 0, 1, limit=3)
        assert len(response.items) == 3

    def test_empty_segment_returns_single_empty_page(self, memory_store: InMemoryTableStore) -> None:
        memory_store.add_table("empty", hash_key="id")
        response = memory_store.scan("empty", 0, 4)
        assert response.items == []
        assert response.last_evaluated_key is None

    def test_segment_of_matches_scan(
        self, memory_store: InMemoryTableStore, source_table: str, make_item
    ) -> None:
        item = make_item(42)
        segment = memory_store.segment_of(source_table, item, 4)
        scanned = drain_segment(memory_store, source_table, segment, 4)
        assert item in scanned

    def test_reports_consumed_capacity(self, memory_store: InMemoryTableStore, source_table: str) -> None:
        eventual = memory_store.scan(source_table, 0, 1).consumed_capacity
        consistent = memory_store.scan(source_table, 0, 1, consistent_read=True).consumed_capacity
        assert consistent == 2 * eventual


class TestBatchWrite:
    """Tests for batch writes."""

    def test_writes_all_items(self, memory_store: InMemoryTableStore, destination_table: str, make_item) -> None:
        items = [make_item(i) for i in range(MAX_BATCH_WRITE_ITEMS)]
        assert memory_store.batch_write(destination_table, items) == []
        assert len(memory_store.items(destination_table)) == MAX_BATCH_WRITE_ITEMS

    def test_rejects_oversized_batch(self, memory_store: InMemoryTableStore, destination_table: str, make_item) -> None:
        items = [make_item(i) for i in range(MAX_BATCH_WRITE_ITEMS + 1)]
        with pytest.raises(ValueError, match="at most 25"):
            memory_store.batch_write(destination_table, items)
