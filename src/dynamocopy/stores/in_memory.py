"""
In-memory table store implementation.

Useful for testing, examples and dry runs. Not suitable for production as
all tables are lost when the process terminates.
"""

from __future__ import annotations

import copy
import json
import threading
import zlib
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from dynamocopy.capacity import item_size_bytes, read_capacity_units
from dynamocopy.exceptions import TableCreationError, TableNotFoundError
from dynamocopy.models import Item, ScanKey
from dynamocopy.stores.interface import MAX_BATCH_WRITE_ITEMS, ScanResponse, TableStore

DEFAULT_PAGE_SIZE = 100


@dataclass
class _Table:
    description: dict[str, Any]
    key_names: tuple[str, ...]
    items: dict[str, Item] = field(default_factory=dict)

    def key_of(self, item: Mapping[str, Any]) -> str:
        try:
            key = {name: item[name] for name in self.key_names}
        except KeyError as e:
            raise ValueError(f"Item is missing key attribute {e}") from e
        return json.dumps(key, sort_keys=True)


class InMemoryTableStore(TableStore):
    """
    In-memory implementation of the table store.

    Items are distributed over scan segments by a stable hash of their
    primary key, so every item belongs to exactly one segment for a given
    segment count. Pages hold at most ``page_size`` items and segments are
    scanned in primary-key order.

    Thread-safety:
        Uses a lock around all table access. Safe for concurrent use by
        scan and write threads.

    Example:
        >>> store = InMemoryTableStore()
        >>> store.add_table("orders", hash_key="id", read_capacity=10, write_capacity=10)
        >>> store.put_items("orders", [{"id": {"S": "a"}}])

    Attributes:
        _tables: Dictionary mapping table name to its data
        _page_size: Maximum items per scan page
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        if page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {page_size}")
        self._tables: dict[str, _Table] = {}
        self._page_size = page_size
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Fixture helpers
    # -------------------------------------------------------------------------

    def add_table(
        self,
        table_name: str,
        hash_key: str,
        range_key: str | None = None,
        read_capacity: int | None = 5,
        write_capacity: int | None = 5,
        **extra: Any,
    ) -> None:
        """
        Create a table from a key description.

        Args:
            table_name: Name of the table
            hash_key: Partition key attribute (string type)
            range_key: Optional sort key attribute (string type)
            read_capacity: Provisioned read units, None for on-demand
            write_capacity: Provisioned write units, None for on-demand
            **extra: Extra description fields (e.g. GlobalSecondaryIndexes)
        """
        key_schema = [{"AttributeName": hash_key, "KeyType": "HASH"}]
        attributes = [{"AttributeName": hash_key, "AttributeType": "S"}]
        if range_key is not None:
            key_schema.append({"AttributeName": range_key, "KeyType": "RANGE"})
            attributes.append({"AttributeName": range_key, "AttributeType": "S"})

        request: dict[str, Any] = {
            "TableName": table_name,
            "KeySchema": key_schema,
            "AttributeDefinitions": attributes,
            **extra,
        }
        if read_capacity is not None or write_capacity is not None:
            request["ProvisionedThroughput"] = {
                "ReadCapacityUnits": read_capacity,
                "WriteCapacityUnits": write_capacity,
            }
        self.create_table(request)

    def put_items(self, table_name: str, items: Iterable[Item]) -> None:
        """Put items directly, bypassing batch limits."""
        with self._lock:
            table = self._get(table_name)
            for item in items:
                table.items[table.key_of(item)] = copy.deepcopy(item)

    def items(self, table_name: str) -> list[Item]:
        """Return a copy of every item in a table, in key order."""
        with self._lock:
            table = self._get(table_name)
            return [copy.deepcopy(table.items[k]) for k in sorted(table.items)]

    def has_table(self, table_name: str) -> bool:
        with self._lock:
            return table_name in self._tables

    def segment_of(self, table_name: str, item: Mapping[str, Any], total_segments: int) -> int:
        """Segment an item is scanned in for a given segment count."""
        with self._lock:
            key = self._get(table_name).key_of(item)
        return zlib.crc32(key.encode("utf-8")) % total_segments

    # -------------------------------------------------------------------------
    # TableStore
    # -------------------------------------------------------------------------

    def _get(self, table_name: str) -> _Table:
        try:
            return self._tables[table_name]
        except KeyError:
            raise TableNotFoundError(table_name) from None

    def describe_table(self, table_name: str) -> dict[str, Any]:
        with self._lock:
            table = self._get(table_name)
            description = copy.deepcopy(table.description)
            description["ItemCount"] = len(table.items)
            description["TableSizeBytes"] = sum(
                item_size_bytes(item) for item in table.items.values()
            )
            return description

    def create_table(self, request: Mapping[str, Any]) -> None:
        table_name = request["TableName"]
        with self._lock:
            if table_name in self._tables:
                raise TableCreationError(table_name, "table already exists")
            description = copy.deepcopy(dict(request))
            description["TableStatus"] = "ACTIVE"
            key_names = tuple(k["AttributeName"] for k in request["KeySchema"])
            self._tables[table_name] = _Table(description=description, key_names=key_names)

    def wait_until_exists(self, table_name: str) -> None:
        with self._lock:
            if table_name not in self._tables:
                raise TableCreationError(table_name, "table was never created")

    def scan(
        self,
        table_name: str,
        segment: int,
        total_segments: int,
        exclusive_start_key: ScanKey | None = None,
        consistent_read: bool = False,
        limit: int | None = None,
    ) -> ScanResponse:
        page_size = min(limit or self._page_size, self._page_size)
        with self._lock:
            table = self._get(table_name)
            keys = sorted(
                k
                for k in table.items
                if zlib.crc32(k.encode("utf-8")) % total_segments == segment
            )
            if exclusive_start_key is not None:
                start = table.key_of(exclusive_start_key)
                keys = [k for k in keys if k > start]

            page_keys = keys[:page_size]
            items = [copy.deepcopy(table.items[k]) for k in page_keys]
            last_key = None
            if len(keys) > page_size:
                last = table.items[page_keys[-1]]
                last_key = {name: copy.deepcopy(last[name]) for name in table.key_names}

        size = sum(item_size_bytes(item) for item in items)
        return ScanResponse(
            items=items,
            last_evaluated_key=last_key,
            consumed_capacity=read_capacity_units(size, consistent_read),
        )

    def batch_write(self, table_name: str, items: Sequence[Item]) -> list[Item]:
        if len(items) > MAX_BATCH_WRITE_ITEMS:
            raise ValueError(
                f"batch_write accepts at most {MAX_BATCH_WRITE_ITEMS} items, got {len(items)}"
            )
        self.put_items(table_name, items)
        return []
