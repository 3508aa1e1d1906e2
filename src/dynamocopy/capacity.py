"""
Capacity accounting for reads and writes.

The store bills and throttles in capacity units: a read unit covers up to
4 KB of a strongly consistent read (eventually consistent reads cost half),
a write unit covers up to 1 KB of a single item write. Sizes are always
rounded up to whole units.

This module provides:
- RateBudget: A units-per-second ceiling derived from provisioned throughput
- item_size_bytes / items_size_bytes: Item size per the store's size rules
- read_capacity_units: Cost of reading a number of bytes
- write_capacity_units: Cost of writing a set of items
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

READ_UNIT_SIZE_BYTES = 4096
WRITE_UNIT_SIZE_BYTES = 1024

# Overheads applied by the store to document types.
_NESTED_ELEMENT_OVERHEAD = 1
_DOCUMENT_OVERHEAD = 3


@dataclass(frozen=True)
class RateBudget:
    """
    Throughput ceiling for one side of a transfer.

    Attributes:
        units_per_second: Capacity units that may be consumed per second
        unit_size_bytes: Bytes covered by one unit in the cost model

    Example:
        >>> budget = RateBudget.from_provisioned(capacity_units=100, ratio=0.25)
        >>> budget.units_per_second
        25.0
    """

    units_per_second: float
    unit_size_bytes: int = READ_UNIT_SIZE_BYTES

    def __post_init__(self) -> None:
        """Validate budget values."""
        if self.units_per_second <= 0:
            raise ValueError(
                f"units_per_second must be positive, got {self.units_per_second}. "
                "Check the table's provisioned throughput and the throughput ratio."
            )
        if self.unit_size_bytes < 1:
            raise ValueError(f"unit_size_bytes must be >= 1, got {self.unit_size_bytes}")

    @classmethod
    def from_provisioned(
        cls,
        capacity_units: float,
        ratio: float,
        unit_size_bytes: int = READ_UNIT_SIZE_BYTES,
    ) -> RateBudget:
        """
        Build a budget as a fraction of a table's provisioned capacity.

        Args:
            capacity_units: Provisioned read or write capacity of the table
            ratio: Fraction of that capacity the transfer may use
            unit_size_bytes: Bytes per capacity unit for this side

        Returns:
            The derived RateBudget
        """
        return cls(units_per_second=capacity_units * ratio, unit_size_bytes=unit_size_bytes)

    def units_for(self, size_bytes: int) -> int:
        """Whole units needed to cover ``size_bytes`` (at least one)."""
        return max(1, math.ceil(size_bytes / self.unit_size_bytes))


def _number_size(value: str) -> int:
    # Numbers are stored as variable-length decimals: about one byte per two
    # significant digits, plus one.
    try:
        digits = Decimal(value).normalize().as_tuple().digits
    except InvalidOperation:
        return len(value.encode("utf-8"))
    significant = len(digits) or 1
    return math.ceil(significant / 2) + 1


def _binary_size(value: Any) -> int:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return len(value)
    if hasattr(value, "value"):
        # boto3.dynamodb.types.Binary
        return len(value.value)
    return len(str(value).encode("utf-8"))


def attribute_value_size(value: Mapping[str, Any]) -> int:
    """
    Size in bytes of one typed attribute value.

    Args:
        value: A typed value such as ``{"S": "abc"}`` or ``{"L": [...]}``

    Returns:
        Size in bytes
    """
    type_code, payload = next(iter(value.items()))

    if type_code == "S":
        return len(payload.encode("utf-8"))
    if type_code == "N":
        return _number_size(str(payload))
    if type_code == "B":
        return _binary_size(payload)
    if type_code in ("BOOL", "NULL"):
        return 1
    if type_code == "SS":
        return sum(len(v.encode("utf-8")) for v in payload)
    if type_code == "NS":
        return sum(_number_size(str(v)) for v in payload)
    if type_code == "BS":
        return sum(_binary_size(v) for v in payload)
    if type_code == "L":
        return _DOCUMENT_OVERHEAD + sum(
            _NESTED_ELEMENT_OVERHEAD + attribute_value_size(v) for v in payload
        )
    if type_code == "M":
        return _DOCUMENT_OVERHEAD + sum(
            _NESTED_ELEMENT_OVERHEAD + len(k.encode("utf-8")) + attribute_value_size(v)
            for k, v in payload.items()
        )
    raise ValueError(f"Unknown attribute type: {type_code}")


def item_size_bytes(item: Mapping[str, Mapping[str, Any]]) -> int:
    """
    Size in bytes of an item: attribute names plus their values.

    Example:
        >>> item_size_bytes({"id": {"S": "abc"}})
        5
    """
    return sum(
        len(name.encode("utf-8")) + attribute_value_size(value) for name, value in item.items()
    )


def items_size_bytes(items: Iterable[Mapping[str, Mapping[str, Any]]]) -> int:
    """Total size in bytes of a collection of items."""
    return sum(item_size_bytes(item) for item in items)


def read_capacity_units(size_bytes: int, consistent_read: bool) -> float:
    """
    Read units consumed by scanning ``size_bytes`` of data.

    Strongly consistent reads cost twice as much as eventually consistent
    ones. Sizes round up to at least one 4 KB block.
    """
    units = max(1, math.ceil(size_bytes / READ_UNIT_SIZE_BYTES))
    return float(units) if consistent_read else units / 2


def write_capacity_units(items: Iterable[Mapping[str, Mapping[str, Any]]]) -> int:
    """Write units consumed by putting each item individually."""
    return sum(
        max(1, math.ceil(item_size_bytes(item) / WRITE_UNIT_SIZE_BYTES)) for item in items
    )
