"""
Destination table schema conversion.

Turns the description of the source table into a create-table request for
the destination: attribute definitions, key schema and provisioned
throughput are always copied; secondary indexes and the stream
specification only when asked for.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from dynamocopy.exceptions import DuplicateIndexNameError

logger = logging.getLogger(__name__)

_GLOBAL = "global secondary index"
_LOCAL = "local secondary index"


def _unique_names(names: Iterable[str], index_kind: str) -> frozenset[str]:
    seen: set[str] = set()
    for name in names:
        if name in seen:
            raise DuplicateIndexNameError(index_kind, name)
        seen.add(name)
    return frozenset(seen)


@dataclass(frozen=True)
class SchemaConversionOptions:
    """
    What to carry over to the destination table besides its keys.

    Index name lists must not repeat a name; a repeated name raises
    DuplicateIndexNameError when the options are built. Omitted lists mean
    "no indexes by name" and omitted flags mean False.

    Attributes:
        create_all_gsi: Copy every global secondary index
        create_all_lsi: Copy every local secondary index
        include_gsi: Names of global secondary indexes to copy
        include_lsi: Names of local secondary indexes to copy
        copy_stream_specification: Copy the source's stream settings

    Example:
        >>> options = SchemaConversionOptions(include_gsi=["by-customer"])
        >>> "by-customer" in options.include_gsi
        True
    """

    create_all_gsi: bool = False
    create_all_lsi: bool = False
    include_gsi: frozenset[str] | Sequence[str] = field(default_factory=frozenset)
    include_lsi: frozenset[str] | Sequence[str] = field(default_factory=frozenset)
    copy_stream_specification: bool = False

    def __post_init__(self) -> None:
        """Validate and normalize the include lists."""
        object.__setattr__(self, "include_gsi", _unique_names(self.include_gsi, _GLOBAL))
        object.__setattr__(self, "include_lsi", _unique_names(self.include_lsi, _LOCAL))


def _throughput(description: Mapping[str, Any] | None) -> dict[str, int] | None:
    if not description:
        return None
    read = description.get("ReadCapacityUnits")
    write = description.get("WriteCapacityUnits")
    if not read or not write:
        return None
    return {"ReadCapacityUnits": read, "WriteCapacityUnits": write}


class SchemaConverter:
    """
    Maps a table description to a create-table request.

    Example:
        >>> converter = SchemaConverter(SchemaConversionOptions(create_all_gsi=True))
        >>> request = converter.convert(source_description, "orders-copy")
        >>> store.create_table(request)
    """

    def __init__(self, options: SchemaConversionOptions | None = None) -> None:
        self.options = options or SchemaConversionOptions()

    def convert(self, description: Mapping[str, Any], new_table_name: str) -> dict[str, Any]:
        """
        Build the create-table request for the destination.

        Index lists are left out of the request entirely when the source has
        no such indexes, when neither the include-all flag nor any name was
        given, or when no index matched.

        Args:
            description: Source table description
            new_table_name: Name of the table to create

        Returns:
            Keyword arguments for the store's create-table call
        """
        options = self.options
        request: dict[str, Any] = {
            "TableName": new_table_name,
            "AttributeDefinitions": list(description["AttributeDefinitions"]),
            "KeySchema": list(description["KeySchema"]),
        }

        throughput = _throughput(description.get("ProvisionedThroughput"))
        if throughput is not None:
            request["ProvisionedThroughput"] = throughput
        else:
            request["BillingMode"] = "PAY_PER_REQUEST"

        gsi = self._select(
            description.get("GlobalSecondaryIndexes"),
            options.create_all_gsi,
            options.include_gsi,
            _GLOBAL,
        )
        if gsi is not None:
            request["GlobalSecondaryIndexes"] = [
                self._global_index(index, table_throughput=throughput) for index in gsi
            ]

        lsi = self._select(
            description.get("LocalSecondaryIndexes"),
            options.create_all_lsi,
            options.include_lsi,
            _LOCAL,
        )
        if lsi is not None:
            request["LocalSecondaryIndexes"] = [self._local_index(index) for index in lsi]

        stream = description.get("StreamSpecification")
        if options.copy_stream_specification and stream:
            request["StreamSpecification"] = dict(stream)

        logger.debug(
            "Converted %s to create request for %s",
            description.get("TableName"),
            new_table_name,
            extra={
                "global_indexes": [i["IndexName"] for i in request.get("GlobalSecondaryIndexes", [])],
                "local_indexes": [i["IndexName"] for i in request.get("LocalSecondaryIndexes", [])],
                "stream": "StreamSpecification" in request,
            },
        )
        return request

    @staticmethod
    def _select(
        indexes: Sequence[Mapping[str, Any]] | None,
        include_all: bool,
        names: frozenset[str] | Sequence[str],
        index_kind: str,
    ) -> list[Mapping[str, Any]] | None:
        if not indexes or (not include_all and not names):
            return None

        selected = [i for i in indexes if include_all or i["IndexName"] in names]
        missing = set(names) - {i["IndexName"] for i in indexes}
        if missing:
            logger.warning(
                "Source table has no %s named %s",
                index_kind,
                ", ".join(sorted(missing)),
            )
        return selected or None

    @staticmethod
    def _global_index(
        index: Mapping[str, Any], table_throughput: dict[str, int] | None
    ) -> dict[str, Any]:
        converted = {
            "IndexName": index["IndexName"],
            "KeySchema": list(index["KeySchema"]),
            "Projection": dict(index["Projection"]),
        }
        # A provisioned table needs throughput on every global index.
        if table_throughput is not None:
            converted["ProvisionedThroughput"] = (
                _throughput(index.get("ProvisionedThroughput")) or dict(table_throughput)
            )
        return converted

    @staticmethod
    def _local_index(index: Mapping[str, Any]) -> dict[str, Any]:
        return {
            "IndexName": index["IndexName"],
            "KeySchema": list(index["KeySchema"]),
            "Projection": dict(index["Projection"]),
        }


__all__ = [
    "SchemaConversionOptions",
    "SchemaConverter",
]
