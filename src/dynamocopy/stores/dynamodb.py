"""
DynamoDB table store backed by boto3.

Uses the low-level client so items travel in their typed wire format
(``{"S": ...}``, ``{"N": ...}``) and are copied without any conversion.

Example:
    >>> store = DynamoDBTableStore.from_region("us-west-2", max_connections=64)
    >>> description = store.describe_table("orders")
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeVar

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, ReadTimeoutError, WaiterError
from botocore.exceptions import ConnectionError as BotoConnectionError

from dynamocopy.exceptions import (
    TableCreationError,
    TableNotFoundError,
    TransientStoreError,
    UnrecoverableStoreError,
)
from dynamocopy.models import Item, ScanKey
from dynamocopy.observability import (
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_TABLE_NAME,
    Tracer,
    create_tracer,
)
from dynamocopy.stores.interface import MAX_BATCH_WRITE_ITEMS, ScanResponse, TableStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Error codes that clear up on their own if the request is repeated later.
TRANSIENT_ERROR_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
        "InternalServerError",
        "ServiceUnavailable",
        "LimitExceededException",
        "TransactionInProgressException",
    }
)

DEFAULT_MAX_CONNECTIONS = 50
DEFAULT_WAITER_DELAY_SECONDS = 5
DEFAULT_WAITER_MAX_ATTEMPTS = 60


def create_client(
    region: str | None,
    endpoint_url: str | None = None,
    max_connections: int = DEFAULT_MAX_CONNECTIONS,
) -> Any:
    """
    Create a low-level DynamoDB client.

    Credentials come from the default boto3 provider chain.

    Args:
        region: Signing region
        endpoint_url: Override endpoint (e.g. DynamoDB Local)
        max_connections: HTTP connection pool size; should cover the number
            of threads sharing the client
    """
    config = Config(
        max_pool_connections=max_connections,
        retries={"mode": "standard", "max_attempts": 3},
    )
    return boto3.client(
        "dynamodb",
        region_name=region,
        endpoint_url=endpoint_url,
        config=config,
    )


def classify_client_error(error: ClientError, operation: str, table_name: str) -> Exception:
    """
    Map a botocore ClientError onto the dynamocopy error taxonomy.

    Returns:
        TableNotFoundError, TransientStoreError or UnrecoverableStoreError
    """
    code = error.response.get("Error", {}).get("Code", "Unknown")
    message = error.response.get("Error", {}).get("Message", str(error))
    if code == "ResourceNotFoundException":
        return TableNotFoundError(table_name)
    if code in TRANSIENT_ERROR_CODES:
        return TransientStoreError(f"{operation} on {table_name}: {message}", operation, code)
    return UnrecoverableStoreError(
        f"{operation} on {table_name} failed ({code}): {message}", operation, code
    )


class DynamoDBTableStore(TableStore):
    """
    TableStore implementation for Amazon DynamoDB.

    One instance wraps one boto3 client. boto3 clients are thread-safe, so
    a single store is shared by every scan and write thread on its side of
    the transfer.

    Features:
        - botocore errors mapped to Transient/Unrecoverable/TableNotFound
        - ReturnConsumedCapacity on scans for accurate read accounting
        - OpenTelemetry tracing support via Tracer composition

    Attributes:
        _client: boto3 DynamoDB client
        _waiter_delay: Seconds between table_exists polls
        _waiter_max_attempts: Polls before giving up on table creation
    """

    def __init__(
        self,
        client: Any,
        *,
        waiter_delay: int = DEFAULT_WAITER_DELAY_SECONDS,
        waiter_max_attempts: int = DEFAULT_WAITER_MAX_ATTEMPTS,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the store.

        Args:
            client: A boto3 DynamoDB client
            waiter_delay: Seconds between readiness polls after create_table
            waiter_max_attempts: Maximum readiness polls
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable OpenTelemetry tracing.
                Ignored if tracer is explicitly provided.
        """
        self._client = client
        self._waiter_delay = waiter_delay
        self._waiter_max_attempts = waiter_max_attempts
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @classmethod
    def from_region(
        cls,
        region: str | None,
        endpoint_url: str | None = None,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        **kwargs: Any,
    ) -> DynamoDBTableStore:
        """Build a store with a fresh client for ``region``."""
        return cls(create_client(region, endpoint_url, max_connections), **kwargs)

    @property
    def client(self) -> Any:
        """The underlying boto3 client."""
        return self._client

    def _call(self, operation: str, table_name: str, func: Callable[[], T]) -> T:
        with self._tracer.span(
            f"dynamocopy.store.{operation}",
            {
                ATTR_DB_SYSTEM: "dynamodb",
                ATTR_DB_OPERATION: operation,
                ATTR_TABLE_NAME: table_name,
            },
        ):
            try:
                return func()
            except ClientError as e:
                raise classify_client_error(e, operation, table_name) from e
            except (BotoConnectionError, ReadTimeoutError) as e:
                # Connect timeouts are ConnectionErrors; read timeouts are not.
                raise TransientStoreError(
                    f"{operation} on {table_name}: {e}", operation, type(e).__name__
                ) from e
            except BotoCoreError as e:
                raise UnrecoverableStoreError(
                    f"{operation} on {table_name} failed: {e}", operation, type(e).__name__
                ) from e

    def describe_table(self, table_name: str) -> dict[str, Any]:
        response = self._call(
            "describe_table",
            table_name,
            lambda: self._client.describe_table(TableName=table_name),
        )
        return response["Table"]

    def create_table(self, request: Mapping[str, Any]) -> None:
        table_name = request["TableName"]
        logger.info("Creating table %s", table_name)
        try:
            self._call("create_table", table_name, lambda: self._client.create_table(**request))
        except (TransientStoreError, UnrecoverableStoreError) as e:
            raise TableCreationError(table_name, str(e)) from e

    def wait_until_exists(self, table_name: str) -> None:
        waiter = self._client.get_waiter("table_exists")
        try:
            waiter.wait(
                TableName=table_name,
                WaiterConfig={
                    "Delay": self._waiter_delay,
                    "MaxAttempts": self._waiter_max_attempts,
                },
            )
        except WaiterError as e:
            raise TableCreationError(table_name, str(e)) from e
        logger.info("Table %s is active", table_name)

    def scan(
        self,
        table_name: str,
        segment: int,
        total_segments: int,
        exclusive_start_key: ScanKey | None = None,
        consistent_read: bool = False,
        limit: int | None = None,
    ) -> ScanResponse:
        kwargs: dict[str, Any] = {
            "TableName": table_name,
            "Segment": segment,
            "TotalSegments": total_segments,
            "ConsistentRead": consistent_read,
            "ReturnConsumedCapacity": "TOTAL",
        }
        if exclusive_start_key is not None:
            kwargs["ExclusiveStartKey"] = dict(exclusive_start_key)
        if limit is not None:
            kwargs["Limit"] = limit

        response = self._call("scan", table_name, lambda: self._client.scan(**kwargs))
        consumed = response.get("ConsumedCapacity") or {}
        return ScanResponse(
            items=response.get("Items", []),
            last_evaluated_key=response.get("LastEvaluatedKey"),
            consumed_capacity=consumed.get("CapacityUnits"),
        )

    def batch_write(self, table_name: str, items: Sequence[Item]) -> list[Item]:
        if len(items) > MAX_BATCH_WRITE_ITEMS:
            raise ValueError(
                f"batch_write accepts at most {MAX_BATCH_WRITE_ITEMS} items, got {len(items)}"
            )
        if not items:
            return []

        request = {table_name: [{"PutRequest": {"Item": item}} for item in items]}
        response = self._call(
            "batch_write",
            table_name,
            lambda: self._client.batch_write_item(RequestItems=request),
        )
        unprocessed = response.get("UnprocessedItems", {}).get(table_name, [])
        return [entry["PutRequest"]["Item"] for entry in unprocessed if "PutRequest" in entry]
