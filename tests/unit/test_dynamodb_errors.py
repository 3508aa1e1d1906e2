"""
Unit tests for DynamoDB error classification and request building.

The boto3 client is replaced by a Mock; see tests/integration for runs
against a moto-backed client.
"""

from __future__ import annotations

from unittest.mock import Mock

import pytest
from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)

from dynamocopy.exceptions import (
    TableCreationError,
    TableNotFoundError,
    TransientStoreError,
    UnrecoverableStoreError,
)
from dynamocopy.observability import MockTracer
from dynamocopy.retry import RetryConfig, retry_call
from dynamocopy.stores.dynamodb import DynamoDBTableStore, classify_client_error


def client_error(code: str, operation: str = "Scan") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} happened"}}, operation)


@pytest.fixture
def client() -> Mock:
    return Mock()


@pytest.fixture
def store(client: Mock) -> DynamoDBTableStore:
    return DynamoDBTableStore(client, enable_tracing=False)


class TestClassifyClientError:
    """Tests for classify_client_error."""

    @pytest.mark.parametrize(
        "code",
        ["ProvisionedThroughputExceededException", "ThrottlingException", "InternalServerError"],
    )
    def test_transient_codes(self, code: str) -> None:
        error = classify_client_error(client_error(code), "scan", "orders")
        assert isinstance(error, TransientStoreError)
        assert error.code == code
        assert error.operation == "scan"

    def test_missing_table(self) -> None:
        error = classify_client_error(client_error("ResourceNotFoundException"), "describe_table", "orders")
        assert isinstance(error, TableNotFoundError)
        assert error.table_name == "orders"

    def test_everything_else_is_unrecoverable(self) -> None:
        error = classify_client_error(client_error("AccessDeniedException"), "scan", "orders")
        assert isinstance(error, UnrecoverableStoreError)
        assert "AccessDeniedException" in str(error)


class TestStoreCalls:
    """Tests for DynamoDBTableStore request handling."""

    def test_scan_request(self, store: DynamoDBTableStore, client: Mock) -> None:
        client.scan.return_value = {
            "Items": [{"id": {"S": "a"}}],
            "LastEvaluatedKey": {"id": {"S": "a"}},
            "ConsumedCapacity": {"TableName": "orders", "CapacityUnits": 0.5},
        }

        response = store.scan("orders", 1, 4, exclusive_start_key={"id": {"S": "0"}}, limit=10)

        client.scan.assert_called_once_with(
            TableName="orders",
            Segment=1,
            TotalSegments=4,
            ConsistentRead=False,
            ReturnConsumedCapacity="TOTAL",
            ExclusiveStartKey={"id": {"S": "0"}},
            Limit=10,
        )
        assert response.items == [{"id": {"S": "a"}}]
        assert response.last_evaluated_key == {"id": {"S": "a"}}
        assert response.consumed_capacity == 0.5

    def test_scan_throttling_is_transient(self, store: DynamoDBTableStore, client: Mock) -> None:
        client.scan.side_effect = client_error("ProvisionedThroughputExceededException")
        with pytest.raises(TransientStoreError) as exc_info:
            store.scan("orders", 0, 1)
        assert isinstance(exc_info.value.__cause__, ClientError)

    def test_connection_error_is_transient(self, store: DynamoDBTableStore, client: Mock) -> None:
        client.scan.side_effect = EndpointConnectionError(endpoint_url="http://localhost:1")
        with pytest.raises(TransientStoreError):
            store.scan("orders", 0, 1)

    @pytest.mark.parametrize(
        "error",
        [
            ReadTimeoutError(endpoint_url="http://localhost:1"),
            ConnectTimeoutError(endpoint_url="http://localhost:1"),
        ],
        ids=["read", "connect"],
    )
    def test_timeouts_are_transient(self, store: DynamoDBTableStore, client: Mock, error: Exception) -> None:
        client.scan.side_effect = error
        with pytest.raises(TransientStoreError) as exc_info:
            store.scan("orders", 0, 1)
        assert exc_info.value.__cause__ is error

    def test_read_timeout_is_retried(self, store: DynamoDBTableStore, client: Mock) -> None:
        client.scan.side_effect = [
            ReadTimeoutError(endpoint_url="http://localhost:1"),
            {"Items": [{"id": {"S": "a"}}]},
        ]

        response = retry_call(
            lambda: store.scan("orders", 0, 1),
            config=RetryConfig(max_retries=2, initial_delay=0.001, jitter=0.0),
        )

        assert response.items == [{"id": {"S": "a"}}]
        assert client.scan.call_count == 2

    def test_other_botocore_errors_are_unrecoverable(self, store: DynamoDBTableStore, client: Mock) -> None:
        client.scan.side_effect = NoCredentialsError()
        with pytest.raises(UnrecoverableStoreError) as exc_info:
            store.scan("orders", 0, 1)
        assert exc_info.value.code == "NoCredentialsError"
        assert not isinstance(exc_info.value, TransientStoreError)

    def test_describe_missing_table(self, store: DynamoDBTableStore, client: Mock) -> None:
        client.describe_table.side_effect = client_error("ResourceNotFoundException", "DescribeTable")
        with pytest.raises(TableNotFoundError):
            store.describe_table("orders")

    def test_batch_write_returns_unprocessed(self, store: DynamoDBTableStore, client: Mock) -> None:
        items = [{"id": {"S": "a"}}, {"id": {"S": "b"}}]
        client.batch_write_item.return_value = {
            "UnprocessedItems": {"orders": [{"PutRequest": {"Item": items[1]}}]}
        }

        assert store.batch_write("orders", items) == [items[1]]
        request = client.batch_write_item.call_args.kwargs["RequestItems"]
        assert request == {"orders": [{"PutRequest": {"Item": item}} for item in items]}

    def test_batch_write_of_nothing_skips_the_call(self, store: DynamoDBTableStore, client: Mock) -> None:
        assert store.batch_write("orders", []) == []
        client.batch_write_item.assert_not_called()

    def test_batch_write_limit(self, store: DynamoDBTableStore) -> None:
        with pytest.raises(ValueError):
            store.batch_write("orders", [{"id": {"S": str(i)}} for i in range(26)])

    def test_create_failure_is_creation_error(self, store: DynamoDBTableStore, client: Mock) -> None:
        client.create_table.side_effect = client_error("ValidationException", "CreateTable")
        with pytest.raises(TableCreationError, match="orders"):
            store.create_table({"TableName": "orders"})

    def test_store_spans(self, client: Mock) -> None:
        tracer = MockTracer()
        client.describe_table.return_value = {"Table": {"TableName": "orders"}}
        DynamoDBTableStore(client, tracer=tracer).describe_table("orders")
        assert tracer.spans == [
            (
                "dynamocopy.store.describe_table",
                {
                    "db.system": "dynamodb",
                    "db.operation": "describe_table",
                    "aws.dynamodb.table_names": "orders",
                },
            )
        ]
