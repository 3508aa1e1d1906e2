"""
Table store implementations.

- TableStore: Abstract interface the pipeline talks to
- DynamoDBTableStore: boto3-backed store for DynamoDB
- InMemoryTableStore: Process-local store for tests and dry runs
"""

from dynamocopy.stores.dynamodb import DynamoDBTableStore, create_client
from dynamocopy.stores.in_memory import InMemoryTableStore
from dynamocopy.stores.interface import MAX_BATCH_WRITE_ITEMS, ScanResponse, TableStore

__all__ = [
    "MAX_BATCH_WRITE_ITEMS",
    "ScanResponse",
    "TableStore",
    "DynamoDBTableStore",
    "InMemoryTableStore",
    "create_client",
]
