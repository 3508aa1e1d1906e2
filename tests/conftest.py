"""
Shared pytest fixtures for the dynamocopy tests.

This module provides:
- Item fixtures (make_item, source_items)
- Store fixtures (memory_store, source_table, destination_table)
- Pipeline fixtures (fast_retry, fast_limiter, stats, mock_tracer)
- Settings fixtures (transfer_settings)

The in-memory store uses a small page size so that every test table spans
several pages per segment.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from dynamocopy.config import TransferSettings
from dynamocopy.models import Item, TransferStats
from dynamocopy.observability import MockTracer
from dynamocopy.rate_limiter import RateLimiter
from dynamocopy.retry import RetryConfig
from dynamocopy.stores.in_memory import InMemoryTableStore

SOURCE_TABLE = "source"
DESTINATION_TABLE = "destination"
SOURCE_ITEM_COUNT = 120
PAGE_SIZE = 7


# ============================================================================
# Items
# ============================================================================


def build_item(index: int, payload_size: int = 16) -> Item:
    return {
        "id": {"S": f"item-{index:05d}"},
        "n": {"N": str(index)},
        "payload": {"S": "x" * payload_size},
    }


@pytest.fixture
def make_item() -> Callable[..., Item]:
    """Factory for items with a string key ``id``."""
    return build_item


@pytest.fixture
def source_items() -> list[Item]:
    """Items loaded into the source table."""
    return [build_item(i) for i in range(SOURCE_ITEM_COUNT)]


def item_ids(items: Any) -> list[str]:
    return sorted(item["id"]["S"] for item in items)


@pytest.fixture
def ids() -> Callable[[Any], list[str]]:
    """Sorted primary keys of a collection of items."""
    return item_ids


# ============================================================================
# Stores
# ============================================================================


@pytest.fixture
def memory_store() -> InMemoryTableStore:
    """Empty in-memory store with a small page size."""
    return InMemoryTableStore(page_size=PAGE_SIZE)


@pytest.fixture
def source_table(memory_store: InMemoryTableStore, source_items: list[Item]) -> str:
    """Provisioned source table holding ``source_items``."""
    memory_store.add_table(
        SOURCE_TABLE,
        hash_key="id",
        read_capacity=1000,
        write_capacity=1000,
    )
    memory_store.put_items(SOURCE_TABLE, source_items)
    return SOURCE_TABLE


@pytest.fixture
def destination_table(memory_store: InMemoryTableStore) -> str:
    """Empty provisioned destination table."""
    memory_store.add_table(
        DESTINATION_TABLE,
        hash_key="id",
        read_capacity=1000,
        write_capacity=1000,
    )
    return DESTINATION_TABLE


# ============================================================================
# Pipeline
# ============================================================================


@pytest.fixture
def fast_retry() -> RetryConfig:
    """Retry policy with millisecond backoff and no jitter."""
    return RetryConfig(max_retries=3, initial_delay=0.001, max_delay=0.01, jitter=0.0)


@pytest.fixture
def fast_limiter() -> RateLimiter:
    """Limiter fast enough never to matter."""
    return RateLimiter(rate=1_000_000.0)


@pytest.fixture
def stats() -> TransferStats:
    return TransferStats()


@pytest.fixture
def mock_tracer() -> MockTracer:
    return MockTracer()


# ============================================================================
# Settings
# ============================================================================


@pytest.fixture
def transfer_settings() -> Callable[..., TransferSettings]:
    """Factory for settings copying ``source`` into ``destination``."""

    def _build(**overrides: Any) -> TransferSettings:
        values: dict[str, Any] = {
            "source_table": SOURCE_TABLE,
            "destination_table": DESTINATION_TABLE,
            "read_throughput_ratio": 0.5,
            "write_throughput_ratio": 1.0,
            "max_write_threads": 4,
        }
        values.update(overrides)
        return TransferSettings.build(**values)

    return _build
