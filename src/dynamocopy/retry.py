"""
Retry utilities for handling transient store failures.

Provides exponential backoff with jitter for scan and batch write calls.
Transient errors never leave a component: they are retried here until they
succeed or the retry ceiling converts them into a RetriesExhaustedError.

This module provides:
- RetryConfig: Configuration for retry behavior
- RetryStats: Statistics for retry operations
- calculate_backoff: Calculate delay with exponential backoff and jitter
- sleep_backoff: Sleep for a backoff delay, honouring cancellation
- retry_call: Retry a blocking operation with exponential backoff
"""

from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from dynamocopy.exceptions import (
    RetriesExhaustedError,
    TransferInterruptedError,
    TransientStoreError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """
    Configuration for retry behavior.

    Controls how retries are performed with exponential backoff.

    Attributes:
        max_retries: Maximum number of retry attempts (0 = no retries)
        initial_delay: Initial delay in seconds before first retry
        max_delay: Maximum delay in seconds between retries
        exponential_base: Base for exponential backoff calculation
        jitter: Fraction of delay to add as random jitter (0-1)

    Example:
        >>> config = RetryConfig(
        ...     max_retries=5,
        ...     initial_delay=0.05,
        ...     max_delay=10.0,
        ... )
    """

    max_retries: int = 10
    initial_delay: float = 0.05
    max_delay: float = 20.0
    exponential_base: float = 2.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_retries < 0:
            raise ValueError(
                f"max_retries must be >= 0, got {self.max_retries}. Use 0 for no retries."
            )

        if self.initial_delay <= 0:
            raise ValueError(f"initial_delay must be positive, got {self.initial_delay}.")

        if self.max_delay <= 0:
            raise ValueError(f"max_delay must be positive, got {self.max_delay}.")

        if self.max_delay < self.initial_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= initial_delay ({self.initial_delay})."
            )

        if self.exponential_base <= 1.0:
            raise ValueError(f"exponential_base must be > 1.0, got {self.exponential_base}.")

        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError(f"jitter must be between 0.0 and 1.0, got {self.jitter}.")


@dataclass
class RetryStats:
    """
    Statistics for retry operations.

    Attributes:
        attempts: Total number of attempts (including initial)
        failures: Number of failed attempts
        total_delay_seconds: Total time spent in delays
        last_error: String representation of the last error
    """

    attempts: int = 0
    failures: int = 0
    total_delay_seconds: float = 0.0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempts": self.attempts,
            "failures": self.failures,
            "total_delay_seconds": self.total_delay_seconds,
            "last_error": self.last_error,
        }


def calculate_backoff(
    attempt: int,
    config: RetryConfig,
) -> float:
    """
    Calculate backoff delay with exponential growth and jitter.

    Args:
        attempt: Current attempt number (0-based)
        config: Retry configuration

    Returns:
        Delay in seconds

    Example:
        >>> config = RetryConfig(initial_delay=1.0, max_delay=60.0)
        >>> delay = calculate_backoff(0, config)  # ~1s
        >>> delay = calculate_backoff(3, config)  # ~8s
    """
    # Exponential backoff: initial * base^attempt
    delay = config.initial_delay * (config.exponential_base**attempt)

    # Cap at max delay
    delay = min(delay, config.max_delay)

    jitter_range = delay * config.jitter
    delay += random.uniform(-jitter_range, jitter_range)  # nosec B311 - not crypto

    return max(0.0, delay)


def sleep_backoff(delay: float, cancel_event: threading.Event | None = None) -> None:
    """
    Sleep for ``delay`` seconds.

    Raises:
        TransferInterruptedError: If cancel_event is set during the sleep
    """
    if cancel_event is None:
        time.sleep(delay)
    elif cancel_event.wait(delay):
        raise TransferInterruptedError("Interrupted during retry backoff")


def retry_call(
    operation: Callable[[], T],
    config: RetryConfig | None = None,
    retryable_exceptions: tuple[type[Exception], ...] = (TransientStoreError,),
    operation_name: str = "operation",
    cancel_event: threading.Event | None = None,
    on_retry: Callable[[int, Exception], None] | None = None,
) -> T:
    """
    Retry a blocking operation with exponential backoff.

    Args:
        operation: Function to call
        config: Retry configuration (uses defaults if None)
        retryable_exceptions: Exception types to retry on
        operation_name: Name for logging purposes
        cancel_event: Stops retrying when set
        on_retry: Called with (attempt, error) before each backoff sleep

    Returns:
        Result of successful operation

    Raises:
        RetriesExhaustedError: If all retries exhausted
        TransferInterruptedError: If cancel_event was set between attempts
        Exception: Non-retryable exceptions are raised immediately

    Example:
        >>> page = retry_call(
        ...     lambda: store.scan("orders", segment=0, total_segments=4),
        ...     operation_name="scan",
        ... )
    """
    config = config or RetryConfig()
    stats = RetryStats()
    last_error: Exception | None = None

    for attempt in range(config.max_retries + 1):
        if cancel_event is not None and cancel_event.is_set():
            raise TransferInterruptedError(f"Interrupted before {operation_name}")

        stats.attempts += 1
        try:
            result = operation()
        except retryable_exceptions as e:
            last_error = e
            stats.failures += 1
            stats.last_error = str(e)

            if attempt < config.max_retries:
                delay = calculate_backoff(attempt, config)
                stats.total_delay_seconds += delay

                logger.warning(
                    "Retrying %s after transient failure: %s",
                    operation_name,
                    e,
                    extra={
                        "operation": operation_name,
                        "attempt": attempt + 1,
                        "max_retries": config.max_retries,
                        "delay_seconds": delay,
                        "error_type": type(e).__name__,
                    },
                )
                if on_retry is not None:
                    on_retry(attempt + 1, e)
                sleep_backoff(delay, cancel_event)
            else:
                logger.error(
                    "All retries exhausted for %s",
                    operation_name,
                    extra={
                        "operation": operation_name,
                        "attempts": stats.attempts,
                        "total_delay_seconds": stats.total_delay_seconds,
                        "error_type": type(e).__name__,
                    },
                )
        else:
            if attempt > 0:
                logger.info(
                    "%s succeeded after %d attempts",
                    operation_name,
                    stats.attempts,
                    extra={"operation": operation_name, "attempts": stats.attempts},
                )
            return result

    # last_error is guaranteed to be set if we reach here (loop only exits after failure)
    assert last_error is not None
    raise RetriesExhaustedError(operation_name, stats.attempts, last_error) from last_error
