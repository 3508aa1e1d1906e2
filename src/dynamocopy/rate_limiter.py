"""
Token bucket rate limiting for capacity-unit throughput.

A RateLimiter converts a units-per-second budget into blocking ``acquire``
calls sized by the cost of each request. Tokens refill continuously at the
configured rate, so a caller that has been idle can burst up to one full
bucket before being smoothed back to the rate.

Example:
    >>> limiter = RateLimiter(rate=50.0)
    >>> limiter.acquire(4)  # blocks until 4 units are available
"""

from __future__ import annotations

import logging
import threading
import time

from dynamocopy.exceptions import TransferInterruptedError

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Thread-safe token bucket rate limiter.

    The bucket starts empty and refills at ``rate`` tokens per second up to
    ``rate * burst_seconds`` tokens. ``acquire`` debits the requested cost
    immediately, letting the balance go negative, and the caller sleeps
    until the deficit it created has been refilled. Concurrent callers
    therefore queue up behind each other's debt and the aggregate throughput
    never exceeds the rate.

    Requests larger than the bucket are never rejected; they simply wait
    longer.

    Attributes:
        _rate: Tokens added per second
        _burst_seconds: Seconds of refill the bucket can hold
        _tokens: Current balance (negative while callers are waiting)
        _last_update: Time of last refill
        _lock: Lock serializing token accounting
    """

    def __init__(self, rate: float, burst_seconds: float = 1.0) -> None:
        """
        Initialize rate limiter.

        Args:
            rate: Capacity units per second (must be > 0).
            burst_seconds: How many seconds of refill an idle bucket may hold.

        Raises:
            ValueError: If rate or burst_seconds is not positive
        """
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        if burst_seconds <= 0:
            raise ValueError(f"burst_seconds must be positive, got {burst_seconds}")

        self._rate = float(rate)
        self._burst_seconds = float(burst_seconds)
        self._tokens = 0.0
        self._last_update = time.monotonic()
        self._lock = threading.Lock()

    @property
    def rate(self) -> float:
        """Tokens added per second."""
        return self._rate

    @property
    def capacity(self) -> float:
        """Maximum number of tokens an idle bucket accumulates."""
        return self._rate * self._burst_seconds

    @property
    def available_tokens(self) -> float:
        """Current token balance after refill (negative while callers wait)."""
        with self._lock:
            self._refill(time.monotonic())
            return self._tokens

    def _refill(self, now: float) -> None:
        elapsed = now - self._last_update
        self._last_update = now
        if elapsed > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed * self._rate)

    def set_rate(self, rate: float) -> None:
        """
        Change the refill rate.

        Tokens accrued so far are settled at the old rate; the new rate
        applies to refill from now on.

        Args:
            rate: New capacity units per second (must be > 0)
        """
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        with self._lock:
            self._refill(time.monotonic())
            self._rate = float(rate)
            self._tokens = min(self._tokens, self.capacity)
        logger.debug("Rate limiter reconfigured", extra={"rate": rate})

    def acquire(self, cost: float = 1.0, cancel_event: threading.Event | None = None) -> float:
        """
        Block until ``cost`` tokens are available, then consume them.

        Args:
            cost: Capacity units the upcoming request will consume.
            cancel_event: Optional event; if it is set while waiting the
                wait is abandoned.

        Returns:
            Seconds spent waiting.

        Raises:
            TransferInterruptedError: If cancel_event was set before or
                during the wait.
        """
        if cancel_event is not None and cancel_event.is_set():
            raise TransferInterruptedError("Interrupted while waiting for capacity")
        if cost <= 0:
            return 0.0

        with self._lock:
            self._refill(time.monotonic())
            self._tokens -= cost
            wait_time = -self._tokens / self._rate if self._tokens < 0 else 0.0

        if wait_time > 0:
            if cancel_event is None:
                time.sleep(wait_time)
            elif cancel_event.wait(wait_time):
                raise TransferInterruptedError("Interrupted while waiting for capacity")
        return wait_time
