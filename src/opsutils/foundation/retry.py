"""Retry utilities for the HTTP request executor using tenacity.

This module provides the retry building blocks used by `opsutils.foundation.http`:
the error classifier deciding which failures are transient, the sawtooth
wait strategy, the stop condition and the retry logging callback.

## Components

### ErrorClassifier (Protocol)
Protocol for classifying errors as retriable vs non-retriable.

### TransportErrorClassifier
Classifies `TransportError` instances by their `TransportFailure` category.
Only transport failures are ever retried; a received response (any status)
is terminal and never reaches the retry predicate.

### wait_sawtooth
Tenacity wait strategy whose delay doubles on each retry and resets to the
base value once it exceeds the ceiling (1, 2, 4, 8, 1, 2, 4, 8, ...).

### build_stop
Combines the attempt budget with an optional deadline.

### create_retry_logger
Factory function to create retry logging callbacks with custom error
detail extraction.

## Usage

```python
from tenacity import Retrying, retry_if_exception

from opsutils.foundation.retry import (
    TransportErrorClassifier,
    build_stop,
    create_retry_logger,
    wait_sawtooth,
)

classifier = TransportErrorClassifier()
for attempt in Retrying(
    stop=build_stop(max_attempts=30, deadline=None),
    wait=wait_sawtooth(base=1.0, ceiling=10.0),
    retry=retry_if_exception(classifier.is_retriable),
    before_sleep=create_retry_logger(logger, classifier.get_error_details),
):
    with attempt:
        send()
```
"""

import logging
from collections.abc import Callable, Iterator
from typing import Any, Protocol, runtime_checkable

from tenacity import stop_after_attempt, stop_after_delay
from tenacity.stop import stop_base
from tenacity.wait import wait_base

from .exceptions import TransportError

# =============================================================================
# Error Classification
# =============================================================================


@runtime_checkable
class ErrorClassifier(Protocol):
    """Protocol for error classification in retry logic.

    Implementations define which exceptions should trigger retries and how
    to extract error details for logging.
    """

    def is_retriable(self, exc: BaseException) -> bool:
        """Determine if an exception should trigger a retry.

        Args:
            exc: The exception to classify.

        Returns:
            True if the error is transient and should be retried,
            False if it's a permanent error that should fail immediately.
        """
        ...

    def get_error_details(self, exc: BaseException) -> dict[str, Any]:
        """Extract structured error details for logging.

        Args:
            exc: The exception to extract details from.

        Returns:
            Dictionary with error details. Empty dict if no details available.
        """
        ...


class TransportErrorClassifier:
    """Error classifier for transport failures raised by the request executor.

    A `TransportError` is retriable when its category is retryable. Every
    other exception (cancellation, body errors, failed responses) fails fast.
    """

    def is_retriable(self, exc: BaseException) -> bool:
        """Return True for transport errors with a retryable category."""
        if isinstance(exc, TransportError):
            return exc.category.retryable
        return False

    def get_error_details(self, exc: BaseException) -> dict[str, Any]:
        """Extract the failure category and raw cause for logging.

        Args:
            exc: Exception to extract details from.

        Returns:
            Dictionary with `category` and `cause` when `exc` is a
            `TransportError`, empty otherwise.
        """
        if isinstance(exc, TransportError):
            details: dict[str, Any] = {"category": exc.category.value}
            if exc.__cause__ is not None:
                details["cause"] = type(exc.__cause__).__name__
            return details
        return {}


# =============================================================================
# Backoff and Stop Strategies
# =============================================================================


def sawtooth_delay(retry_number: int, base: float, ceiling: float) -> float:
    """Return the delay before retry number `retry_number` (1-based).

    The delay starts at `base` and doubles on each retry; when the doubled
    value exceeds `ceiling` it resets to `base`.

    Args:
        retry_number: 1 for the first retry, 2 for the second, and so on.
        base: First delay in seconds.
        ceiling: Largest delay before resetting.

    Returns:
        Delay in seconds.
    """
    delay = base
    for _ in range(retry_number - 1):
        delay += delay
        if delay > ceiling:
            delay = base
    return delay


def sawtooth_delays(base: float = 1.0, ceiling: float = 10.0) -> Iterator[float]:
    """Yield the infinite sawtooth delay sequence (1, 2, 4, 8, 1, ... by default)."""
    delay = base
    while True:
        yield delay
        delay += delay
        if delay > ceiling:
            delay = base


class wait_sawtooth(wait_base):  # noqa: N801
    """Tenacity wait strategy producing the sawtooth delay sequence.

    Named in tenacity's lower-case style so it reads like `wait_exponential`
    at call sites.

    Example:
        ```python
        Retrying(wait=wait_sawtooth(base=1.0, ceiling=10.0))
        # sleeps 1, 2, 4, 8, 1, 2, 4, 8, ...
        ```
    """

    def __init__(self, base: float = 1.0, ceiling: float = 10.0) -> None:
        if base <= 0:
            msg = f"base must be positive, got {base}"
            raise ValueError(msg)
        if ceiling < base:
            msg = f"ceiling ({ceiling}) must not be smaller than base ({base})"
            raise ValueError(msg)
        self.base = base
        self.ceiling = ceiling

    def __call__(self, retry_state: Any) -> float:
        return sawtooth_delay(retry_state.attempt_number, self.base, self.ceiling)


def build_stop(max_attempts: int, deadline: float | None = None) -> stop_base:
    """Build the stop condition for the retry loop.

    Retrying continues while attempts remain and, when `deadline` is set,
    the time since the first attempt has not reached it.

    Args:
        max_attempts: Total number of attempts allowed.
        deadline: Optional limit in seconds since the first attempt.

    Returns:
        A tenacity stop strategy.
    """
    stop = stop_after_attempt(max_attempts)
    if deadline is not None:
        stop = stop | stop_after_delay(deadline)
    return stop


# =============================================================================
# Retry Logging
# =============================================================================


def create_retry_logger(
    logger: logging.Logger,
    get_error_details: Callable[[BaseException], dict[str, Any]] | None = None,
    message: str = "Operation failed, retrying",
    context: dict[str, Any] | None = None,
) -> Callable[[Any], None]:
    """Create a retry logging callback for tenacity.

    This factory creates a callback function suitable for tenacity's
    `before_sleep` parameter. It logs retry attempts with structured
    context including attempt number, wait time, and error details.

    Args:
        logger: Logger instance to use for logging.
        get_error_details: Optional function to extract additional error
            details from exceptions.
        message: Log message.
        context: Optional fixed fields added to every record (e.g. the url).

    Returns:
        Callback function for tenacity's before_sleep parameter.
    """

    def log_retry(retry_state: Any) -> None:
        if retry_state.outcome is None or not retry_state.outcome.failed:
            return

        exc = retry_state.outcome.exception()
        wait_time = retry_state.next_action.sleep if retry_state.next_action else 0

        extra: dict[str, Any] = dict(context or {})
        extra.update(
            {
                "attempt": retry_state.attempt_number,
                "wait_seconds": round(wait_time, 2),
                "error_type": type(exc).__name__,
            }
        )

        if get_error_details is not None:
            extra.update(get_error_details(exc))

        logger.warning(message, extra=extra)

    return log_retry
