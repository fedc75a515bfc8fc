"""Exception classes for foundation utilities.

This module provides exception classes used by foundation components,
most notably the HTTP request executor in `foundation.http`.

## Exception Hierarchy

```text
FoundationError
└── ExchangeError
    ├── InvalidTargetError
    ├── RequestBodyError
    ├── ReadingResponseBodyError
    ├── RequestFailedError
    ├── TransportError
    └── ExchangeCancelledError
```
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .http import TransportFailure


class FoundationError(Exception):
    """Base exception class for foundation-related errors."""


class ExchangeError(FoundationError):
    """Base exception for failures of a single HTTP exchange."""


class InvalidTargetError(ExchangeError):
    """The exchange target is missing or is not an absolute http(s) URL.

    Raised before any network attempt is made.
    """


class RequestBodyError(ExchangeError):
    """The request body could not be serialized to JSON.

    Serialization failures are terminal and never retried.
    """


class ReadingResponseBodyError(ExchangeError):
    """The response body stream could not be read."""


class RequestFailedError(ExchangeError):
    """A response was received but its status is not a success for the method.

    Attributes:
        status_code: Numeric status code of the terminal response.
        reason: Status line text (e.g. "Internal Server Error").
        body_text: Response body text, already read and cached.
    """

    def __init__(self, status_code: int, reason: str, body_text: str) -> None:
        self.status_code = status_code
        self.reason = reason
        self.body_text = body_text
        super().__init__(f"request failed: {status_code} {reason} {body_text}".rstrip())


class TransportError(ExchangeError):
    """A transport-level failure (no response was received).

    The raw transport exception is chained as `__cause__`.

    Attributes:
        category: Classified failure category. Retryable categories are only
            surfaced here once the retry budget or deadline is exhausted.
    """

    def __init__(self, message: str, category: TransportFailure) -> None:
        self.category = category
        super().__init__(message)


class ExchangeCancelledError(ExchangeError):
    """The caller's cancellation signal fired during the exchange."""
