"""Exception hierarchy for the opsutils clients and helpers.

This module defines a framework-agnostic exception hierarchy that allows:
- Client code (Slack, ECR) to raise errors without CLI dependencies
- CLI tools and automation scripts to handle errors consistently
- Tests to assert on a small, stable set of types

## Exception Hierarchy

All exceptions inherit from `OpsUtilsError`:

- `ImageLookupError`: An ECR image, manifest or config lookup failed

Errors raised by the HTTP request executor live in
`opsutils.foundation.exceptions` and are re-exported here so callers need a
single import.

## Usage

```python
from opsutils.core.exceptions import ImageLookupError, RequestFailedError

try:
    labels = images.get_config_labels("runner", "2.319.1", digest)
except ImageLookupError as e:
    log.error("lookup failed: %s", e)
```
"""

from opsutils.foundation.exceptions import (  # noqa: F401
    ExchangeCancelledError,
    ExchangeError,
    InvalidTargetError,
    ReadingResponseBodyError,
    RequestBodyError,
    RequestFailedError,
    TransportError,
)


class OpsUtilsError(Exception):
    """Base exception class for all opsutils client and helper errors.

    All custom exceptions in this module inherit from `OpsUtilsError` to allow
    catch-all error handling in CLI tools.
    """


class ImageLookupError(OpsUtilsError):
    """Exception raised when an ECR image lookup fails.

    Examples:
        - `batch_get_image` returns an SDK error
        - The image manifest or config layer is not valid JSON
        - Downloading the config layer fails
    """
