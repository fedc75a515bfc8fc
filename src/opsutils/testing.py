"""Test doubles for code that depends on a RequestExecutor.

`FakeExecutor` records every exchange and replays canned responses, so
clients can be tested without sockets or mocks of requests internals.

```python
from opsutils.testing import FakeExecutor, build_response

executor = FakeExecutor([build_response(200, '{"ok": true}')])
slack = SlackMessages(params, executor=executor, config=SlackConfig())
slack.post("hello")
assert executor.calls[0].method is Method.POST
```
"""

import threading
from collections.abc import Mapping
from http import HTTPStatus
from typing import Any, NamedTuple

import requests

from opsutils.foundation.http import ExchangeResult, Method


def build_response(
    status_code: int = 200,
    body: bytes | str = b"",
    reason: str | None = None,
    url: str = "http://example.com/",
) -> requests.Response:
    """Build a requests.Response with its content already loaded."""
    response = requests.Response()
    response.status_code = status_code
    response._content = body.encode("utf-8") if isinstance(body, str) else body  # noqa: SLF001
    response._content_consumed = True  # noqa: SLF001
    response.reason = reason if reason is not None else HTTPStatus(status_code).phrase
    response.url = url
    response.encoding = "utf-8"
    return response


class ExchangeCall(NamedTuple):
    """One recorded call to `FakeExecutor.exchange`."""

    method: Method
    target: str | None
    body: Any
    headers: Mapping[str, str] | None


class FakeExecutor:
    """In-memory RequestExecutor that records calls and replays canned responses.

    Each call pops the next response (200 with an empty body once the list is
    exhausted). When `error` is set every call raises it instead.
    """

    def __init__(
        self,
        responses: list[requests.Response] | None = None,
        error: BaseException | None = None,
    ) -> None:
        self.responses = list(responses or [])
        self.error = error
        self.calls: list[ExchangeCall] = []
        self.closed = False

    def exchange(
        self,
        method: Method | str | None,
        target: str | None,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        *,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> ExchangeResult:
        self.calls.append(ExchangeCall(Method.parse(method), target, body, headers))
        if self.error is not None:
            raise self.error
        response = self.responses.pop(0) if self.responses else build_response(200)
        return ExchangeResult(response)

    def close(self) -> None:
        self.closed = True
