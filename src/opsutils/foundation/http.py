"""HTTP request executor with bounded retries on transient transport failures.

This module provides the blocking request/response wrapper used by every
opsutils client that talks HTTP (Slack webhooks, ECR layer downloads).

## Usage

```python
from opsutils.config import HTTPClientConfig
from opsutils.foundation.http import HTTPExecutor, Method

executor = HTTPExecutor(config=HTTPClientConfig(timeout=10))
result = executor.exchange(Method.POST, "https://example.com/api", {"a": 1})
print(result.status_code, result.body_text)
executor.close()
```

## Transport Selection

- `https` targets get a fresh session whose adapter enforces the configured
  minimum TLS version.
- `http` targets share one pooled session per executor, bounded by
  `pool_connections` / `pool_maxsize`.
- An injected `session` is used for every scheme (tests, custom adapters).

urllib3's built-in retry is disabled on every adapter (`max_retries=0`); the
executor's tenacity loop is the only retry layer.

## Retry Policy

Only transport failures (no response received) are retried, and only when
their `TransportFailure` category is retryable. The delay follows a sawtooth:
it doubles after each retry and resets to `backoff_base` once it exceeds
`backoff_ceiling` (1, 2, 4, 8, 1, 2, 4, 8, ... seconds by default). Retrying
continues while the attempt budget (`max_retries`) remains and, when
`retry_deadline` is set, the time since the first attempt is below it.

Any response, whatever its status, is terminal: 200 is success for every
method, 201 also for POST and 204 also for DELETE. Every other status raises
`RequestFailedError` carrying the status line and body text.

## Cancellation

A `threading.Event` is checked before each attempt, while an attempt is in
flight, after each attempt returns and during retry sleeps. Attempts run on a
worker thread so a cancel abandons the one in flight: the caller gets
`ExchangeCancelledError` at once and a late response is closed when it
arrives.

## Response Bodies

Requests are sent with `stream=True`, so the retry loop ends once status and
headers arrive. The body is read exactly once afterwards; a failure while
reading it raises `ReadingResponseBodyError` and the request is not sent
again.
"""

import http.client
import json
import logging
import ssl
import threading
from collections.abc import Callable, Iterator, Mapping
from concurrent import futures
from enum import Enum
from typing import Any, Protocol, runtime_checkable
from urllib.parse import urlsplit

import attrs
import requests
import urllib3.exceptions
from requests.adapters import HTTPAdapter
from tenacity import RetryError, Retrying, retry_if_exception

from opsutils.config import HTTPClientConfig
from opsutils.core.params import ObjParams

from .exceptions import (
    ExchangeCancelledError,
    InvalidTargetError,
    ReadingResponseBodyError,
    RequestBodyError,
    RequestFailedError,
    TransportError,
)
from .logger import TRACE, traced
from .retry import (
    TransportErrorClassifier,
    build_stop,
    create_retry_logger,
    sawtooth_delay,
    sawtooth_delays,
    wait_sawtooth,
)

__all__ = [
    "ExchangeResult",
    "HTTPExecutor",
    "Method",
    "RequestExecutor",
    "TLSAdapter",
    "TransportFailure",
    "classify_transport_error",
    "create_pooled_session",
    "create_tls_session",
    "sawtooth_delay",
    "sawtooth_delays",
    "wait_sawtooth",
]

logger = logging.getLogger("opsutils.foundation.http")

SCHEMES: frozenset[str] = frozenset({"http", "https"})

# How often an in-flight attempt checks the cancellation signal
CANCEL_POLL_SECONDS = 0.05


class Method(str, Enum):
    """HTTP methods supported by the executor."""

    GET = "GET"
    POST = "POST"
    DELETE = "DELETE"
    PUT = "PUT"
    PATCH = "PATCH"

    @classmethod
    def parse(cls, value: "Method | str | None") -> "Method":
        """Return the Method for `value`; None means GET, strings are case-insensitive.

        Raises:
            ValueError: If `value` names an unsupported method.
        """
        if value is None:
            return cls.GET
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError as e:
            msg = f"unsupported HTTP method: {value!r}"
            raise ValueError(msg) from e


# Extra success statuses on top of 200, by method
_EXTRA_SUCCESS_STATUS: dict[Method, int] = {
    Method.POST: 201,
    Method.DELETE: 204,
}


def is_success(method: Method, status_code: int) -> bool:
    """Return True when `status_code` is a success for `method`."""
    return status_code == 200 or _EXTRA_SUCCESS_STATUS.get(method) == status_code


# =============================================================================
# Transport Failure Classification
# =============================================================================


class TransportFailure(Enum):
    """Category of a transport-level failure, assigned once when it is raised."""

    CONNECTION_REFUSED = "connection_refused"
    HANDSHAKE_TIMEOUT = "handshake_timeout"
    POOL_EXHAUSTED = "pool_exhausted"
    IO_TIMEOUT = "io_timeout"
    UNEXPECTED_EOF = "unexpected_eof"
    HEADERS_TIMEOUT = "headers_timeout"
    OTHER = "other"

    @property
    def retryable(self) -> bool:
        return self is not TransportFailure.OTHER


_POOL_ERRORS = (urllib3.exceptions.EmptyPoolError, urllib3.exceptions.ClosedPoolError)
_HEADERS_TIMEOUT_ERRORS = (requests.exceptions.ReadTimeout, urllib3.exceptions.ReadTimeoutError)
_IO_TIMEOUT_ERRORS = (
    requests.exceptions.ConnectTimeout,
    urllib3.exceptions.ConnectTimeoutError,
    TimeoutError,
)
_EOF_ERRORS = (
    requests.exceptions.ChunkedEncodingError,
    urllib3.exceptions.ProtocolError,
    http.client.IncompleteRead,
    http.client.RemoteDisconnected,
    ssl.SSLEOFError,
)


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield `exc` and every exception reachable through args, reason, cause and context."""
    seen: set[int] = set()
    pending: list[BaseException] = [exc]
    while pending:
        current = pending.pop(0)
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current

        linked: list[Any] = list(getattr(current, "args", ()))
        linked.append(getattr(current, "reason", None))
        linked.append(current.__cause__)
        linked.append(current.__context__)
        pending.extend(item for item in linked if isinstance(item, BaseException))


def _is_handshake_timeout(exc: BaseException) -> bool:
    if not isinstance(exc, (requests.exceptions.SSLError, ssl.SSLError, urllib3.exceptions.SSLError)):
        return False
    text = str(exc).lower()
    return "handshake" in text or "timed out" in text


def classify_transport_error(exc: BaseException) -> TransportFailure:
    """Classify a transport exception into a `TransportFailure` category.

    The exception chain is walked once (args, `reason`, `__cause__`,
    `__context__`) and categories are checked in priority order, so a
    refused connection wrapped in several layers of requests/urllib3
    exceptions is still recognized. Anything unrecognized, including DNS
    resolution failures and certificate errors, is `OTHER`.

    Args:
        exc: Exception raised while sending a request.

    Returns:
        The failure category.
    """
    chain = list(_exception_chain(exc))

    def any_of(types: type[BaseException] | tuple[type[BaseException], ...]) -> bool:
        return any(isinstance(item, types) for item in chain)

    if any_of(ConnectionRefusedError):
        return TransportFailure.CONNECTION_REFUSED
    if any_of(_POOL_ERRORS):
        return TransportFailure.POOL_EXHAUSTED
    if any(_is_handshake_timeout(item) for item in chain):
        return TransportFailure.HANDSHAKE_TIMEOUT
    if any_of(_HEADERS_TIMEOUT_ERRORS):
        return TransportFailure.HEADERS_TIMEOUT
    # NewConnectionError (and DNS NameResolutionError) subclass ConnectTimeoutError
    if any(
        isinstance(item, _IO_TIMEOUT_ERRORS) and not isinstance(item, urllib3.exceptions.NewConnectionError)
        for item in chain
    ):
        return TransportFailure.IO_TIMEOUT
    if any_of(_EOF_ERRORS):
        return TransportFailure.UNEXPECTED_EOF
    return TransportFailure.OTHER


# =============================================================================
# Sessions
# =============================================================================


class TLSAdapter(HTTPAdapter):
    """HTTPAdapter whose pool manager enforces a minimum TLS version."""

    def __init__(self, min_tls_version: str = "TLSv1_2", **kwargs: Any) -> None:
        # init_poolmanager runs inside HTTPAdapter.__init__
        self.min_tls_version = min_tls_version
        super().__init__(**kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        context = ssl.create_default_context()
        context.minimum_version = ssl.TLSVersion[self.min_tls_version]
        kwargs["ssl_context"] = context
        super().init_poolmanager(*args, **kwargs)


def create_pooled_session(config: HTTPClientConfig) -> requests.Session:
    """Create the shared plain-HTTP session with a bounded connection pool.

    Args:
        config: Executor configuration (pool sizes).

    Returns:
        A requests.Session with a pooled adapter mounted for `http://`.
    """
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=config.pool_connections,
        pool_maxsize=config.pool_maxsize,
        max_retries=0,
    )
    session.mount("http://", adapter)
    return session


def create_tls_session(config: HTTPClientConfig) -> requests.Session:
    """Create a fresh session for `https://` targets enforcing `min_tls_version`."""
    session = requests.Session()
    session.mount("https://", TLSAdapter(min_tls_version=config.min_tls_version, max_retries=0))
    return session


# =============================================================================
# Exchange Result
# =============================================================================


class ExchangeResult:
    """The outcome of one exchange: status, headers and a cached body text.

    The body is read at most once; later reads of `body_text` return the
    cached string. A literal `null` body is normalized to `""`.

    Can be used as a context manager, closing the response on exit.
    """

    def __init__(self, response: requests.Response) -> None:
        self._response = response
        self._body_text: str | None = None
        self._closed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def reason(self) -> str:
        return self._response.reason or ""

    @property
    def url(self) -> str:
        return self._response.url

    @property
    def headers(self) -> Mapping[str, str]:
        return self._response.headers

    @property
    def body_text(self) -> str:
        """Response body as text, read once and cached.

        Raises:
            ReadingResponseBodyError: If the body stream cannot be read.
        """
        if self._body_text is None:
            try:
                raw = self._response.content
            except (requests.RequestException, urllib3.exceptions.HTTPError, OSError, RuntimeError) as e:
                msg = f"reading response body: {e}"
                raise ReadingResponseBodyError(msg) from e
            text = (raw or b"").decode("utf-8", errors="replace")
            self._body_text = "" if text == "null" else text
        return self._body_text

    def close(self) -> None:
        """Release the response stream; safe to call more than once, never raises."""
        if self._closed:
            return
        self._closed = True
        try:
            self._response.close()
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to close response", extra={"url": self.url, "error": str(e)})

    def __enter__(self) -> "ExchangeResult":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


@runtime_checkable
class RequestExecutor(Protocol):
    """Anything that can perform an HTTP exchange.

    Clients depend on this protocol rather than on `HTTPExecutor`, so tests
    can substitute a fake.
    """

    def exchange(
        self,
        method: Method | str | None,
        target: str | None,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        *,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> ExchangeResult: ...

    def close(self) -> None: ...


# =============================================================================
# Executor
# =============================================================================

_classifier = TransportErrorClassifier()


def _validate_target(target: Any) -> str:
    if not isinstance(target, str) or not target.strip():
        msg = "target is required"
        raise InvalidTargetError(msg)
    parts = urlsplit(target)
    if parts.scheme.lower() not in SCHEMES or not parts.netloc:
        msg = f"invalid target {target!r}: expected an absolute http or https URL"
        raise InvalidTargetError(msg)
    return target


def _encode_body(body: Any) -> bytes:
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    try:
        return json.dumps(body, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as e:
        msg = f"serializing request body: {e}"
        raise RequestBodyError(msg) from e


@attrs.define(frozen=False, slots=True)
class HTTPExecutor:
    """Blocking HTTP executor with a sawtooth retry loop over transport failures.

    Attributes:
        config: Timeouts, retry budget, backoff and pool settings.
        params: Object parameters; `params.cancel` is the default
            cancellation signal for every exchange.
        session: Optional session used for every scheme instead of the
            built-in pooled/TLS sessions.
        sleep: Optional sleep function used between retries. When unset the
            executor waits on the cancellation event so a cancel interrupts
            the sleep.

    Note:
        One executor may be shared across threads. Each call keeps its retry
        state locally; the pooled session is the only shared state.
    """

    config: HTTPClientConfig = attrs.field(factory=HTTPClientConfig)
    params: ObjParams = attrs.field(factory=ObjParams.default)
    session: requests.Session | None = attrs.field(default=None)
    sleep: Callable[[float], None] | None = attrs.field(default=None)
    _pooled: requests.Session = attrs.field(init=False, default=None)
    _workers: futures.ThreadPoolExecutor = attrs.field(init=False, default=None)

    def __attrs_post_init__(self) -> None:
        self._pooled = self.session if self.session is not None else create_pooled_session(self.config)
        self._workers = futures.ThreadPoolExecutor(
            max_workers=self.config.pool_maxsize,
            thread_name_prefix="opsutils-http",
        )

    @classmethod
    def from_config(cls, config: HTTPClientConfig, params: ObjParams | None = None) -> "HTTPExecutor":
        """Create an executor from an HTTPClientConfig.

        Example:
            ```python
            from opsutils.config import get_settings

            executor = HTTPExecutor.from_config(get_settings().http)
            ```
        """
        return cls(config=config, params=params or ObjParams.default())

    @traced
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
        """Send a request and return its result once a success status is received.

        Args:
            method: HTTP method; None means GET.
            target: Absolute http or https URL.
            body: Request body, sent for POST only. `str` and `bytes` are sent
                unchanged; any other value is serialized to JSON.
            headers: Extra request headers; entries with empty values are
                skipped.
            timeout: Per-attempt timeout in seconds (default: config.timeout).
            cancel: Cancellation signal (default: params.cancel).

        Returns:
            The ExchangeResult, with the body already read and cached.

        Raises:
            InvalidTargetError: The target is missing or malformed; no attempt
                was made.
            RequestBodyError: The body could not be serialized.
            TransportError: A non-retryable transport failure, or the retry
                budget/deadline ran out.
            RequestFailedError: A response was received with a non-success
                status.
            ReadingResponseBodyError: The response body could not be read.
            ExchangeCancelledError: The cancellation signal fired.
        """
        url = _validate_target(target)
        verb = Method.parse(method)
        cancel = cancel if cancel is not None else self.params.cancel

        request_headers = {k: v for k, v in (headers or {}).items() if v}
        payload: bytes | None = None
        if verb is Method.POST:
            payload = _encode_body(body)
            if logger.isEnabledFor(TRACE):
                logger.log(TRACE, "Request body", extra={"body": payload.decode("utf-8", errors="replace")})
            request_headers["Content-Type"] = "application/json"
            request_headers["Content-Length"] = str(len(payload))

        session, fresh = self._session_for(url)
        logger.debug("Sending request", extra={"url": url, "method": verb.value})
        try:
            response = self._send_with_retry(
                session,
                verb,
                url,
                payload,
                request_headers,
                timeout if timeout is not None else self.config.timeout,
                cancel,
            )
            result = ExchangeResult(response)
            try:
                body_text = result.body_text
            finally:
                result.close()
        finally:
            if fresh:
                session.close()

        if not is_success(verb, result.status_code):
            raise RequestFailedError(result.status_code, result.reason, body_text)
        return result

    def get(self, target: str, **kwargs: Any) -> ExchangeResult:
        return self.exchange(Method.GET, target, **kwargs)

    def post(self, target: str, body: Any = None, **kwargs: Any) -> ExchangeResult:
        return self.exchange(Method.POST, target, body, **kwargs)

    def delete(self, target: str, **kwargs: Any) -> ExchangeResult:
        return self.exchange(Method.DELETE, target, **kwargs)

    def close(self) -> None:
        """Close the shared session and stop the attempt workers."""
        self._workers.shutdown(wait=False)
        self._pooled.close()

    def _session_for(self, url: str) -> tuple[requests.Session, bool]:
        """Return the session for `url` and whether it was created for this call."""
        if self.session is None and urlsplit(url).scheme.lower() == "https":
            return create_tls_session(self.config), True
        return self._pooled, False

    def _sleeper(self, cancel: threading.Event) -> Callable[[float], None]:
        def sleep(seconds: float) -> None:
            if self.sleep is not None:
                self.sleep(seconds)
                cancelled = cancel.is_set()
            else:
                cancelled = cancel.wait(seconds)
            if cancelled:
                msg = "exchange cancelled while waiting to retry"
                raise ExchangeCancelledError(msg)

        return sleep

    def _send_with_retry(
        self,
        session: requests.Session,
        method: Method,
        url: str,
        payload: bytes | None,
        headers: dict[str, str],
        timeout: float,
        cancel: threading.Event,
    ) -> requests.Response:
        """Send the request, retrying retryable transport failures.

        Raises:
            TransportError: Non-retryable failure, or retries exhausted.
            ExchangeCancelledError: The cancellation signal fired.
        """
        log_retry = create_retry_logger(
            logger,
            _classifier.get_error_details,
            "Server failed to respond, retrying",
            context={"url": url, "method": method.value},
        )
        try:
            for attempt in Retrying(
                sleep=self._sleeper(cancel),
                stop=build_stop(self.config.max_retries, self.config.retry_deadline),
                wait=wait_sawtooth(self.config.backoff_base, self.config.backoff_ceiling),
                retry=retry_if_exception(_classifier.is_retriable),
                before_sleep=log_retry,
                reraise=False,  # Wrap in RetryError on exhaustion
            ):
                with attempt:
                    return self._attempt(session, method, url, payload, headers, timeout, cancel)
        except RetryError as e:
            last = e.last_attempt.exception()
            attempts = e.last_attempt.attempt_number
            category = last.category if isinstance(last, TransportError) else TransportFailure.OTHER
            msg = f"{method.value} {url} failed after {attempts} attempts: {last}"
            logger.error(msg, extra={"url": url, "attempts": attempts, "category": category.value})
            raise TransportError(msg, category) from (last.__cause__ if last is not None else None)

    def _attempt(
        self,
        session: requests.Session,
        method: Method,
        url: str,
        payload: bytes | None,
        headers: dict[str, str],
        timeout: float,
        cancel: threading.Event,
    ) -> requests.Response:
        if cancel.is_set():
            msg = f"{method.value} {url} cancelled"
            raise ExchangeCancelledError(msg)
        # stream=True: only status and headers are read here, the body after the loop
        future = self._workers.submit(
            session.request,
            method.value,
            url,
            data=payload,
            headers=headers,
            timeout=timeout,
            stream=True,
        )
        while not futures.wait([future], timeout=CANCEL_POLL_SECONDS).done:
            if cancel.is_set():
                future.cancel()
                future.add_done_callback(_discard_abandoned)
                msg = f"{method.value} {url} cancelled while in flight"
                raise ExchangeCancelledError(msg)
        try:
            response = future.result()
        except (requests.RequestException, urllib3.exceptions.HTTPError, OSError) as e:
            category = classify_transport_error(e)
            logger.warning(
                "Failed to send request",
                extra={"url": url, "error": str(e), "category": category.value},
            )
            msg = f"{method.value} {url}: {e}"
            raise TransportError(msg, category) from e
        if cancel.is_set():
            response.close()
            msg = f"{method.value} {url} cancelled"
            raise ExchangeCancelledError(msg)
        return response


def _discard_abandoned(future: "futures.Future[requests.Response]") -> None:
    """Close the response of an attempt abandoned by cancellation."""
    if future.cancelled() or future.exception() is not None:
        return
    future.result().close()
