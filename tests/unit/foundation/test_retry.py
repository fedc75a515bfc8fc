"""Unit tests for foundation.retry module.

This file tests the retry building blocks used by the request executor:
- TransportErrorClassifier: retryable vs terminal transport failures
- sawtooth_delay / sawtooth_delays / wait_sawtooth: the backoff schedule
- build_stop: attempt budget combined with an optional deadline
- create_retry_logger: Factory for retry logging callbacks

# Test Coverage

The tests cover:
  - Classification: retryable categories, OTHER, non-transport exceptions
  - Error details: category and cause extraction
  - Backoff: doubling, reset after the ceiling, custom base/ceiling
  - Validation: non-positive base, ceiling below base
  - Stop: attempt budget, deadline
  - Logging: retry attempt logging, context fields, early returns

# Test Structure

Tests use pytest class-based organization with descriptive test names.
Stop strategies are exercised through a real tenacity Retrying loop with a
no-op sleep.

# Running Tests

Run with: pytest tests/unit/foundation/test_retry.py
"""

import itertools
import logging
from typing import Any
from unittest.mock import MagicMock

import pytest
from tenacity import RetryError, Retrying, retry_if_exception_type

from opsutils.foundation.exceptions import RequestFailedError, TransportError
from opsutils.foundation.http import TransportFailure
from opsutils.foundation.retry import (
    ErrorClassifier,
    TransportErrorClassifier,
    build_stop,
    create_retry_logger,
    sawtooth_delay,
    sawtooth_delays,
    wait_sawtooth,
)

# =============================================================================
# Classifier Tests
# =============================================================================


class TestTransportErrorClassifier:
    """Test suite for TransportErrorClassifier."""

    def test_implements_protocol(self) -> None:
        assert isinstance(TransportErrorClassifier(), ErrorClassifier)

    @pytest.mark.parametrize(
        "category",
        [c for c in TransportFailure if c is not TransportFailure.OTHER],
    )
    def test_retryable_categories(self, category: TransportFailure) -> None:
        classifier = TransportErrorClassifier()
        assert classifier.is_retriable(TransportError("failed", category)) is True

    def test_other_is_not_retriable(self) -> None:
        """Test that unclassified transport failures fail fast.

        **Why this test is important:**
          - DNS and certificate failures never heal by waiting
          - Retrying them would stall callers for minutes

        **What it tests:**
          - TransportError with category OTHER is not retriable
        """
        classifier = TransportErrorClassifier()
        assert classifier.is_retriable(TransportError("dns", TransportFailure.OTHER)) is False

    @pytest.mark.parametrize(
        "exc",
        [
            RequestFailedError(503, "Service Unavailable", "busy"),
            ValueError("bad"),
            ConnectionRefusedError(111, "refused"),
        ],
    )
    def test_non_transport_errors_are_not_retriable(self, exc: BaseException) -> None:
        assert TransportErrorClassifier().is_retriable(exc) is False

    def test_error_details_include_category_and_cause(self) -> None:
        error = TransportError("refused", TransportFailure.CONNECTION_REFUSED)
        error.__cause__ = ConnectionRefusedError(111, "refused")

        details = TransportErrorClassifier().get_error_details(error)

        assert details == {"category": "connection_refused", "cause": "ConnectionRefusedError"}

    def test_error_details_empty_for_other_exceptions(self) -> None:
        assert TransportErrorClassifier().get_error_details(ValueError("x")) == {}


# =============================================================================
# Backoff Tests
# =============================================================================


class TestSawtooth:
    """Test suite for the sawtooth backoff schedule."""

    def test_default_sequence(self) -> None:
        """Test the documented delay sequence.

        **Why this test is important:**
          - The delay doubles but never holds at the ceiling; it resets
          - Operators rely on this schedule when reading retry logs

        **What it tests:**
          - Delays for retries 1..10 are 1, 2, 4, 8, 1, 2, 4, 8, 1, 2
        """
        delays = [sawtooth_delay(n, 1.0, 10.0) for n in range(1, 11)]
        assert delays == [1, 2, 4, 8, 1, 2, 4, 8, 1, 2]

    def test_generator_matches_function(self) -> None:
        generated = list(itertools.islice(sawtooth_delays(), 10))
        assert generated == [sawtooth_delay(n, 1.0, 10.0) for n in range(1, 11)]

    def test_ceiling_is_inclusive(self) -> None:
        assert list(itertools.islice(sawtooth_delays(1.0, 8.0), 5)) == [1, 2, 4, 8, 1]

    def test_custom_base(self) -> None:
        assert list(itertools.islice(sawtooth_delays(0.5, 3.0), 5)) == [0.5, 1.0, 2.0, 0.5, 1.0]

    def test_wait_strategy_uses_attempt_number(self) -> None:
        wait = wait_sawtooth(base=1.0, ceiling=10.0)
        retry_state = MagicMock()

        observed = []
        for attempt in range(1, 7):
            retry_state.attempt_number = attempt
            observed.append(wait(retry_state))

        assert observed == [1, 2, 4, 8, 1, 2]

    def test_rejects_non_positive_base(self) -> None:
        with pytest.raises(ValueError, match="base must be positive"):
            wait_sawtooth(base=0, ceiling=10)

    def test_rejects_ceiling_below_base(self) -> None:
        with pytest.raises(ValueError, match="must not be smaller"):
            wait_sawtooth(base=5, ceiling=1)


# =============================================================================
# Stop Tests
# =============================================================================


class TestBuildStop:
    """Test suite for build_stop."""

    @staticmethod
    def _run(stop: Any) -> int:
        calls = 0

        def always_fails() -> None:
            nonlocal calls
            calls += 1
            raise ConnectionError("down")

        with pytest.raises(RetryError):
            Retrying(
                stop=stop,
                sleep=lambda _: None,
                wait=wait_sawtooth(),
                retry=retry_if_exception_type(ConnectionError),
            )(always_fails)
        return calls

    def test_attempt_budget(self) -> None:
        assert self._run(build_stop(4)) == 4

    def test_single_attempt(self) -> None:
        assert self._run(build_stop(1)) == 1

    def test_elapsed_deadline_stops_before_budget(self) -> None:
        """Test that a deadline already reached stops after the first attempt.

        **What it tests:**
          - With budget left, an exceeded deadline still ends the loop
        """
        stop = build_stop(30, deadline=1.0)
        retry_state = MagicMock()
        retry_state.attempt_number = 1
        retry_state.seconds_since_start = 5.0

        assert stop(retry_state) is True

    def test_deadline_not_reached_continues(self) -> None:
        stop = build_stop(30, deadline=60.0)
        retry_state = MagicMock()
        retry_state.attempt_number = 2
        retry_state.seconds_since_start = 3.0

        assert stop(retry_state) is False


# =============================================================================
# create_retry_logger Tests
# =============================================================================


def _failed_retry_state(exc: BaseException, attempt: int, sleep: float) -> MagicMock:
    retry_state = MagicMock()
    retry_state.outcome = MagicMock(failed=True)
    retry_state.outcome.exception.return_value = exc
    retry_state.attempt_number = attempt
    retry_state.next_action = MagicMock(sleep=sleep)
    return retry_state


class TestCreateRetryLogger:
    """Test suite for create_retry_logger factory function."""

    def test_logs_retry_attempt_with_basic_info(self) -> None:
        """Test that retry logger logs basic retry information.

        **Why this test is important:**
          - Retry logs must include attempt number and wait time
          - Critical for observability and debugging

        **What it tests:**
          - Warning log is emitted
          - Attempt number, wait time and error type are included
        """
        mock_logger = MagicMock(spec=logging.Logger)
        log_retry = create_retry_logger(mock_logger)

        log_retry(_failed_retry_state(ValueError("test error"), attempt=2, sleep=1.5))

        mock_logger.warning.assert_called_once()
        call_args = mock_logger.warning.call_args
        assert call_args[0][0] == "Operation failed, retrying"
        extra = call_args[1]["extra"]
        assert extra["attempt"] == 2
        assert extra["wait_seconds"] == 1.5
        assert extra["error_type"] == "ValueError"

    def test_context_and_error_details_are_merged(self) -> None:
        mock_logger = MagicMock(spec=logging.Logger)
        classifier = TransportErrorClassifier()
        log_retry = create_retry_logger(
            mock_logger,
            classifier.get_error_details,
            "Server failed to respond, retrying",
            context={"url": "http://x/ok"},
        )

        error = TransportError("timed out", TransportFailure.HEADERS_TIMEOUT)
        log_retry(_failed_retry_state(error, attempt=3, sleep=4))

        extra = mock_logger.warning.call_args[1]["extra"]
        assert extra["url"] == "http://x/ok"
        assert extra["category"] == "headers_timeout"
        assert extra["attempt"] == 3

    def test_early_return_when_outcome_none(self) -> None:
        mock_logger = MagicMock(spec=logging.Logger)
        log_retry = create_retry_logger(mock_logger)
        retry_state = MagicMock()
        retry_state.outcome = None

        log_retry(retry_state)

        mock_logger.warning.assert_not_called()

    def test_early_return_when_outcome_succeeded(self) -> None:
        mock_logger = MagicMock(spec=logging.Logger)
        log_retry = create_retry_logger(mock_logger)
        retry_state = MagicMock()
        retry_state.outcome = MagicMock(failed=False)

        log_retry(retry_state)

        mock_logger.warning.assert_not_called()
