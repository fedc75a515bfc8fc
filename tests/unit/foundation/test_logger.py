"""Unit tests for foundation.logger module.

# Test Coverage

The tests cover:
  - parse_level: known names, case handling, invalid names
  - trim_source_path: file name only, partial paths, full paths
  - CustomJSONFormatter: fields, custom level labels, source info, errors,
    extra attributes, non-serializable values
  - build_logging_config / configure_logging: JSON and text formats
  - traced: entry/exit records at TRACE, silent otherwise
  - to_json / error_report helpers

# Running Tests

Run with: pytest tests/unit/foundation/test_logger.py
"""

import json
import logging
import sys
from unittest.mock import MagicMock, patch

import pytest

from opsutils.config import LoggingConfig
from opsutils.core.exceptions import OpsUtilsError
from opsutils.foundation.logger import (
    FATAL,
    TRACE,
    CustomJSONFormatter,
    build_logging_config,
    configure_logging,
    error_report,
    parse_level,
    to_json,
    traced,
    trim_source_path,
)


def _record(
    level: int = logging.INFO,
    msg: str = "hello",
    pathname: str = "/srv/app/opsutils/clients/slack.py",
    exc_info: object = None,
    **extra: object,
) -> logging.LogRecord:
    record = logging.LogRecord(
        name="opsutils.test",
        level=level,
        pathname=pathname,
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,  # type: ignore[arg-type]
        func="post",
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# =============================================================================
# Level Tests
# =============================================================================


class TestParseLevel:
    """Test suite for parse_level."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("TRACE", TRACE),
            ("DEBUG", logging.DEBUG),
            ("INFO", logging.INFO),
            ("WARN", logging.WARNING),
            ("warning", logging.WARNING),
            ("ERROR", logging.ERROR),
            ("FATAL", FATAL),
            (None, logging.INFO),
        ],
    )
    def test_known_levels(self, name: str | None, expected: int) -> None:
        assert parse_level(name) == expected

    def test_invalid_level_warns_and_defaults_to_info(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert parse_level("LOUD") == logging.INFO
        assert "Invalid tracing level: LOUD" in capsys.readouterr().err

    def test_trace_is_registered(self) -> None:
        assert logging.getLevelName(TRACE) == "TRACE"


# =============================================================================
# Source Path Tests
# =============================================================================


class TestTrimSourcePath:
    """Test suite for trim_source_path."""

    path = "/srv/app/opsutils/clients/slack.py"

    @pytest.mark.parametrize(
        ("depth", "expected"),
        [
            (0, "slack.py"),
            (1, "clients/slack.py"),
            (2, "opsutils/clients/slack.py"),
            (10, "srv/app/opsutils/clients/slack.py"),
            (-1, "/srv/app/opsutils/clients/slack.py"),
        ],
    )
    def test_depths(self, depth: int, expected: str) -> None:
        """Test how many directory elements are kept.

        **What it tests:**
          - 0 keeps only the file name
          - Positive depths keep that many trailing directories, clamped
          - Negative depths keep the full path
        """
        assert trim_source_path(self.path, depth) == expected

    def test_bare_file_name(self) -> None:
        assert trim_source_path("slack.py", 3) == "slack.py"


# =============================================================================
# Formatter Tests
# =============================================================================


class TestCustomJSONFormatter:
    """Test suite for CustomJSONFormatter."""

    def test_standard_fields_and_source(self) -> None:
        """Test that records are rendered as JSON with source information.

        **Why this test is important:**
          - Log shippers parse these fields; their names must be stable

        **What it tests:**
          - time, level, logger_name and message are present
          - file is trimmed to the configured depth, line and function set
        """
        formatter = CustomJSONFormatter(fmt="%(asctime)s", source_path_depth=1)

        data = json.loads(formatter.format(_record()))

        assert data["level"] == "INFO"
        assert data["logger_name"] == "opsutils.test"
        assert data["message"] == "hello"
        assert data["time"]
        assert data["file"] == "clients/slack.py"
        assert data["line"] == 42
        assert data["function"] == "post"

    def test_source_can_be_disabled(self) -> None:
        formatter = CustomJSONFormatter(fmt="%(asctime)s", include_source=False)

        data = json.loads(formatter.format(_record()))

        assert "file" not in data
        assert "line" not in data

    @pytest.mark.parametrize(("level", "label"), [(TRACE, "TRACE"), (FATAL, "FATAL"), (logging.WARNING, "WARNING")])
    def test_level_labels(self, level: int, label: str) -> None:
        formatter = CustomJSONFormatter(fmt="%(asctime)s")
        assert json.loads(formatter.format(_record(level=level)))["level"] == label

    def test_extra_attributes_are_included(self) -> None:
        formatter = CustomJSONFormatter(fmt="%(asctime)s")

        data = json.loads(formatter.format(_record(url="http://x/ok", attempt=2)))

        assert data["url"] == "http://x/ok"
        assert data["attempt"] == 2

    def test_non_serializable_extra_is_stringified(self) -> None:
        formatter = CustomJSONFormatter(fmt="%(asctime)s")

        data = json.loads(formatter.format(_record(payload=frozenset({"a"}))))

        assert data["payload"] == "frozenset({'a'})"

    def test_error_dict_gets_trace(self) -> None:
        formatter = CustomJSONFormatter(fmt="%(asctime)s")
        try:
            raise ValueError("boom")
        except ValueError:
            exc_info = sys.exc_info()

        data = json.loads(formatter.format(_record(exc_info=exc_info, error={"type": "ValueError"})))

        assert data["error"]["type"] == "ValueError"
        assert "ValueError: boom" in data["error"]["trace"]

    def test_exc_info_without_error_extra(self) -> None:
        formatter = CustomJSONFormatter(fmt="%(asctime)s")
        try:
            raise KeyError("missing")
        except KeyError:
            exc_info = sys.exc_info()

        data = json.loads(formatter.format(_record(exc_info=exc_info)))

        assert "KeyError" in data["error"]["trace"]

    def test_string_error_extra(self) -> None:
        formatter = CustomJSONFormatter(fmt="%(asctime)s")
        assert json.loads(formatter.format(_record(error="refused")))["error"] == "refused"


# =============================================================================
# Configuration Tests
# =============================================================================


class TestLoggingConfiguration:
    """Test suite for build_logging_config and configure_logging."""

    def test_json_config(self) -> None:
        config = build_logging_config(LoggingConfig(level="DEBUG", source=False, source_path_depth=2))

        formatter = config["formatters"]["standard"]
        assert formatter["()"] is CustomJSONFormatter
        assert formatter["include_source"] is False
        assert formatter["source_path_depth"] == 2
        assert config["loggers"]["opsutils"]["level"] == logging.DEBUG
        assert config["handlers"]["default"]["stream"] == "ext://sys.stdout"

    def test_text_config(self) -> None:
        config = build_logging_config(LoggingConfig(format="text", level="TRACE"))

        formatter = config["formatters"]["standard"]
        assert "%(levelname)s" in formatter["format"]
        assert "%(filename)s:%(lineno)d" in formatter["format"]
        assert config["root"]["level"] == TRACE

    def test_configure_logging_applies_dict_config(self) -> None:
        with patch("logging.config.dictConfig") as dict_config:
            logger = configure_logging(LoggingConfig(level="ERROR"))

        dict_config.assert_called_once()
        assert dict_config.call_args.args[0]["loggers"]["opsutils"]["level"] == logging.ERROR
        assert logger.name == "opsutils"

    def test_configure_logging_reads_environment(self) -> None:
        with (
            patch.dict("os.environ", {"LOG_LEVEL": "WARN", "LOG_FORMAT": "text"}),
            patch("logging.config.dictConfig") as dict_config,
        ):
            configure_logging()

        config = dict_config.call_args.args[0]
        assert config["loggers"]["opsutils"]["level"] == logging.WARNING
        assert "format" in config["formatters"]["standard"]


# =============================================================================
# Helper Tests
# =============================================================================


@traced
def _traced_add(a: int, b: int) -> int:
    return a + b


class TestTraced:
    """Test suite for the traced decorator."""

    def test_logs_entry_and_exit_at_trace(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test function entry/exit tracing.

        **What it tests:**
          - Entering and Exiting records are emitted at TRACE
          - The wrapped function's qualified name is attached
          - The return value passes through
        """
        with caplog.at_level(TRACE, logger=__name__):
            assert _traced_add(1, 2) == 3

        messages = [(r.getMessage(), r.levelno, r.function) for r in caplog.records]  # type: ignore[attr-defined]
        assert messages == [
            ("Entering function", TRACE, "_traced_add"),
            ("Exiting function", TRACE, "_traced_add"),
        ]

    def test_silent_when_trace_disabled(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.DEBUG, logger=__name__):
            assert _traced_add(2, 2) == 4

        assert caplog.records == []

    def test_exit_logged_when_function_raises(self, caplog: pytest.LogCaptureFixture) -> None:
        @traced
        def explode() -> None:
            raise RuntimeError("boom")

        with caplog.at_level(TRACE, logger=__name__), pytest.raises(RuntimeError):
            explode()

        assert [r.getMessage() for r in caplog.records] == ["Entering function", "Exiting function"]


class TestToJson:
    """Test suite for to_json."""

    def test_indents_two_spaces(self) -> None:
        assert to_json({"a": [1]}) == '{\n  "a": [\n    1\n  ]\n}'

    def test_failure_returns_error_text_and_warns(self) -> None:
        logger = MagicMock(spec=logging.Logger)

        text = to_json({"a": {1, 2}}, logger)

        assert "not JSON serializable" in text
        logger.warning.assert_called_once()


class TestErrorReport:
    """Test suite for error_report."""

    def test_prefixes_caller_location(self) -> None:
        """Test that the report names the calling file, line and function.

        **What it tests:**
          - Message has the form `file(line) function - text, error`
          - The original error is chained as __cause__
        """
        cause = OSError("disk full")

        def write_report() -> OpsUtilsError:
            return error_report("failed to write report", cause)

        report = write_report()

        assert isinstance(report, OpsUtilsError)
        message = str(report)
        assert message.startswith("test_logger.py(")
        assert ") write_report - failed to write report, disk full" in message
        assert report.__cause__ is cause
