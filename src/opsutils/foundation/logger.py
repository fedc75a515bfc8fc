"""Logging configuration with structured JSON formatter.

This module provides the custom JSON formatter and logging configuration
shared by all opsutils tools, plus the custom TRACE and FATAL levels and a
few helpers built on them.

## Levels

- `TRACE` (5): function entry/exit and request bodies.
- `FATAL` (`logging.CRITICAL`): rendered as "FATAL" in JSON output.

## Usage

```python
from opsutils.config import LoggingConfig
from opsutils.foundation.logger import configure_logging, traced

log = configure_logging(LoggingConfig(level="DEBUG"))

@traced
def sync_images():
    ...
```
"""

import functools
import inspect
import json
import logging
import logging.config
import os
import sys
from collections.abc import Callable
from typing import Any, TypeVar

from opsutils.config import LoggingConfig
from opsutils.core.exceptions import OpsUtilsError

F = TypeVar("F", bound=Callable[..., Any])

TRACE = 5
FATAL = logging.CRITICAL

logging.addLevelName(TRACE, "TRACE")

# Names rendered in JSON output where they differ from logging's own
LEVEL_LABELS: dict[int, str] = {
    TRACE: "TRACE",
    FATAL: "FATAL",
}

_LEVELS: dict[str, int] = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "FATAL": FATAL,
}

# Standard LogRecord attributes, never copied from `extra`
_STANDARD_ATTRS: frozenset[str] = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "asctime",
        "error",
    }
)


def parse_level(name: str | None) -> int:
    """Map a level name to its numeric level.

    Args:
        name: One of TRACE, DEBUG, INFO, WARN, WARNING, ERROR or FATAL
            (case-insensitive). None means INFO.

    Returns:
        The numeric level; unknown names print a warning to stderr and
        return INFO.
    """
    if name is None:
        return logging.INFO
    level = _LEVELS.get(name.upper())
    if level is None:
        print(f"Invalid tracing level: {name}, defaulting to INFO", file=sys.stderr)
        return logging.INFO
    return level


def trim_source_path(path: str, depth: int) -> str:
    """Trim a source file path for log output.

    Args:
        path: Source file path.
        depth: Number of trailing directory elements to keep. 0 keeps only
            the file name; a negative value keeps the full path.

    Returns:
        The trimmed path.
    """
    if depth < 0:
        return path
    directory, filename = os.path.split(path)
    elements = [e for e in directory.split(os.sep) if e]
    kept = elements[len(elements) - min(depth, len(elements)) :] if depth else []
    return "/".join([*kept, filename])


class CustomJSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging.

    This formatter converts log records to JSON format, including:
    - Standard log fields (time, level, logger name, message)
    - Source file, line and function when `include_source` is set
    - Error information passed as `extra={"error": ...}` or via `exc_info`
    - All extra attributes passed via the extra parameter
    """

    def __init__(self, fmt: str, include_source: bool = True, source_path_depth: int = 0) -> None:
        """Initialize the formatter.

        Args:
            fmt: Format string (used for asctime, but output is JSON).
            include_source: Add file, line and function fields.
            source_path_depth: Directory elements kept in the file field.
        """
        logging.Formatter.__init__(self, fmt)
        self.include_source = include_source
        self.source_path_depth = source_path_depth

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON.

        Args:
            record: The log record to format.

        Returns:
            JSON string representation of the log record.
        """
        logging.Formatter.format(self, record)
        return json.dumps(self.get_log(record), indent=None, default=str)

    def get_log(self, record: logging.LogRecord) -> dict[str, Any]:
        """Extract log data from record into a dictionary.

        Args:
            record: The log record to extract data from.

        Returns:
            Dictionary containing log data.
        """
        d: dict[str, Any] = {
            "time": record.asctime,
            "level": LEVEL_LABELS.get(record.levelno, record.levelname),
            "logger_name": record.name,
            "message": record.message,
        }

        if self.include_source:
            d["file"] = trim_source_path(record.pathname, self.source_path_depth)
            d["line"] = record.lineno
            d["function"] = record.funcName

        error_data = getattr(record, "error", None)
        if isinstance(error_data, dict):
            error_dict: dict[str, Any] = error_data.copy()
            if record.exc_info:
                error_dict["trace"] = self.formatException(record.exc_info)
            d["error"] = error_dict
        elif error_data is not None:
            d["error"] = error_data
        elif record.exc_info:
            d["error"] = {"trace": self.formatException(record.exc_info)}

        # Include all non-standard attributes (from extra parameter)
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                d[key] = value

        return d


def build_logging_config(config: LoggingConfig) -> dict[str, Any]:
    """Build the `logging.config.dictConfig` dictionary for `config`.

    Args:
        config: Logging configuration.

    Returns:
        A dictConfig dictionary writing to stdout through the JSON or text
        formatter.
    """
    level = parse_level(config.level)
    if config.format == "json":
        formatter: dict[str, Any] = {
            "()": CustomJSONFormatter,
            "fmt": "%(asctime)s",
            "include_source": config.source,
            "source_path_depth": config.source_path_depth,
        }
    else:
        fmt = "%(asctime)s %(levelname)s %(name)s"
        if config.source:
            fmt += " %(filename)s:%(lineno)d %(funcName)s"
        formatter = {"format": fmt + " - %(message)s"}

    return {
        "version": 1,
        "disable_existing_loggers": False,  # Keep existing loggers, just configure them
        "formatters": {
            "standard": formatter,
        },
        "handlers": {
            "default": {
                "formatter": "standard",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "opsutils": {
                "handlers": ["default"],
                "level": level,
                "propagate": False,
            },
            "botocore": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False,
            },
            "urllib3": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False,
            },
        },
        "root": {
            "handlers": ["default"],
            "level": level,
        },
    }


def configure_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """Apply the logging configuration and return the `opsutils` logger.

    Args:
        config: Logging configuration; read from the environment when None.

    Returns:
        The configured `opsutils` logger.
    """
    if config is None:
        config = LoggingConfig.from_env()
    logging.config.dictConfig(build_logging_config(config))
    return logging.getLogger("opsutils")


def traced(func: F) -> F:
    """Log `Entering function` / `Exiting function` at TRACE around calls to `func`.

    Nothing is logged (and no work is done) unless TRACE is enabled for the
    logger of the module defining `func`.
    """
    log = logging.getLogger(func.__module__)

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        if not log.isEnabledFor(TRACE):
            return func(*args, **kwargs)
        extra = {"function": func.__qualname__}
        log.log(TRACE, "Entering function", extra=extra)
        try:
            return func(*args, **kwargs)
        finally:
            log.log(TRACE, "Exiting function", extra=extra)

    return wrapper  # type: ignore[return-value]


def to_json(data: Any, logger: logging.Logger | None = None) -> str:
    """Return `data` as indented JSON (2 spaces).

    On failure a warning is logged and the error text is returned instead.
    """
    try:
        return json.dumps(data, indent=2)
    except (TypeError, ValueError) as e:
        (logger or logging.getLogger("opsutils")).warning(
            "Failed to convert data to json", extra={"error": str(e)}
        )
        return str(e)


def error_report(text: str, error: BaseException) -> OpsUtilsError:
    """Return an OpsUtilsError describing `error`, prefixed with the caller's location.

    The message has the form `file(line) function - text, error` and the
    returned exception is chained to `error`. Raise it with
    `raise error_report("writing report", e) from e`.
    """
    frame = inspect.currentframe()
    caller = frame.f_back if frame is not None else None
    if caller is not None:
        location = f"{os.path.basename(caller.f_code.co_filename)}({caller.f_lineno}) {caller.f_code.co_name}"
    else:
        location = "unknown"
    del frame, caller
    report = OpsUtilsError(f"{location} - {text}, {error}")
    report.__cause__ = error
    return report
