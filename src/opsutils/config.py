"""Configuration management for opsutils clients and tools.

This module provides the configuration system for the library using Pydantic
models. All settings are loaded from environment variables with sensible
defaults for CLI tools and automation scripts.

## Configuration Sources

Configuration is read from environment variables. The `get_settings()`
function uses `@lru_cache` to ensure settings are loaded once per process.
Clients accept an explicit config object, so tests and long-running tools
can construct their own instead of relying on the cached one.

## Environment Variables

The following environment variables are supported (all optional with
defaults):

**HTTP Request Executor**
- `HTTP_TIMEOUT`: Per-attempt timeout in seconds (default: `30`)
- `HTTP_MAX_RETRIES`: Attempt budget for transient transport failures
  (default: `30`)
- `HTTP_BACKOFF_BASE`: First retry delay in seconds (default: `1`)
- `HTTP_BACKOFF_CEILING`: Delay above which backoff resets to the base
  (default: `10`)
- `HTTP_RETRY_DEADLINE`: Optional wall-clock limit in seconds for the whole
  retry loop (default: unset, budget only)
- `HTTP_POOL_CONNECTIONS`: Pooled connections per host pool (default: `100`)
- `HTTP_POOL_MAXSIZE`: Maximum connections kept per pool (default: `100`)
- `HTTP_MIN_TLS_VERSION`: `TLSv1_2` or `TLSv1_3` (default: `TLSv1_2`)

**Logging**
- `LOG_LEVEL`: `TRACE`, `DEBUG`, `INFO`, `WARN`, `ERROR` or `FATAL`
  (default: `INFO`)
- `LOG_SOURCE`: Include source file information (default: `true`)
- `SOURCE_PATH_DEPTH`: Directory elements kept in the source file name,
  `0` for the file name only, `-1` for the full path (default: `0`)
- `LOG_FORMAT`: `json` or `text` (default: `json`)

**Slack**
- `SLACK_CHANNEL_CREDS`: Incoming webhook path after `services/`
- `NO_SLACK`: Set to `true` to print messages instead of posting them

**AWS**
- `AWS_REGION`: Region for SDK clients (default: `us-west-2`)
- `AWS_TIMEOUT`: Per-call SDK timeout in seconds (default: `60`)

**General**
- `DRY_RUN`: Set to `true` to skip mutating operations
"""

import os
import sys
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import SettingsConfigDict

# Accepted LOG_LEVEL names, mapped to numeric levels in foundation.logger
LOG_LEVEL_NAMES: tuple[str, ...] = ("TRACE", "DEBUG", "INFO", "WARN", "WARNING", "ERROR", "FATAL")


def _env_flag(name: str, default: str = "false") -> bool:
    """Return True when the environment variable equals `true` (any case)."""
    return os.getenv(name, default).lower() == "true"


def _parse_log_level(value: str | None) -> str:
    """Normalize a LOG_LEVEL value, warning and defaulting to INFO if invalid."""
    if value is None:
        return "INFO"
    name = value.upper()
    if name not in LOG_LEVEL_NAMES:
        print(f"Invalid tracing level: {value}, defaulting to INFO", file=sys.stderr)
        return "INFO"
    return name


def _parse_source_path_depth(value: str | None) -> int:
    """Parse SOURCE_PATH_DEPTH, warning and defaulting to 0 if not an integer."""
    if value is None:
        return 0
    try:
        return int(value)
    except ValueError:
        print(
            f"Invalid source code path element count: {value}, defaulting to none",
            file=sys.stderr,
        )
        return 0


class HTTPClientConfig(BaseModel):
    """Configuration for the HTTP request executor.

    Replaces process-wide defaults (shared transport, default timeout) with an
    object passed to the executor at construction.

    Attributes:
        timeout: Per-attempt timeout in seconds. Default: 30.
        max_retries: Maximum number of attempts when transport failures are
            retryable. Default: 30.
        backoff_base: First retry delay in seconds. Default: 1.0.
        backoff_ceiling: When the doubled delay exceeds this value it resets
            to `backoff_base`. Default: 10.0.
        retry_deadline: Optional limit in seconds on the time since the first
            attempt after which no further retries are made. Default: None.
        pool_connections: Number of connection pools cached by the shared
            plain-HTTP session. Default: 100.
        pool_maxsize: Maximum idle connections kept per pool. Default: 100.
        min_tls_version: Minimum TLS version for https targets.
            Default: "TLSv1_2".
    """

    timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=30, ge=1)
    backoff_base: float = Field(default=1.0, gt=0)
    backoff_ceiling: float = Field(default=10.0, gt=0)
    retry_deadline: float | None = Field(default=None, gt=0)
    pool_connections: int = Field(default=100, ge=1)
    pool_maxsize: int = Field(default=100, ge=1)
    min_tls_version: Literal["TLSv1_2", "TLSv1_3"] = "TLSv1_2"

    model_config = SettingsConfigDict(frozen=True)

    @classmethod
    def from_env(cls) -> "HTTPClientConfig":
        """Create HTTPClientConfig from environment variables.

        Returns:
            Configured HTTPClientConfig instance.

        Raises:
            ValueError: If a variable cannot be parsed or fails validation.
        """
        deadline = os.getenv("HTTP_RETRY_DEADLINE")
        return cls(
            timeout=float(os.getenv("HTTP_TIMEOUT", "30")),
            max_retries=int(os.getenv("HTTP_MAX_RETRIES", "30")),
            backoff_base=float(os.getenv("HTTP_BACKOFF_BASE", "1")),
            backoff_ceiling=float(os.getenv("HTTP_BACKOFF_CEILING", "10")),
            retry_deadline=float(deadline) if deadline else None,
            pool_connections=int(os.getenv("HTTP_POOL_CONNECTIONS", "100")),
            pool_maxsize=int(os.getenv("HTTP_POOL_MAXSIZE", "100")),
            min_tls_version=os.getenv("HTTP_MIN_TLS_VERSION", "TLSv1_2"),  # type: ignore[arg-type]
        )


class LoggingConfig(BaseModel):
    """Configuration for structured logging.

    Attributes:
        level: Log level name (one of LOG_LEVEL_NAMES). Default: "INFO".
        source: Whether to include source file, line and function.
            Default: True.
        source_path_depth: Number of trailing directory elements kept in
            the source file name; negative keeps the full path. Default: 0.
        format: Output format, "json" or "text". Default: "json".
    """

    level: str = "INFO"
    source: bool = True
    source_path_depth: int = 0
    format: Literal["json", "text"] = "json"

    model_config = SettingsConfigDict(frozen=True)

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Create LoggingConfig from environment variables.

        Invalid LOG_LEVEL or SOURCE_PATH_DEPTH values print a warning and fall
        back to their defaults rather than failing tool startup.

        Returns:
            Configured LoggingConfig instance.
        """
        source = os.getenv("LOG_SOURCE")
        return cls(
            level=_parse_log_level(os.getenv("LOG_LEVEL")),
            source=True if source is None else source == "true",
            source_path_depth=_parse_source_path_depth(os.getenv("SOURCE_PATH_DEPTH")),
            format="text" if os.getenv("LOG_FORMAT", "json").lower() == "text" else "json",
        )


class SlackConfig(BaseModel):
    """Configuration for Slack incoming webhooks.

    Attributes:
        webhook_credentials: Webhook path segment after `services/`.
        webhook_host: Webhook host. Default: "hooks.slack.com".
        dry_run: Print messages instead of posting them. Default: False.
    """

    webhook_credentials: str = ""
    webhook_host: str = "hooks.slack.com"
    dry_run: bool = False

    model_config = SettingsConfigDict(frozen=True)

    @classmethod
    def from_env(cls) -> "SlackConfig":
        """Create SlackConfig from SLACK_CHANNEL_CREDS and NO_SLACK."""
        return cls(
            webhook_credentials=os.getenv("SLACK_CHANNEL_CREDS", ""),
            dry_run=_env_flag("NO_SLACK"),
        )


class AWSConfig(BaseModel):
    """Configuration for AWS SDK clients.

    Attributes:
        region: AWS region name. Default: "us-west-2".
        timeout: Connect and read timeout for SDK calls in seconds.
            Default: 60.
    """

    region: str = "us-west-2"
    timeout: int = Field(default=60, gt=0)

    model_config = SettingsConfigDict(frozen=True)

    @classmethod
    def from_env(cls) -> "AWSConfig":
        """Create AWSConfig from AWS_REGION and AWS_TIMEOUT."""
        return cls(
            region=os.getenv("AWS_REGION") or "us-west-2",
            timeout=int(os.getenv("AWS_TIMEOUT", "60")),
        )


class Settings(BaseModel):
    """Immutable runtime configuration for opsutils.

    Attributes:
        http: HTTP request executor configuration.
        logging: Logging configuration.
        slack: Slack webhook configuration.
        aws: AWS SDK client configuration.
        dry_run: Skip mutating operations when True.
    """

    http: HTTPClientConfig
    logging: LoggingConfig
    slack: SlackConfig
    aws: AWSConfig
    dry_run: bool = False

    model_config = SettingsConfigDict(frozen=True)

    @classmethod
    def from_env(cls) -> "Settings":
        """Create Settings from environment variables.

        Returns:
            Configured Settings instance.
        """
        return cls(
            http=HTTPClientConfig.from_env(),
            logging=LoggingConfig.from_env(),
            slack=SlackConfig.from_env(),
            aws=AWSConfig.from_env(),
            dry_run=_env_flag("DRY_RUN"),
        )


@lru_cache(maxsize=1)
def get_settings() -> "Settings":
    """Load and return settings (cached per process).

    Returns:
        A frozen `Settings` instance with all configuration values.

    Note:
        Settings are loaded once per process. Tests that change the
        environment should call `get_settings.cache_clear()`.
    """
    return Settings.from_env()
