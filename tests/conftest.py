"""Shared pytest configuration and fixtures.

This module provides global fixtures that are available to all tests in the
test suite.

Fixtures defined here are automatically available to all tests without explicit
import statements. Keep fixtures small, composable, and focused on setup/teardown.
Do NOT put business logic in fixtures.
"""

# pylint: disable=redefined-outer-name
# Pytest fixtures intentionally redefine fixture names - this is expected behavior

import io
import logging
from collections.abc import Iterator
from unittest.mock import MagicMock

import pytest

from opsutils.config import get_settings
from opsutils.core.params import ObjParams
from opsutils.testing import FakeExecutor

# =============================================================================
# Common Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Iterator[None]:
    """Reset the cached settings around every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def log_out() -> io.StringIO:
    """In-memory stream standing in for a tool's user-facing output."""
    return io.StringIO()


@pytest.fixture
def params(log_out: io.StringIO) -> ObjParams:
    """Object parameters writing output to `log_out` with a fresh cancel event."""
    return ObjParams(logger=logging.getLogger("opsutils.tests"), log_out=log_out)


@pytest.fixture
def fake_executor() -> FakeExecutor:
    """A FakeExecutor with no canned responses (every call returns 200)."""
    return FakeExecutor()


# =============================================================================
# AWS Fixtures
# =============================================================================


@pytest.fixture
def mock_ecr_client() -> MagicMock:
    """Create a mock boto3 ECR client.

    Returns:
        MagicMock: A mock client; configure `batch_get_image`,
        `get_download_url_for_layer` and `get_paginator` per test.
    """
    return MagicMock()
