"""Mixins for client wrapper classes.

This module provides reusable mixins that can be combined with client classes
to add common functionality like executor wiring and logging.
"""

import logging
from typing import Any

from opsutils.config import HTTPClientConfig
from opsutils.core.params import ObjParams
from opsutils.foundation.http import HTTPExecutor, RequestExecutor


class LoggerMixin:
    """Mixin that provides automatic logger creation for client classes.

    This mixin automatically creates a logger based on the class's module name.
    The logger is available as `self._logger` or `cls._logger`.
    """

    def __init_subclass__(cls, **kwargs: Any) -> None:
        """Automatically create logger for each client subclass.

        Args:
            **kwargs: Additional keyword arguments passed to super().__init_subclass__.
        """
        super().__init_subclass__(**kwargs)
        module = cls.__module__
        cls._logger = logging.getLogger(module)  # type: ignore[attr-defined]


class ExecutorMixin:
    """Mixin for clients that send HTTP requests through a `RequestExecutor`.

    Clients accept an optional executor so tests can inject a fake; when none
    is given an `HTTPExecutor` sharing the client's `ObjParams` is created.
    """

    @staticmethod
    def _default_executor(
        executor: RequestExecutor | None,
        params: ObjParams,
        config: HTTPClientConfig | None = None,
    ) -> RequestExecutor:
        """Return `executor`, or a new HTTPExecutor when it is None.

        Args:
            executor: Injected executor, if any.
            params: Object parameters shared with the new executor.
            config: HTTP configuration for the new executor.

        Returns:
            The executor to use.
        """
        if executor is not None:
            return executor
        return HTTPExecutor(config=config or HTTPClientConfig(), params=params)
