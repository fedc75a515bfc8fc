"""Unit tests for core.params module."""

import io
import logging
import sys
import threading

from opsutils.core.params import ObjParams


class TestObjParams:
    """Test suite for ObjParams."""

    def test_defaults(self) -> None:
        params = ObjParams.default()

        assert params.logger is logging.getLogger("opsutils")
        assert params.log_out is sys.stdout
        assert isinstance(params.cancel, threading.Event)
        assert not params.cancel.is_set()

    def test_each_instance_gets_its_own_cancel_event(self) -> None:
        """Test that cancelling one tool's params does not cancel another's.

        **Why this test is important:**
          - A shared default Event would cancel every client in the process
        """
        first = ObjParams.default()
        second = ObjParams.default()

        first.cancel.set()

        assert not second.cancel.is_set()

    def test_custom_values(self, log_out: io.StringIO) -> None:
        logger = logging.getLogger("opsutils.custom")
        cancel = threading.Event()

        params = ObjParams(logger=logger, log_out=log_out, cancel=cancel)

        assert params.logger is logger
        assert params.log_out is log_out
        assert params.cancel is cancel
