"""Object parameters shared by opsutils clients."""

import logging
import sys
import threading
from typing import TextIO

import attrs


@attrs.define(frozen=False, slots=True)
class ObjParams:
    """Per-tool parameters passed to every client.

    Attributes:
        logger: Logger used by clients for their own messages.
        log_out: Stream for user-facing output (dry-run messages, prompts).
        cancel: Cancellation signal; setting it stops in-flight exchanges
            at their next check.
    """

    logger: logging.Logger = attrs.field(factory=lambda: logging.getLogger("opsutils"))
    log_out: TextIO = attrs.field(factory=lambda: sys.stdout)
    cancel: threading.Event = attrs.field(factory=threading.Event)

    @classmethod
    def default(cls) -> "ObjParams":
        """Create parameters with the `opsutils` logger, stdout and a fresh event."""
        return cls()
