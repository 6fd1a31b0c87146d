"""Cooperative cancellation.

An interrupt sets the token; the resource being destroyed finishes and the
scheduler stops before starting the next one.
"""

from __future__ import annotations

import logging
import signal
import threading
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason = ""

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@contextmanager
def interrupt_cancels(token: CancellationToken) -> Iterator[CancellationToken]:
    """Route SIGINT to the token for the duration of the block.

    A second interrupt falls through to the default handler.
    """
    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    previous = signal.getsignal(signal.SIGINT)

    def _handler(signum, frame):
        if token.cancelled:
            signal.signal(signal.SIGINT, signal.default_int_handler)
            raise KeyboardInterrupt
        logger.warning("Interrupt received: finishing the current resource, then stopping")
        token.cancel("interrupted by operator")

    signal.signal(signal.SIGINT, _handler)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)
