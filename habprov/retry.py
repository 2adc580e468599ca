"""
Deadline-bounded retry with a fixed interval.

Attempts are unbounded in number; the run gives up once the overall timeout
elapses and re-raises the last error.  The clock is injectable so tests can
drive the loop without sleeping.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Protocol, Tuple, Type, TypeVar

from habprov.errors import ConnectError
from habprov.relay import OutputSink
from habprov.transport import Communicator

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class Clock(Protocol):
    def monotonic(self) -> float: ...

    def sleep(self, seconds: float) -> None: ...


class SystemClock:
    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


def retry_call(
    fn: Callable[[], T],
    timeout: float,
    *,
    interval: float = 3.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    clock: Optional[Clock] = None,
) -> T:
    """
    Call *fn* until it succeeds or *timeout* seconds have passed.

    After each failure the loop waits *interval* seconds, or whatever is left
    of the timeout if that is shorter; when the timeout runs out first the last
    error is raised.
    """

    clock = clock or SystemClock()
    deadline = clock.monotonic() + timeout
    while True:
        try:
            return fn()
        except retry_on as exc:
            LOGGER.warning("Retryable error: %s", exc)
            remaining = deadline - clock.monotonic()
            if remaining <= interval:
                if remaining > 0:
                    clock.sleep(remaining)
                raise
            clock.sleep(interval)


def connect_with_retry(
    communicator: Communicator,
    output: Optional[OutputSink] = None,
    *,
    clock: Optional[Clock] = None,
) -> None:
    """Open *communicator*, retrying :class:`ConnectError` until its timeout."""
    retry_call(
        lambda: communicator.connect(output),
        communicator.timeout,
        interval=communicator.retry_interval,
        retry_on=(ConnectError,),
        clock=clock,
    )


__all__ = ["Clock", "SystemClock", "connect_with_retry", "retry_call"]
