"""Single-flight de-duplication of concurrent identical calls.

The first caller for a key runs the function; callers arriving while it is in
flight wait on the same future and receive its result or exception. Once the
call completes the key is forgotten, so later callers start a fresh call.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Generic, TypeVar

import structlog

from cluster_explorer.discovery.exceptions import DiscoveryCancelledError

logger = structlog.get_logger()

_WAIT_INTERVAL = 0.05

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Collapses concurrent calls that share a key into one call."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._in_flight: dict[Hashable, Future[T]] = {}

    def do(
        self,
        key: Hashable,
        fn: Callable[[], T],
        cancel_event: threading.Event | None = None,
    ) -> tuple[T, bool]:
        """Run ``fn`` once for all concurrent callers of ``key``.

        Returns:
            The result and whether it was shared from another caller's call.

        Raises:
            DiscoveryCancelledError: If ``cancel_event`` is set while waiting.
        """
        with self._lock:
            future = self._in_flight.get(key)
            leader = future is None
            if future is None:
                future = Future()
                self._in_flight[key] = future

        if not leader:
            logger.debug("single_flight_joined", key=str(key))
            return self._wait(future, cancel_event), True

        try:
            result = fn()
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result, False
        finally:
            with self._lock:
                self._in_flight.pop(key, None)

    @staticmethod
    def _wait(future: Future[T], cancel_event: threading.Event | None) -> T:
        if cancel_event is None:
            return future.result()
        while True:
            if cancel_event.is_set():
                raise DiscoveryCancelledError("Discovery cancelled while waiting on a shared call")
            try:
                return future.result(timeout=_WAIT_INTERVAL)
            except FutureTimeoutError:
                continue

    def in_flight(self) -> int:
        """Number of keys with a call currently running."""
        with self._lock:
            return len(self._in_flight)
