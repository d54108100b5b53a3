"""Unit tests for single-flight call collapsing."""

from __future__ import annotations

import threading
import time

import pytest

from cluster_explorer.discovery.exceptions import DiscoveryCancelledError
from cluster_explorer.discovery.singleflight import SingleFlight


@pytest.mark.unit
class TestSingleFlight:
    """Test SingleFlight.do."""

    def test_single_caller(self) -> None:
        """Test a lone caller runs the function itself."""
        group: SingleFlight[int] = SingleFlight()

        assert group.do("k", lambda: 42) == (42, False)
        assert group.in_flight() == 0

    def test_concurrent_callers_share_one_call(self) -> None:
        """Test N concurrent callers of one key cause exactly one call."""
        group: SingleFlight[str] = SingleFlight()
        calls = 0
        started = threading.Event()
        release = threading.Event()
        results: list[tuple[str, bool]] = []
        lock = threading.Lock()

        def fn() -> str:
            nonlocal calls
            with lock:
                calls += 1
            started.set()
            release.wait(5)
            return "page"

        def caller() -> None:
            result = group.do("key", fn)
            with lock:
                results.append(result)

        threads = [threading.Thread(target=caller) for _ in range(10)]
        threads[0].start()
        assert started.wait(5)
        for t in threads[1:]:
            t.start()
        time.sleep(0.2)
        release.set()
        for t in threads:
            t.join(5)

        assert calls == 1
        assert len(results) == 10
        assert {value for value, _ in results} == {"page"}
        assert sum(1 for _, shared in results if not shared) == 1

    def test_exception_propagates_to_waiters(self) -> None:
        """Test the leader's exception reaches every waiter."""
        group: SingleFlight[str] = SingleFlight()
        started = threading.Event()
        release = threading.Event()
        errors: list[Exception] = []

        def fn() -> str:
            started.set()
            release.wait(5)
            raise RuntimeError("boom")

        def caller() -> None:
            try:
                group.do("key", fn)
            except RuntimeError as e:
                errors.append(e)

        leader = threading.Thread(target=caller)
        leader.start()
        assert started.wait(5)
        waiter = threading.Thread(target=caller)
        waiter.start()
        time.sleep(0.1)
        release.set()
        leader.join(5)
        waiter.join(5)

        assert len(errors) == 2
        assert all(str(e) == "boom" for e in errors)

    def test_key_forgotten_after_completion(self) -> None:
        """Test a later call for the same key runs again."""
        group: SingleFlight[int] = SingleFlight()
        counter = iter(range(10))

        first, _ = group.do("k", lambda: next(counter))
        second, _ = group.do("k", lambda: next(counter))

        assert (first, second) == (0, 1)

    def test_waiter_cancellation(self) -> None:
        """Test a waiter gives up when its cancel event is set."""
        group: SingleFlight[str] = SingleFlight()
        started = threading.Event()
        release = threading.Event()
        cancel = threading.Event()
        outcome: list[BaseException] = []

        def slow() -> str:
            started.set()
            release.wait(5)
            return "late"

        leader = threading.Thread(target=lambda: group.do("k", slow))
        leader.start()
        assert started.wait(5)

        def waiter() -> None:
            try:
                group.do("k", slow, cancel)
            except DiscoveryCancelledError as e:
                outcome.append(e)

        t = threading.Thread(target=waiter)
        t.start()
        cancel.set()
        t.join(5)
        release.set()
        leader.join(5)

        assert len(outcome) == 1
        assert isinstance(outcome[0], DiscoveryCancelledError)
