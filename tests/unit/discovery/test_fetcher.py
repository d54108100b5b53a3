"""Unit tests for paginated, cache-backed fetching."""

from __future__ import annotations

import threading
from typing import Any

import pytest

from cluster_explorer.discovery import selector as selectors
from cluster_explorer.discovery.cache import TTLCache
from cluster_explorer.discovery.exceptions import DiscoveryCancelledError
from cluster_explorer.discovery.fetcher import PaginatedFetcher
from cluster_explorer.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesMalformedError,
    KubernetesRateLimitError,
)
from cluster_explorer.models.request import DiscoveryRequest, PageRequest, ResourcePage
from cluster_explorer.models.resource import ResourceKind
from tests.unit.conftest import InMemorySource, make_pod, pods_in


def make_fetcher(source: Any, **kwargs: Any) -> PaginatedFetcher:
    kwargs.setdefault("retry_min_wait", 0.0)
    kwargs.setdefault("retry_max_wait", 0.0)
    return PaginatedFetcher(source, TTLCache(default_ttl=60), **kwargs)


def pod_request(**kwargs: Any) -> DiscoveryRequest:
    kwargs.setdefault("namespace", "default")
    return DiscoveryRequest(kind=ResourceKind.POD, **kwargs)


@pytest.mark.unit
class TestPagination:
    """Test page traversal."""

    def test_exhaustive_and_page_size_independent(self) -> None:
        """Test small and large pages return the same resources."""
        source = InMemorySource(pods_in(["default"], 37))

        small = make_fetcher(source).fetch(pod_request(page_size=16)).to_list()
        large = make_fetcher(source).fetch(pod_request(page_size=1000)).to_list()

        assert len(small) == 37
        assert [r.identity for r in small] == [r.identity for r in large]

    def test_pages_follow_cursor_order(self) -> None:
        """Test each call continues from the previous page's cursor."""
        source = InMemorySource(pods_in(["default"], 5))

        stream = make_fetcher(source).fetch(pod_request(page_size=2))
        items = stream.to_list()

        assert [c.cursor for c in source.calls] == [None, "2", "4"]
        assert [r.name for r in items] == [f"pod-{i:02d}" for i in range(5)]
        assert stream.exhausted
        assert not stream.truncated
        assert stream.pages_read == 3

    def test_limit_stops_early(self) -> None:
        """Test limit=5 with page_size=2 over 11 items reads exactly 3 pages."""
        source = InMemorySource(pods_in(["default"], 11))

        stream = make_fetcher(source).fetch(pod_request(page_size=2, limit=5))
        items = stream.to_list()

        assert len(items) == 5
        assert source.call_count == 3
        assert stream.truncated
        assert not stream.exhausted

    def test_limit_equal_to_total_is_exhausted(self) -> None:
        """Test reaching the limit on the last item reports exhaustion."""
        source = InMemorySource(pods_in(["default"], 4))

        stream = make_fetcher(source).fetch(pod_request(page_size=10, limit=4))
        items = stream.to_list()

        assert len(items) == 4
        assert stream.exhausted
        assert not stream.truncated

    def test_empty_listing(self) -> None:
        """Test an empty unit reads a single page."""
        source = InMemorySource()

        stream = make_fetcher(source).fetch(pod_request())

        assert stream.to_list() == []
        assert stream.exhausted
        assert source.call_count == 1

    def test_stream_is_restartable(self) -> None:
        """Test iterating twice yields the same items, the second time from cache."""
        source = InMemorySource(pods_in(["default"], 3))
        stream = make_fetcher(source).fetch(pod_request(page_size=2))

        first = list(stream)
        second = list(stream)

        assert first == second
        assert source.call_count == 2

    def test_filters_reapplied_client_side(self) -> None:
        """Test selector, status and age predicates are checked on every item."""
        source = InMemorySource(
            [
                make_pod("a", labels={"app": "web"}, phase="Running"),
                make_pod("b", labels={"app": "web"}, phase="Pending"),
                make_pod("c", labels={"app": "api"}, phase="Running"),
                make_pod("d", labels={"app": "web"}, phase="Running", created=None),
            ]
        )
        request = pod_request(
            selector=selectors.parse("app=web"),
            status="Running",
            older_than=60.0,
        )

        items = make_fetcher(source).fetch(request).to_list()

        assert [r.name for r in items] == ["a"]
        assert source.calls[0].label_selector == "app=web"


@pytest.mark.unit
class TestCaching:
    """Test cache interaction."""

    def test_second_fetch_served_from_cache(self) -> None:
        """Test warm results equal cold results without upstream calls."""
        source = InMemorySource(pods_in(["default"], 7))
        fetcher = make_fetcher(source)

        cold = fetcher.fetch(pod_request(page_size=3)).to_list()
        calls = source.call_count
        warm = fetcher.fetch(pod_request(page_size=3)).to_list()

        assert warm == cold
        assert source.call_count == calls

    def test_page_size_is_part_of_key(self) -> None:
        """Test different page sizes never share cached pages."""
        source = InMemorySource(pods_in(["default"], 4))
        fetcher = make_fetcher(source)

        fetcher.fetch(pod_request(page_size=2)).to_list()
        fetcher.fetch(pod_request(page_size=3)).to_list()

        assert source.call_count == 2 + 2

    def test_selector_fingerprint_shares_cache(self) -> None:
        """Test reordered selectors hit the same cache entries."""
        source = InMemorySource([make_pod("a", labels={"app": "web", "tier": "x"})])
        fetcher = make_fetcher(source)

        fetcher.fetch(pod_request(selector=selectors.parse("app=web,tier=x"))).to_list()
        fetcher.fetch(pod_request(selector=selectors.parse("tier=x,app=web"))).to_list()

        assert source.call_count == 1

    def test_expired_pages_refetched(self) -> None:
        """Test a page past its TTL goes back to the source."""
        now = [0.0]
        source = InMemorySource(pods_in(["default"], 2))
        fetcher = PaginatedFetcher(source, TTLCache(default_ttl=5, clock=lambda: now[0]))

        fetcher.fetch(pod_request()).to_list()
        now[0] = 5.0
        fetcher.fetch(pod_request()).to_list()

        assert source.call_count == 2

    def test_concurrent_identical_pages_fetch_once(self) -> None:
        """Test concurrent streams of one request share upstream calls."""
        source = InMemorySource(pods_in(["default"], 3), delay=0.2)
        fetcher = make_fetcher(source)
        results: list[list[str]] = []
        lock = threading.Lock()

        def run() -> None:
            names = [r.name for r in fetcher.fetch(pod_request()).to_list()]
            with lock:
                results.append(names)

        threads = [threading.Thread(target=run) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(10)

        assert source.call_count == 1
        assert len(results) == 8
        assert all(names == results[0] for names in results)

    def test_reader_stalled_after_miss_reuses_stored_page(self) -> None:
        """Test a caller that missed before another call stored the page does not refetch."""

        class StallingCache(TTLCache):
            """Blocks the first caller that misses until ``release`` is set."""

            def __init__(self) -> None:
                super().__init__(default_ttl=60)
                self.stalled = threading.Event()
                self.release = threading.Event()

            def get(self, key: Any, *, record: bool = True) -> Any:
                value = super().get(key, record=record)
                if value is None and record and not self.stalled.is_set():
                    self.stalled.set()
                    self.release.wait(5)
                return value

        source = InMemorySource(pods_in(["default"], 3))
        cache = StallingCache()
        fetcher = PaginatedFetcher(source, cache)
        request = pod_request()
        pages: list[ResourcePage] = []

        stalled = threading.Thread(
            target=lambda: pages.append(fetcher.load_page(request, PageRequest.first(request)))
        )
        stalled.start()
        assert cache.stalled.wait(5)

        first = fetcher.load_page(request, PageRequest.first(request))
        cache.release.set()
        stalled.join(5)

        assert source.call_count == 1
        assert pages == [first]


@pytest.mark.unit
class TestErrors:
    """Test retry and error propagation."""

    def test_rate_limited_call_retried(self) -> None:
        """Test RateLimited is retried until the call succeeds."""

        class FlakySource(InMemorySource):
            def __init__(self) -> None:
                super().__init__(pods_in(["default"], 2))
                self.failures_left = 2

            def list_page(self, request: PageRequest) -> ResourcePage:
                if self.failures_left:
                    self.failures_left -= 1
                    raise KubernetesRateLimitError(retry_after=0)
                return super().list_page(request)

        source = FlakySource()

        items = make_fetcher(source).fetch(pod_request()).to_list()

        assert len(items) == 2
        assert source.failures_left == 0

    def test_rate_limit_escalates_after_attempts(self) -> None:
        """Test RateLimited escalates once retries are exhausted."""
        source = InMemorySource(
            failures={(ResourceKind.POD, "default"): KubernetesRateLimitError()}
        )

        with pytest.raises(KubernetesRateLimitError):
            make_fetcher(source, retry_attempts=3).fetch(pod_request()).to_list()

        assert source.call_count == 3

    def test_non_retryable_error_not_retried(self) -> None:
        """Test Unauthorized fails on the first call."""
        source = InMemorySource(failures={(ResourceKind.POD, "default"): KubernetesAuthError()})

        with pytest.raises(KubernetesAuthError):
            make_fetcher(source).fetch(pod_request()).to_list()

        assert source.call_count == 1

    def test_non_page_result_is_malformed(self) -> None:
        """Test a source returning something other than a page is Malformed."""

        class BrokenSource(InMemorySource):
            def list_page(self, request: PageRequest) -> Any:
                return {"items": []}

        with pytest.raises(KubernetesMalformedError):
            make_fetcher(BrokenSource()).fetch(pod_request()).to_list()

    def test_failed_page_not_cached(self) -> None:
        """Test errors are not stored in the cache."""
        source = InMemorySource(failures={(ResourceKind.POD, "default"): KubernetesAuthError()})
        fetcher = make_fetcher(source)

        with pytest.raises(KubernetesAuthError):
            fetcher.fetch(pod_request()).to_list()
        source.failures.clear()

        assert fetcher.fetch(pod_request()).to_list() == []
        assert len(fetcher.cache) == 1

    def test_cancel_before_page(self) -> None:
        """Test a set cancel event stops the stream before the next page."""
        source = InMemorySource(pods_in(["default"], 4))
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(DiscoveryCancelledError):
            make_fetcher(source).fetch(pod_request(), cancel).to_list()

        assert source.call_count == 0
