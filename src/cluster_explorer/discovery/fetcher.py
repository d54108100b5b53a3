"""Paginated, cache-backed resource fetching.

A :class:`PaginatedFetcher` turns one :class:`DiscoveryRequest` into a lazy
:class:`ResourceStream`. Each page is looked up in the TTL cache first; on a
miss it is fetched through the single-flight group, so concurrent workers
asking for the same page share one upstream call. Rate-limited page calls are
retried with exponential backoff before the error escalates.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from typing import TYPE_CHECKING

import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cluster_explorer.discovery.cache import CacheKey, TTLCache
from cluster_explorer.discovery.exceptions import DiscoveryCancelledError
from cluster_explorer.discovery.filtering import matches_age, matches_status
from cluster_explorer.discovery.singleflight import SingleFlight
from cluster_explorer.integrations.kubernetes.exceptions import (
    KubernetesMalformedError,
    KubernetesRateLimitError,
)
from cluster_explorer.models.request import DiscoveryRequest, PageRequest, ResourcePage

if TYPE_CHECKING:
    from cluster_explorer.discovery.source import ResourceSource
    from cluster_explorer.models.resource import Resource

logger = structlog.get_logger()


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "page_call_rate_limited",
        attempt=retry_state.attempt_number,
        retry_after=getattr(exc, "retry_after", None),
        error=str(exc),
    )


class ResourceStream:
    """Lazy, restartable sequence of resources for one discovery request.

    Every iteration starts again from the first page; pages still inside
    their TTL come from the cache. After an iteration ends, ``exhausted``
    says the source reported no more data and ``truncated`` says the limit
    stopped the sequence early. At most one of the two is true.
    """

    def __init__(
        self,
        fetcher: PaginatedFetcher,
        request: DiscoveryRequest,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.request = request
        self.exhausted = False
        self.truncated = False
        self.pages_read = 0
        self._fetcher = fetcher
        self._cancel_event = cancel_event

    def __iter__(self) -> Iterator[Resource]:
        return self._iterate()

    def _accepts(self, resource: Resource) -> bool:
        request = self.request
        if request.selector is not None and not request.selector.matches(resource.labels):
            return False
        if not matches_status(resource, request.status):
            return False
        return matches_age(resource, request.newer_than, request.older_than)

    def _iterate(self) -> Iterator[Resource]:
        self.exhausted = False
        self.truncated = False
        self.pages_read = 0
        limit = self.request.limit
        yielded = 0
        page_request = PageRequest.first(self.request)

        while True:
            if self._cancel_event is not None and self._cancel_event.is_set():
                raise DiscoveryCancelledError(f"Discovery of {self.request.describe()} cancelled")

            page = self._fetcher.load_page(self.request, page_request, self._cancel_event)
            self.pages_read += 1

            for index, item in enumerate(page.items):
                if not self._accepts(item):
                    continue
                yielded += 1
                if limit is not None and yielded >= limit:
                    more = page.next_cursor is not None or any(
                        self._accepts(rest) for rest in page.items[index + 1 :]
                    )
                    self.truncated = more
                    self.exhausted = not more
                    yield item
                    return
                yield item

            if page.next_cursor is None:
                self.exhausted = True
                return
            page_request = page_request.next(page.next_cursor)

    def to_list(self) -> list[Resource]:
        return list(self)


class PaginatedFetcher:
    """Fetches resources page by page through the cache and single-flight group.

    Args:
        source: Resource source answering page calls.
        cache: Shared TTL cache.
        single_flight: Shared single-flight group; a private one is created if omitted.
        ttl: Lifetime of cached pages; the cache default when omitted.
        retry_attempts: Attempts for rate-limited page calls.
        retry_min_wait: Minimum backoff in seconds.
        retry_max_wait: Maximum backoff in seconds.
    """

    def __init__(
        self,
        source: ResourceSource,
        cache: TTLCache,
        single_flight: SingleFlight[ResourcePage] | None = None,
        ttl: float | None = None,
        retry_attempts: int = 5,
        retry_min_wait: float = 0.5,
        retry_max_wait: float = 8.0,
    ) -> None:
        self.source = source
        self.cache = cache
        self.single_flight: SingleFlight[ResourcePage] = single_flight or SingleFlight()
        self._ttl = ttl
        self._retry_attempts = retry_attempts
        self._retry_min_wait = retry_min_wait
        self._retry_max_wait = retry_max_wait

    def fetch(
        self,
        request: DiscoveryRequest,
        cancel_event: threading.Event | None = None,
    ) -> ResourceStream:
        """Return a lazy stream of the resources matching ``request``."""
        return ResourceStream(self, request, cancel_event)

    def cache_key(self, request: DiscoveryRequest, cursor: str | None) -> CacheKey:
        return CacheKey(
            kind=request.kind_key,
            namespace=request.namespace_scope,
            selector=request.selector_fingerprint,
            bucket=CacheKey.bucket_for(request.page_size, cursor),
        )

    def load_page(
        self,
        request: DiscoveryRequest,
        page_request: PageRequest,
        cancel_event: threading.Event | None = None,
    ) -> ResourcePage:
        """Return one page, from the cache when possible."""
        key = self.cache_key(request, page_request.cursor)
        log = logger.bind(kind=request.kind_key, namespace=request.namespace_scope)

        cached = self.cache.get(key)
        if cached is not None:
            log.debug("cache_hit", cursor=page_request.cursor)
            return cached

        def fetch_and_store() -> ResourcePage:
            # A leader for this key may have stored the page since our miss
            stored = self.cache.get(key, record=False)
            if stored is not None:
                return stored
            page = self._call_source(page_request)
            self.cache.put(key, page, self._ttl)
            return page

        page, shared = self.single_flight.do(key, fetch_and_store, cancel_event)
        log.debug("page_loaded", items=len(page.items), shared=shared, more=bool(page.next_cursor))
        return page

    def _call_source(self, page_request: PageRequest) -> ResourcePage:
        logger.debug(
            "fetching_page",
            kind=page_request.kind.value,
            namespace=page_request.namespace,
            page_size=page_request.page_size,
            cursor=page_request.cursor,
        )
        backoff = wait_exponential(
            multiplier=self._retry_min_wait,
            min=self._retry_min_wait,
            max=self._retry_max_wait,
        )

        def wait(retry_state: RetryCallState) -> float:
            # Retry-After raises the floor but never the configured ceiling
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            hint = getattr(exc, "retry_after", None) or 0.0
            return min(max(backoff(retry_state), hint), self._retry_max_wait)

        retrying = Retrying(
            retry=retry_if_exception_type(KubernetesRateLimitError),
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait,
            before_sleep=_log_retry,
            reraise=True,
        )
        page = retrying(self.source.list_page, page_request)
        if not isinstance(page, ResourcePage):
            raise KubernetesMalformedError(
                message=f"Resource source returned {type(page).__name__}, expected a page",
                resource_type=page_request.kind.value,
                namespace=page_request.namespace,
            )
        return page
