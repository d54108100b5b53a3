"""Bounded-concurrency fan-out of discovery across namespaces and kinds.

Every ``(namespace, kind)`` pair is one unit of work. Units run on a fixed-size
thread pool, each draining its :class:`ResourceStream` into a shared,
lock-protected accumulator. The first fatal unit error cancels the rest and is
raised as :class:`DiscoveryError`; partial results are discarded.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field

import structlog

from cluster_explorer.discovery.exceptions import DiscoveryCancelledError, DiscoveryError
from cluster_explorer.discovery.fetcher import PaginatedFetcher
from cluster_explorer.integrations.kubernetes.config import default_concurrency
from cluster_explorer.integrations.kubernetes.exceptions import (
    KubernetesError,
    KubernetesTimeoutError,
)
from cluster_explorer.models.request import DiscoveryRequest
from cluster_explorer.models.resource import Resource, ResourceKind

logger = structlog.get_logger()


@dataclass(frozen=True)
class DiscoveryProgress:
    """Progress report sent after each completed unit."""

    completed: int
    total: int
    kind: str
    namespace: str | None
    count: int


ProgressCallback = Callable[[DiscoveryProgress], None]


@dataclass
class DiscoveryResult:
    """Aggregated output of one discovery run. Order of ``resources`` is unspecified."""

    resources: list[Resource] = field(default_factory=list)
    units: int = 0
    truncated: bool = False

    def sorted(self) -> list[Resource]:
        """Resources ordered by (kind, namespace, name)."""
        return sorted(self.resources, key=lambda r: r.identity.sort_key())

    def of_kind(self, kind: ResourceKind) -> list[Resource]:
        return [r for r in self.resources if r.kind == kind]

    def __len__(self) -> int:
        return len(self.resources)


class DiscoveryCoordinator:
    """Runs discovery units concurrently through a shared fetcher.

    Args:
        fetcher: Fetcher shared by all workers; its cache and single-flight
            group are what workers share.
        concurrency: Default worker count, ``min(32, cpu_count + 4)`` when omitted.
    """

    def __init__(self, fetcher: PaginatedFetcher, concurrency: int | None = None) -> None:
        if concurrency is not None and concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.fetcher = fetcher
        self.concurrency = concurrency or default_concurrency()

    @staticmethod
    def plan(
        kinds: Sequence[ResourceKind],
        namespaces: Sequence[str | None],
        template: DiscoveryRequest,
    ) -> list[DiscoveryRequest]:
        """Expand kinds and namespaces into one request per unit."""
        units: list[DiscoveryRequest] = []
        for namespace in namespaces:
            for kind in kinds:
                update: dict[str, object] = {"kind": kind, "namespace": namespace}
                if kind != ResourceKind.CUSTOM_RESOURCE:
                    update["custom"] = None
                units.append(template.model_copy(update=update))
        return units

    def discover(
        self,
        kinds: Sequence[ResourceKind],
        namespaces: Sequence[str | None],
        template: DiscoveryRequest,
        concurrency_limit: int | None = None,
        progress_callback: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> DiscoveryResult:
        """Discover every kind in every namespace.

        ``None`` in ``namespaces`` is an all-namespaces unit. The template
        supplies selector, status, age bounds, page size, limit and custom
        resource type for every unit.

        Raises:
            DiscoveryError: On the first fatal unit error, or when ``timeout`` expires.
            DiscoveryCancelledError: If ``cancel_event`` is set by the caller.
        """
        units = self.plan(kinds, namespaces, template)
        workers = concurrency_limit or self.concurrency
        caller_cancel = cancel_event
        cancel = threading.Event()
        accumulator: list[Resource] = []
        lock = threading.Lock()
        completed = 0
        truncated = False
        log = logger.bind(entity="discovery")

        log.debug("discovery_started", units=len(units), workers=workers)
        if not units:
            return DiscoveryResult()

        def run_unit(request: DiscoveryRequest) -> None:
            nonlocal completed, truncated
            if cancel.is_set():
                raise DiscoveryCancelledError(f"Unit {request.describe()} cancelled")
            stream = self.fetcher.fetch(request, cancel)
            items = stream.to_list()
            with lock:
                # Discarded once the run has failed, even if the unit finished
                if cancel.is_set():
                    raise DiscoveryCancelledError(f"Unit {request.describe()} cancelled")
                accumulator.extend(items)
                completed += 1
                truncated = truncated or stream.truncated
                if progress_callback is not None:
                    progress_callback(
                        DiscoveryProgress(
                            completed=completed,
                            total=len(units),
                            kind=request.kind_key,
                            namespace=request.namespace,
                            count=len(items),
                        )
                    )

        watcher_stop = threading.Event()
        if caller_cancel is not None:
            # Mirror the caller's event onto the internal one
            def watch() -> None:
                while not watcher_stop.is_set():
                    if caller_cancel.wait(0.05):
                        cancel.set()
                        return

            threading.Thread(target=watch, name="kdx-cancel-watch", daemon=True).start()

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="kdx-discovery")
        futures: dict[Future[None], DiscoveryRequest] = {
            executor.submit(run_unit, request): request for request in units
        }
        failed = True
        try:
            done, pending = wait(futures, timeout=timeout, return_when=FIRST_EXCEPTION)

            for future in done:
                error = future.exception()
                if error is None or isinstance(error, DiscoveryCancelledError):
                    continue
                request = futures[future]
                cancel.set()
                log.warning(
                    "unit_failed",
                    kind=request.kind_key,
                    namespace=request.namespace_scope,
                    error=str(error),
                )
                if isinstance(error, KubernetesError):
                    raise DiscoveryError(
                        error,
                        kind=request.kind_key,
                        namespace=request.namespace,
                        selector=request.selector,
                    ) from error
                raise error

            if caller_cancel is not None and caller_cancel.is_set():
                cancel.set()
                raise DiscoveryCancelledError("Discovery cancelled")

            if pending:
                cancel.set()
                timeout_error = KubernetesTimeoutError(
                    message="Discovery did not finish in time", timeout_seconds=timeout
                )
                log.warning("discovery_timed_out", pending=len(pending), timeout=timeout)
                first_pending = futures[next(iter(pending))]
                raise DiscoveryError(
                    timeout_error,
                    kind=first_pending.kind_key,
                    namespace=first_pending.namespace,
                    selector=first_pending.selector,
                ) from timeout_error

            failed = False
        finally:
            if failed:
                cancel.set()
            watcher_stop.set()
            executor.shutdown(wait=not failed, cancel_futures=True)

        resources = accumulator
        if template.limit is not None and len(resources) > template.limit:
            resources = sorted(resources, key=lambda r: r.identity.sort_key())[: template.limit]
            truncated = True

        log.debug("discovery_completed", units=len(units), resources=len(resources))
        return DiscoveryResult(resources=resources, units=len(units), truncated=truncated)
