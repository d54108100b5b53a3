"""Explorer session: the long-lived owner of discovery state.

An :class:`ExplorerSession` is constructed once per process. It owns the TTL
cache and the single-flight group shared by every discovery it runs, turns
user-facing parameters into :class:`DiscoveryRequest` templates, and exposes
the cache maintenance operations.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence

import structlog

from cluster_explorer.discovery import selector as selectors
from cluster_explorer.discovery.cache import CacheStats, TTLCache
from cluster_explorer.discovery.coordinator import (
    DiscoveryCoordinator,
    DiscoveryResult,
    ProgressCallback,
)
from cluster_explorer.discovery.fetcher import PaginatedFetcher, ResourceStream
from cluster_explorer.discovery.selector import LabelSelector
from cluster_explorer.discovery.singleflight import SingleFlight
from cluster_explorer.discovery.source import ResourceSource
from cluster_explorer.integrations.kubernetes.config import ExplorerConfig
from cluster_explorer.integrations.kubernetes.exceptions import KubernetesNotFoundError
from cluster_explorer.models.request import CustomResourceType, DiscoveryRequest, ResourcePage
from cluster_explorer.models.resource import ResourceKind
from cluster_explorer.topology import builder
from cluster_explorer.topology.describe import ServiceDescription, describe
from cluster_explorer.topology.graph import TopologyGraph

logger = structlog.get_logger()

TOPOLOGY_KINDS: tuple[ResourceKind, ...] = (
    ResourceKind.SERVICE,
    ResourceKind.POD,
    ResourceKind.CONFIGMAP,
    ResourceKind.SECRET,
    ResourceKind.INGRESS,
    ResourceKind.DEPLOYMENT,
    ResourceKind.STATEFULSET,
    ResourceKind.DAEMONSET,
    ResourceKind.REPLICASET,
)

WARM_KINDS: tuple[ResourceKind, ...] = (
    ResourceKind.SERVICE,
    ResourceKind.POD,
    ResourceKind.DEPLOYMENT,
    ResourceKind.STATEFULSET,
    ResourceKind.DAEMONSET,
    ResourceKind.CONFIGMAP,
    ResourceKind.SECRET,
    ResourceKind.INGRESS,
)


class ExplorerSession:
    """Discovery entry point shared by all commands.

    Args:
        source: Resource source answering page calls.
        config: Explorer configuration; defaults apply when omitted.
        cache: Cache to use instead of a fresh one.
    """

    _entity_name = "explorer"

    def __init__(
        self,
        source: ResourceSource,
        config: ExplorerConfig | None = None,
        cache: TTLCache | None = None,
    ) -> None:
        self.source = source
        self.config = config or ExplorerConfig()
        defaults = self.config.defaults
        self.cache = cache or TTLCache(default_ttl=defaults.cache_ttl)
        self.single_flight: SingleFlight[ResourcePage] = SingleFlight()
        self.fetcher = PaginatedFetcher(
            source,
            self.cache,
            self.single_flight,
            retry_attempts=defaults.retry_attempts,
            retry_min_wait=defaults.retry_min_wait,
            retry_max_wait=defaults.retry_max_wait,
        )
        self.coordinator = DiscoveryCoordinator(
            self.fetcher, concurrency=defaults.resolved_concurrency()
        )
        self._log = logger.bind(entity=self._entity_name)

    # =========================================================================
    # Request construction
    # =========================================================================

    def resolve_namespaces(
        self,
        namespace: str | None = None,
        all_namespaces: bool = False,
    ) -> list[str | None]:
        """Namespaces to discover in; ``[None]`` means one all-namespaces unit."""
        if all_namespaces:
            return [None]
        return [namespace or self.config.get_active_namespace()]

    def make_request(
        self,
        kind: ResourceKind,
        selector: str | LabelSelector | None = None,
        status: str | None = None,
        newer_than: float | None = None,
        older_than: float | None = None,
        page_size: int | None = None,
        limit: int | None = None,
        custom: CustomResourceType | None = None,
        namespace: str | None = None,
    ) -> DiscoveryRequest:
        """Build a request template.

        Raises:
            SelectorParseError: If ``selector`` text is malformed.
        """
        if isinstance(selector, str):
            selector = selectors.parse(selector)
        if selector is not None and selector.is_empty:
            selector = None
        return DiscoveryRequest(
            kind=kind,
            namespace=namespace,
            selector=selector,
            status=status,
            newer_than=newer_than,
            older_than=older_than,
            custom=custom,
            page_size=page_size or self.config.defaults.page_size,
            limit=limit,
        )

    # =========================================================================
    # Discovery
    # =========================================================================

    def discover(
        self,
        kinds: Sequence[ResourceKind],
        namespaces: Sequence[str | None],
        template: DiscoveryRequest,
        concurrency: int | None = None,
        progress_callback: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> DiscoveryResult:
        """Run the coordinator with the session's timeout."""
        self._log.debug(
            "discovering",
            kinds=[k.value for k in kinds],
            namespaces=[n or "*" for n in namespaces],
        )
        return self.coordinator.discover(
            kinds,
            namespaces,
            template,
            concurrency_limit=concurrency,
            progress_callback=progress_callback,
            cancel_event=cancel_event,
            timeout=self.config.get_active_timeout(),
        )

    def list_resources(
        self,
        kind: ResourceKind,
        namespaces: Sequence[str | None] | None = None,
        selector: str | LabelSelector | None = None,
        status: str | None = None,
        newer_than: float | None = None,
        older_than: float | None = None,
        page_size: int | None = None,
        limit: int | None = None,
        concurrency: int | None = None,
        progress_callback: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> DiscoveryResult:
        """Discover one built-in kind across namespaces."""
        template = self.make_request(
            kind,
            selector=selector,
            status=status,
            newer_than=newer_than,
            older_than=older_than,
            page_size=page_size,
            limit=limit,
        )
        return self.discover(
            [kind],
            namespaces if namespaces is not None else self.resolve_namespaces(),
            template,
            concurrency=concurrency,
            progress_callback=progress_callback,
            cancel_event=cancel_event,
        )

    def stream_resources(self, request: DiscoveryRequest) -> ResourceStream:
        """Lazy stream over a single unit, for incremental output."""
        return self.fetcher.fetch(request)

    def list_custom_resource_types(self) -> list[CustomResourceType]:
        return self.source.list_custom_resource_types()

    def resolve_custom_type(self, name: str) -> CustomResourceType:
        """Resolve a custom resource type by kind, plural, or ``plural.group``.

        Raises:
            KubernetesNotFoundError: If no installed type matches.
        """
        wanted = name.lower()
        for crd in self.list_custom_resource_types():
            if wanted in (crd.kind.lower(), crd.plural, f"{crd.plural}.{crd.group}"):
                return crd
        raise KubernetesNotFoundError(resource_type="CustomResourceDefinition", resource_name=name)

    def list_custom_resources(
        self,
        crd: CustomResourceType | str,
        namespaces: Sequence[str | None] | None = None,
        selector: str | LabelSelector | None = None,
        status: str | None = None,
        newer_than: float | None = None,
        older_than: float | None = None,
        page_size: int | None = None,
        limit: int | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> DiscoveryResult:
        """Discover instances of one custom resource type."""
        if isinstance(crd, str):
            crd = self.resolve_custom_type(crd)
        template = self.make_request(
            ResourceKind.CUSTOM_RESOURCE,
            selector=selector,
            status=status,
            newer_than=newer_than,
            older_than=older_than,
            page_size=page_size,
            limit=limit,
            custom=crd,
        )
        if not crd.namespaced:
            namespaces = [None]
        return self.discover(
            [ResourceKind.CUSTOM_RESOURCE],
            namespaces if namespaces is not None else self.resolve_namespaces(),
            template,
            progress_callback=progress_callback,
        )

    def build_topology(
        self,
        namespaces: Sequence[str | None] | None = None,
        kinds: Sequence[ResourceKind] = TOPOLOGY_KINDS,
        page_size: int | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> TopologyGraph:
        """Discover the related kinds and infer the dependency graph."""
        template = self.make_request(ResourceKind.SERVICE, page_size=page_size)
        result = self.discover(
            kinds,
            namespaces if namespaces is not None else self.resolve_namespaces(),
            template,
            progress_callback=progress_callback,
        )
        return builder.build(result.sorted())

    def describe_service(
        self,
        name: str,
        namespace: str | None = None,
        page_size: int | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> ServiceDescription:
        """Describe one Service from a topology of its namespace.

        Raises:
            KubernetesNotFoundError: If no such Service was discovered.
        """
        namespaces = self.resolve_namespaces(namespace)
        scope = namespaces[0]
        graph = self.build_topology(
            namespaces, page_size=page_size, progress_callback=progress_callback
        )
        try:
            service = graph.node(builder.find_service(graph, name, scope)).resource
        except KeyError:
            service = None
        if service is None:
            raise KubernetesNotFoundError(
                resource_type=ResourceKind.SERVICE.value, resource_name=name, namespace=scope
            )
        description = describe(graph, service)
        self._log.debug(
            "service_described",
            service=name,
            namespace=scope,
            pods=len(description.pods),
            healthy=description.health.healthy,
        )
        return description

    # =========================================================================
    # Cache maintenance
    # =========================================================================

    def cache_stats(self) -> CacheStats:
        """Sweep expired entries and report what remains."""
        self.cache.cleanup_expired()
        return self.cache.stats()

    def clear_cache(self) -> int:
        return self.cache.clear()

    def warm_cache(
        self,
        namespaces: Sequence[str | None] | None = None,
        kinds: Sequence[ResourceKind] = WARM_KINDS,
        progress_callback: ProgressCallback | None = None,
    ) -> DiscoveryResult:
        """Pre-load the cache with unfiltered pages of the given kinds."""
        template = self.make_request(ResourceKind.SERVICE)
        result = self.discover(
            kinds,
            namespaces if namespaces is not None else self.resolve_namespaces(),
            template,
            progress_callback=progress_callback,
        )
        self._log.info("cache_warmed", units=result.units, resources=len(result))
        return result
