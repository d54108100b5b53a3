"""Shared fixtures for unit tests: resource factories and an in-memory source."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from typing import Any

import pytest

from cluster_explorer.discovery import selector as selectors
from cluster_explorer.integrations.kubernetes.config import DiscoveryDefaults, ExplorerConfig
from cluster_explorer.models.request import CustomResourceType, PageRequest, ResourcePage
from cluster_explorer.models.resource import (
    ConfigReference,
    CustomStatus,
    DataStatus,
    IngressStatus,
    OwnerReference,
    PodStatus,
    ReferenceSource,
    ReplicaStatus,
    Resource,
    ResourceKind,
    ServiceStatus,
)
from cluster_explorer.services.explorer import ExplorerSession

CREATED = "2024-01-01T00:00:00Z"


# =============================================================================
# Resource factories
# =============================================================================


def make_pod(
    name: str,
    namespace: str = "default",
    labels: dict[str, str] | None = None,
    phase: str = "Running",
    created: str | None = CREATED,
    owners: Iterable[tuple[str, str]] = (),
    config_refs: Iterable[tuple[str, str]] = (),
) -> Resource:
    return Resource(
        kind=ResourceKind.POD,
        namespace=namespace,
        name=name,
        labels=labels or {},
        creation_timestamp=created,
        status=PodStatus(phase=phase, ready_containers=1, total_containers=1),
        owner_references=tuple(OwnerReference(kind=k, name=n) for k, n in owners),
        config_refs=tuple(
            ConfigReference(kind=k, name=n, via=ReferenceSource.VOLUME) for k, n in config_refs
        ),
    )


def make_service(
    name: str,
    namespace: str = "default",
    selector: dict[str, str] | None = None,
    labels: dict[str, str] | None = None,
) -> Resource:
    return Resource(
        kind=ResourceKind.SERVICE,
        namespace=namespace,
        name=name,
        labels=labels or {},
        creation_timestamp=CREATED,
        status=ServiceStatus(type="ClusterIP", cluster_ip="10.0.0.1"),
        selector=selector,
    )


def make_workload(
    kind: ResourceKind,
    name: str,
    namespace: str = "default",
    desired: int = 1,
    ready: int = 1,
    owners: Iterable[tuple[str, str]] = (),
    labels: dict[str, str] | None = None,
) -> Resource:
    return Resource(
        kind=kind,
        namespace=namespace,
        name=name,
        labels=labels or {},
        creation_timestamp=CREATED,
        status=ReplicaStatus(desired=desired, ready=ready, available=ready, updated=ready),
        owner_references=tuple(OwnerReference(kind=k, name=n) for k, n in owners),
    )


def make_config(kind: ResourceKind, name: str, namespace: str = "default") -> Resource:
    return Resource(
        kind=kind,
        namespace=namespace,
        name=name,
        creation_timestamp=CREATED,
        status=DataStatus(
            data_keys=("config",),
            secret_type="Opaque" if kind == ResourceKind.SECRET else None,
        ),
    )


def make_ingress(name: str, backends: Iterable[str], namespace: str = "default") -> Resource:
    return Resource(
        kind=ResourceKind.INGRESS,
        namespace=namespace,
        name=name,
        creation_timestamp=CREATED,
        status=IngressStatus(hosts=("shop.example.com",), tls=True),
        backends=tuple(backends),
    )


def make_custom(
    crd: CustomResourceType,
    name: str,
    namespace: str | None = "default",
    status: dict[str, Any] | None = None,
) -> Resource:
    return Resource(
        kind=ResourceKind.CUSTOM_RESOURCE,
        namespace=namespace,
        name=name,
        creation_timestamp=CREATED,
        custom_kind=crd.kind,
        api_version=crd.api_version,
        status=CustomStatus(document=status or {}),
    )


CERTIFICATE_CRD = CustomResourceType(
    group="cert-manager.io", version="v1", plural="certificates", kind="Certificate"
)


# =============================================================================
# In-memory resource source
# =============================================================================


class InMemorySource:
    """Resource source over a fixed resource list that records every page call.

    Cursors are integer offsets. ``failures`` maps ``(kind, namespace)`` to an
    error raised for every page call of that unit; ``delay`` keeps calls in
    flight long enough to observe concurrency.
    """

    def __init__(
        self,
        resources: Iterable[Resource] = (),
        delay: float = 0.0,
        failures: dict[tuple[ResourceKind, str | None], Exception] | None = None,
        crds: Iterable[CustomResourceType] = (),
    ) -> None:
        self.resources = list(resources)
        self.delay = delay
        self.failures = failures or {}
        self.crds = list(crds)
        self.calls: list[PageRequest] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.calls)

    def _matching(self, request: PageRequest) -> list[Resource]:
        items = [
            r
            for r in self.resources
            if r.kind == request.kind
            and (request.namespace is None or r.namespace == request.namespace)
        ]
        if request.custom is not None:
            items = [r for r in items if r.custom_kind == request.custom.kind]
        if request.label_selector:
            parsed = selectors.parse(request.label_selector)
            items = [r for r in items if parsed.matches(r.labels)]
        return sorted(items, key=lambda r: (r.namespace or "", r.name))

    def list_page(self, request: PageRequest) -> ResourcePage:
        with self._lock:
            self.calls.append(request)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            error = self.failures.get((request.kind, request.namespace))
            if error is not None:
                raise error
            items = self._matching(request)
            start = int(request.cursor or 0)
            end = start + request.page_size
            return ResourcePage(
                items=tuple(items[start:end]),
                next_cursor=str(end) if end < len(items) else None,
            )
        finally:
            with self._lock:
                self.active -= 1

    def list_namespaces(self) -> list[str]:
        return sorted({r.namespace for r in self.resources if r.namespace})

    def list_custom_resource_types(self) -> list[CustomResourceType]:
        return list(self.crds)


def pods_in(namespaces: Iterable[str], per_namespace: int) -> list[Resource]:
    """``per_namespace`` pods named ``pod-00``.. in each namespace."""
    return [
        make_pod(f"pod-{i:02d}", namespace=ns, labels={"app": "web" if i % 2 else "api"})
        for ns in namespaces
        for i in range(per_namespace)
    ]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def source() -> InMemorySource:
    """Empty in-memory source; tests append to ``source.resources``."""
    return InMemorySource()


@pytest.fixture
def make_session() -> Callable[..., ExplorerSession]:
    """Factory for sessions over a source with fast retry settings."""

    def factory(source: InMemorySource, **defaults: Any) -> ExplorerSession:
        settings: dict[str, Any] = {
            "retry_min_wait": 0.0,
            "retry_max_wait": 0.0,
            "concurrency": 4,
        }
        settings.update(defaults)
        config = ExplorerConfig(defaults=DiscoveryDefaults(**settings))
        return ExplorerSession(source, config)

    return factory
