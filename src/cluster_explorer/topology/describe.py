"""Service descriptions assembled from a topology graph.

A description gathers what ``kdx describe`` shows for one Service: the pods
it selects, the ingress routes that reach it, the ConfigMaps and Secrets its
pods reference, and a health summary. Everything is read from the graph;
nothing here calls the cluster.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from cluster_explorer.models.resource import IngressStatus, PodStatus, Resource, ServiceStatus
from cluster_explorer.topology.graph import Relation, TopologyGraph

_NO_ADDRESS = frozenset({"", "None"})


class ServiceHealth(BaseModel):
    """Whether a Service can currently serve traffic."""

    model_config = ConfigDict(frozen=True)

    healthy: bool
    addressable: bool = Field(description="Service has a cluster IP")
    ready_pods: int = 0
    total_pods: int = 0
    reason: str = ""


class ServiceDescription(BaseModel):
    """A Service together with everything around it in the graph."""

    model_config = ConfigDict(frozen=True)

    service: Resource
    pods: tuple[Resource, ...] = ()
    ingresses: tuple[str, ...] = Field(default=(), description="Ingresses routing here")
    routes: tuple[str, ...] = Field(default=(), description="http(s)://host per ingress host")
    configmaps: tuple[str, ...] = ()
    secrets: tuple[str, ...] = ()
    missing: tuple[str, ...] = Field(default=(), description="Referenced but not discovered")
    health: ServiceHealth

    def summary(self) -> dict[str, Any]:
        """Key/value overview used by table, JSON and YAML output."""
        status = self.service.status
        return {
            "name": self.service.name,
            "namespace": self.service.namespace,
            "type": status.type if isinstance(status, ServiceStatus) else None,
            "cluster_ip": status.cluster_ip if isinstance(status, ServiceStatus) else None,
            "ports": [str(p) for p in status.ports] if isinstance(status, ServiceStatus) else [],
            "selector": self.service.selector or {},
            "pods": [p.name for p in self.pods],
            "ingresses": list(self.ingresses),
            "routes": list(self.routes),
            "configmaps": list(self.configmaps),
            "secrets": list(self.secrets),
            "missing": list(self.missing),
            "healthy": self.health.healthy,
            "ready_pods": f"{self.health.ready_pods}/{self.health.total_pods}",
            "health_reason": self.health.reason,
        }


def _pod_ready(pod: Resource) -> bool:
    status = pod.status
    return (
        isinstance(status, PodStatus)
        and status.phase == "Running"
        and status.total_containers > 0
        and status.ready_containers == status.total_containers
    )


def service_health(service: Resource, pods: list[Resource]) -> ServiceHealth:
    """Healthy when the Service has a cluster IP and, if it selects pods, one is ready.

    Services without a selector (external endpoints) only need an address.
    """
    status = service.status
    cluster_ip = status.cluster_ip if isinstance(status, ServiceStatus) else None
    addressable = cluster_ip is not None and cluster_ip not in _NO_ADDRESS
    ready = sum(1 for pod in pods if _pod_ready(pod))

    if not addressable:
        reason = "no cluster IP"
    elif service.selector and not pods:
        reason = "selector matches no pods"
    elif service.selector and not ready:
        reason = "no ready pods"
    else:
        reason = "ok"
    return ServiceHealth(
        healthy=reason == "ok",
        addressable=addressable,
        ready_pods=ready,
        total_pods=len(pods),
        reason=reason,
    )


def describe(graph: TopologyGraph, service: Resource) -> ServiceDescription:
    """Describe a discovered Service from the edges around it.

    Raises:
        KeyError: If the Service is not a node of ``graph``.
    """
    ref = service.identity
    graph.node(ref)

    pods: list[Resource] = []
    for pod_ref in graph.neighbors(ref, "out", Relation.SELECTS):
        pod = graph.node(pod_ref).resource
        if pod is not None:
            pods.append(pod)

    ingresses: list[str] = []
    routes: list[str] = []
    for ingress_ref in graph.neighbors(ref, "in", Relation.ROUTES_TO):
        ingresses.append(ingress_ref.name)
        ingress = graph.node(ingress_ref).resource
        if ingress is not None and isinstance(ingress.status, IngressStatus):
            routes.extend(r for r in ingress.status.routes if r not in routes)

    configs: dict[str, set[str]] = {"ConfigMap": set(), "Secret": set()}
    missing: set[str] = set()
    for pod in pods:
        for config_ref in graph.neighbors(pod.identity, "out", Relation.MOUNTS):
            configs.setdefault(config_ref.kind, set()).add(config_ref.name)
            if not graph.node(config_ref).discovered:
                missing.add(str(config_ref))

    return ServiceDescription(
        service=service,
        pods=tuple(sorted(pods, key=lambda p: p.name)),
        ingresses=tuple(sorted(ingresses)),
        routes=tuple(sorted(routes)),
        configmaps=tuple(sorted(configs["ConfigMap"])),
        secrets=tuple(sorted(configs["Secret"])),
        missing=tuple(sorted(missing)),
        health=service_health(service, pods),
    )
