"""Relationship inference over discovered resources.

Edges come only from data already on the resources (selectors, owner
references, config references, ingress backends); building never calls the
cluster.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable

import structlog

from cluster_explorer.discovery.selector import LabelSelector
from cluster_explorer.models.resource import Resource, ResourceKind, ResourceRef
from cluster_explorer.topology.graph import Relation, TopologyGraph

logger = structlog.get_logger()


def build(resources: Iterable[Resource]) -> TopologyGraph:
    """Build a frozen topology graph from discovered resources."""
    items = list(resources)
    graph = TopologyGraph()
    pods_by_namespace: dict[str | None, list[Resource]] = defaultdict(list)

    for resource in items:
        graph.add_node(resource.identity, resource)
        if resource.kind == ResourceKind.POD:
            pods_by_namespace[resource.namespace].append(resource)

    for resource in items:
        ref = resource.identity

        if resource.kind == ResourceKind.SERVICE and resource.selector:
            selector = LabelSelector.from_match_labels(resource.selector)
            for pod in pods_by_namespace.get(resource.namespace, ()):
                if selector.matches(pod.labels):
                    graph.add_edge(ref, pod.identity, Relation.SELECTS)

        for owner in resource.owner_references:
            owner_ref = ResourceRef(kind=owner.kind, namespace=resource.namespace, name=owner.name)
            graph.add_edge(owner_ref, ref, Relation.OWNS)

        for config_ref in resource.config_refs:
            target = ResourceRef(
                kind=config_ref.kind, namespace=resource.namespace, name=config_ref.name
            )
            graph.add_edge(ref, target, Relation.MOUNTS)

        for backend in resource.backends:
            target = ResourceRef(
                kind=ResourceKind.SERVICE.value, namespace=resource.namespace, name=backend
            )
            graph.add_edge(ref, target, Relation.ROUTES_TO)

    logger.debug("topology_built", nodes=len(graph), edges=len(graph.edges))
    return graph.freeze()


def find_service(graph: TopologyGraph, name: str, namespace: str | None = None) -> ResourceRef:
    """Locate a discovered Service node by name.

    Raises:
        KeyError: If no such service exists.
    """
    for node in graph:
        ref = node.ref
        if (
            ref.kind == ResourceKind.SERVICE.value
            and ref.name == name
            and (namespace is None or ref.namespace == namespace)
        ):
            return ref
    scope = f" in namespace '{namespace}'" if namespace else ""
    raise KeyError(f"Service '{name}' not found{scope}")
