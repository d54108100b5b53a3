"""Arena-backed dependency graph of discovered resources.

Nodes live in an index list with a reference-to-index map; edges are stored as
index triples. Cycles are representable and every traversal tracks visited
indices, so walking a cyclic graph always terminates.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Literal

from cluster_explorer.models.resource import Resource, ResourceRef

Direction = Literal["out", "in", "both"]


class Relation(StrEnum):
    """Kinds of inferred relationships."""

    SELECTS = "selects"
    OWNS = "owns"
    MOUNTS = "mounts"
    ROUTES_TO = "routes-to"


@dataclass
class TopologyNode:
    """A node in the graph. ``discovered`` is False for referenced-only resources."""

    ref: ResourceRef
    resource: Resource | None = None

    @property
    def discovered(self) -> bool:
        return self.resource is not None


@dataclass(frozen=True)
class Edge:
    """A directed, typed relationship between two resources."""

    source: ResourceRef
    target: ResourceRef
    relation: Relation


class FrozenGraphError(RuntimeError):
    """Raised when mutating a frozen graph."""


class TopologyGraph:
    """Directed multigraph over resource identities, one edge per (source, target, relation)."""

    def __init__(self) -> None:
        self._nodes: list[TopologyNode] = []
        self._index: dict[ResourceRef, int] = {}
        self._edges: list[tuple[int, int, Relation]] = []
        self._edge_set: set[tuple[int, int, Relation]] = set()
        self._out: dict[int, list[tuple[int, Relation]]] = {}
        self._in: dict[int, list[tuple[int, Relation]]] = {}
        self._frozen = False

    # =========================================================================
    # Construction
    # =========================================================================

    def _check_mutable(self) -> None:
        if self._frozen:
            raise FrozenGraphError("Topology graph is frozen")

    def add_node(self, ref: ResourceRef, resource: Resource | None = None) -> int:
        """Add a node, or attach a resource to an existing dangling node.

        Returns:
            The node's index.
        """
        self._check_mutable()
        index = self._index.get(ref)
        if index is not None:
            node = self._nodes[index]
            if node.resource is None and resource is not None:
                node.resource = resource
            return index
        index = len(self._nodes)
        self._nodes.append(TopologyNode(ref=ref, resource=resource))
        self._index[ref] = index
        return index

    def add_edge(self, source: ResourceRef, target: ResourceRef, relation: Relation) -> bool:
        """Insert an edge, creating dangling nodes for unknown endpoints.

        Self-loops are rejected and duplicates collapse.

        Returns:
            True if the edge was new.
        """
        self._check_mutable()
        if source == target:
            return False
        src = self.add_node(source)
        dst = self.add_node(target)
        triple = (src, dst, relation)
        if triple in self._edge_set:
            return False
        self._edge_set.add(triple)
        self._edges.append(triple)
        self._out.setdefault(src, []).append((dst, relation))
        self._in.setdefault(dst, []).append((src, relation))
        return True

    def freeze(self) -> TopologyGraph:
        """Mark the graph read-only and return it."""
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def nodes(self) -> list[TopologyNode]:
        return list(self._nodes)

    @property
    def edges(self) -> list[Edge]:
        return [
            Edge(self._nodes[src].ref, self._nodes[dst].ref, relation)
            for src, dst, relation in self._edges
        ]

    def __contains__(self, ref: object) -> bool:
        return ref in self._index

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[TopologyNode]:
        return iter(self._nodes)

    def node(self, ref: ResourceRef) -> TopologyNode:
        """Raises KeyError for unknown references."""
        return self._nodes[self._index[ref]]

    def _adjacent(
        self, index: int, direction: Direction, relation: Relation | None = None
    ) -> list[int]:
        found: list[int] = []
        if direction in ("out", "both"):
            found.extend(i for i, rel in self._out.get(index, ()) if relation in (None, rel))
        if direction in ("in", "both"):
            found.extend(i for i, rel in self._in.get(index, ()) if relation in (None, rel))
        return found

    def neighbors(
        self,
        ref: ResourceRef,
        direction: Direction = "out",
        relation: Relation | None = None,
    ) -> list[ResourceRef]:
        """Adjacent nodes in insertion order, optionally restricted to one relation."""
        index = self._index.get(ref)
        if index is None:
            return []
        seen: set[int] = set()
        result: list[ResourceRef] = []
        for i in self._adjacent(index, direction, relation):
            if i not in seen:
                seen.add(i)
                result.append(self._nodes[i].ref)
        return result

    def walk(self, ref: ResourceRef, direction: Direction = "out") -> list[ResourceRef]:
        """Breadth-first traversal from ``ref``, visiting each node once."""
        start = self._index.get(ref)
        if start is None:
            return []
        visited = {start}
        order: list[ResourceRef] = []
        queue = deque([start])
        while queue:
            index = queue.popleft()
            order.append(self._nodes[index].ref)
            for nxt in self._adjacent(index, direction):
                if nxt not in visited:
                    visited.add(nxt)
                    queue.append(nxt)
        return order

    def subgraph(self, refs: list[ResourceRef]) -> TopologyGraph:
        """Frozen graph induced by ``refs``."""
        keep = {self._index[r] for r in refs if r in self._index}
        sub = TopologyGraph()
        for index in sorted(keep):
            node = self._nodes[index]
            sub.add_node(node.ref, node.resource)
        for src, dst, relation in self._edges:
            if src in keep and dst in keep:
                sub.add_edge(self._nodes[src].ref, self._nodes[dst].ref, relation)
        return sub.freeze()

    def subgraph_for(self, ref: ResourceRef) -> TopologyGraph:
        """Service-centric view around ``ref``.

        Includes ingresses routing to it, the pods it selects, what those pods
        mount, and the chain of owners above each pod. For anything other than
        a Service this is the undirected reachable set.
        """
        start = self._index.get(ref)
        if start is None:
            return TopologyGraph().freeze()
        if ref.kind != "Service":
            return self.subgraph(self.walk(ref, "both"))

        keep = {start}
        keep.update(self._adjacent(start, "in", Relation.ROUTES_TO))
        for pod in self._adjacent(start, "out", Relation.SELECTS):
            keep.add(pod)
            keep.update(self._adjacent(pod, "out", Relation.MOUNTS))
            queue = deque([pod])
            while queue:
                for owner in self._adjacent(queue.popleft(), "in", Relation.OWNS):
                    if owner not in keep:
                        keep.add(owner)
                        queue.append(owner)
        return self.subgraph([self._nodes[i].ref for i in sorted(keep)])

    def to_dict(self) -> dict[str, Any]:
        """Serializable node and edge lists."""
        return {
            "nodes": [
                {
                    "id": str(node.ref),
                    "kind": node.ref.kind,
                    "namespace": node.ref.namespace,
                    "name": node.ref.name,
                    "discovered": node.discovered,
                    "status": node.resource.status_label if node.resource else None,
                }
                for node in self._nodes
            ],
            "edges": [
                {
                    "source": str(edge.source),
                    "target": str(edge.target),
                    "relation": edge.relation.value,
                }
                for edge in self.edges
            ],
        }
