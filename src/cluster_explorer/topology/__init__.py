"""Service dependency graph."""

from cluster_explorer.topology.graph import Edge, Relation, TopologyGraph, TopologyNode

__all__ = ["Edge", "Relation", "TopologyGraph", "TopologyNode"]
