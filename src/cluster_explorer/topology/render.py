"""Graphviz DOT rendering of topology graphs."""

from __future__ import annotations

from cluster_explorer.topology.graph import Relation, TopologyGraph

_NODE_STYLES: dict[str, tuple[str, str]] = {
    "Service": ("box", "lightblue"),
    "Pod": ("ellipse", "lightgreen"),
    "Ingress": ("diamond", "orange"),
    "ConfigMap": ("note", "lightyellow"),
    "Secret": ("note", "lightpink"),
    "Deployment": ("component", "lightgrey"),
    "StatefulSet": ("component", "lightgrey"),
    "DaemonSet": ("component", "lightgrey"),
    "ReplicaSet": ("component", "whitesmoke"),
}
_DEFAULT_STYLE = ("hexagon", "lavender")

_EDGE_STYLES: dict[Relation, str] = {
    Relation.SELECTS: "solid",
    Relation.OWNS: "dashed",
    Relation.MOUNTS: "dotted",
    Relation.ROUTES_TO: "bold",
}


def _quote(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def to_dot(
    graph: TopologyGraph,
    highlight: str | None = None,
    include_pods: bool = True,
    name: str = "ServiceDependencies",
) -> str:
    """Render the graph as a DOT digraph.

    Args:
        graph: Graph to render.
        highlight: Name of a Service to fill red.
        include_pods: Whether Pod nodes (and their edges) are drawn.
        name: DOT graph name.
    """
    lines = [
        f"digraph {name} {{",
        "  rankdir=TB;",
        "  node [shape=box, style=rounded];",
        "",
    ]
    drawn: dict[str, int] = {}
    for node in graph:
        ref = node.ref
        if not include_pods and ref.kind == "Pod":
            continue
        node_id = len(drawn)
        drawn[str(ref)] = node_id
        shape, color = _NODE_STYLES.get(ref.kind, _DEFAULT_STYLE)
        if ref.kind == "Service" and highlight is not None and ref.name == highlight:
            color = "red"
        style = "filled" if node.discovered else "dashed"
        label = f"{ref.kind}: {_quote(ref.name)}"
        if ref.namespace:
            label += f"\\n({_quote(ref.namespace)})"
        lines.append(
            f'  "{node_id}" [label="{label}", shape={shape}, '
            f'fillcolor={color}, style="{style}"];'
        )

    lines.append("")
    for edge in graph.edges:
        src = drawn.get(str(edge.source))
        dst = drawn.get(str(edge.target))
        if src is None or dst is None:
            continue
        lines.append(
            f'  "{src}" -> "{dst}" '
            f'[style={_EDGE_STYLES[edge.relation]}, label="{edge.relation.value}"];'
        )
    lines.append("}")
    return "\n".join(lines) + "\n"
