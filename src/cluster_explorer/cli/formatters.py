"""Output formatters for explorer commands.

Implements the Strategy pattern for output formatting, so every command can
render resources, groups, plain dictionaries and graphs as a table, JSON, or
YAML.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Sequence
from enum import StrEnum
from typing import Any

import yaml
from rich.console import Console
from rich.tree import Tree

from cluster_explorer.cli.output import Table
from cluster_explorer.discovery.filtering import ResourceGroup
from cluster_explorer.models.resource import (
    DaemonSetStatus,
    IngressStatus,
    PodStatus,
    ReplicaStatus,
    Resource,
    ResourceKind,
    ResourceRef,
    ServiceStatus,
)
from cluster_explorer.topology.graph import TopologyGraph

Columns = list[tuple[str, str]]


class OutputFormat(StrEnum):
    """Supported output formats for list commands."""

    TABLE = "table"
    JSON = "json"
    YAML = "yaml"


class GraphFormat(StrEnum):
    """Supported output formats for graph commands."""

    DOT = "dot"
    TREE = "tree"
    JSON = "json"
    YAML = "yaml"


# =============================================================================
# Column Definitions
# =============================================================================

SERVICE_COLUMNS: Columns = [
    ("name", "Name"),
    ("namespace", "Namespace"),
    ("status.type", "Type"),
    ("status.cluster_ip", "Cluster IP"),
    ("ports", "Ports"),
    ("selector_text", "Selector"),
    ("age", "Age"),
]

POD_COLUMNS: Columns = [
    ("name", "Name"),
    ("namespace", "Namespace"),
    ("status.phase", "Status"),
    ("ready", "Ready"),
    ("status.restarts", "Restarts"),
    ("status.node_name", "Node"),
    ("status.pod_ip", "IP"),
    ("age", "Age"),
]

REPLICA_COLUMNS: Columns = [
    ("name", "Name"),
    ("namespace", "Namespace"),
    ("status_label", "Status"),
    ("ready", "Ready"),
    ("status.updated", "Up-to-date"),
    ("status.available", "Available"),
    ("age", "Age"),
]

DAEMONSET_COLUMNS: Columns = [
    ("name", "Name"),
    ("namespace", "Namespace"),
    ("status_label", "Status"),
    ("status.desired", "Desired"),
    ("status.current", "Current"),
    ("status.ready", "Ready"),
    ("status.up_to_date", "Up-to-date"),
    ("age", "Age"),
]

CONFIGMAP_COLUMNS: Columns = [
    ("name", "Name"),
    ("namespace", "Namespace"),
    ("status.data_keys", "Keys"),
    ("age", "Age"),
]

SECRET_COLUMNS: Columns = [
    ("name", "Name"),
    ("namespace", "Namespace"),
    ("status.secret_type", "Type"),
    ("status.data_keys", "Keys"),
    ("age", "Age"),
]

INGRESS_COLUMNS: Columns = [
    ("name", "Name"),
    ("namespace", "Namespace"),
    ("routes", "Routes"),
    ("backends", "Backends"),
    ("age", "Age"),
]

CUSTOM_RESOURCE_COLUMNS: Columns = [
    ("name", "Name"),
    ("namespace", "Namespace"),
    ("custom_kind", "Kind"),
    ("status_label", "Status"),
    ("age", "Age"),
]

CRD_COLUMNS: Columns = [
    ("kind", "Kind"),
    ("plural", "Plural"),
    ("group", "Group"),
    ("version", "Version"),
    ("namespaced", "Namespaced"),
]

COLUMNS_BY_KIND: dict[ResourceKind, Columns] = {
    ResourceKind.SERVICE: SERVICE_COLUMNS,
    ResourceKind.POD: POD_COLUMNS,
    ResourceKind.DEPLOYMENT: REPLICA_COLUMNS,
    ResourceKind.STATEFULSET: REPLICA_COLUMNS,
    ResourceKind.REPLICASET: REPLICA_COLUMNS,
    ResourceKind.DAEMONSET: DAEMONSET_COLUMNS,
    ResourceKind.CONFIGMAP: CONFIGMAP_COLUMNS,
    ResourceKind.SECRET: SECRET_COLUMNS,
    ResourceKind.INGRESS: INGRESS_COLUMNS,
    ResourceKind.CUSTOM_RESOURCE: CUSTOM_RESOURCE_COLUMNS,
}


def resource_view(resource: Resource) -> dict[str, Any]:
    """Flat view of a resource with the computed fields tables display."""
    data = resource.model_dump(mode="json", exclude={"document"})
    data["kind"] = resource.display_kind
    data["age"] = resource.age
    data["status_label"] = resource.status_label
    status = resource.status
    if isinstance(status, PodStatus):
        data["ready"] = status.ready
    elif isinstance(status, ReplicaStatus | DaemonSetStatus):
        data["ready"] = f"{status.ready}/{status.desired}"
    elif isinstance(status, ServiceStatus):
        data["ports"] = [str(p) for p in status.ports]
    elif isinstance(status, IngressStatus):
        data["routes"] = status.routes
    if resource.selector:
        data["selector_text"] = ",".join(f"{k}={v}" for k, v in sorted(resource.selector.items()))
    return data


def resource_document(resource: Resource) -> dict[str, Any]:
    """Structured form of a resource for JSON and YAML output."""
    data = resource.model_dump(mode="json", exclude_none=True)
    data["kind"] = resource.display_kind
    data["age"] = resource.age
    return data


def _dump(item: Any) -> Any:
    if isinstance(item, Resource):
        return resource_document(item)
    if hasattr(item, "model_dump"):
        return item.model_dump(mode="json", exclude_none=True)
    return item


class ExplorerFormatter(ABC):
    """Abstract base class for output formatters."""

    def __init__(self, console: Console) -> None:
        self.console = console

    def _print_raw(self, text: str) -> None:
        self.console.print(text, markup=False, highlight=False, soft_wrap=True)

    @abstractmethod
    def format_list(self, resources: Sequence[Any], columns: Columns, title: str = "") -> None:
        """Format and display a list of resources."""

    @abstractmethod
    def format_groups(self, groups: Sequence[ResourceGroup], columns: Columns) -> None:
        """Format and display grouped resources."""

    @abstractmethod
    def format_dict(self, data: dict[str, Any], title: str = "") -> None:
        """Format and display a dictionary."""

    def format_error(self, message: str) -> None:
        """Display an error message."""
        self.console.print(f"[red]Error:[/red] {message}")


class TableFormatter(ExplorerFormatter):
    """Rich table output formatter."""

    def _table(self, resources: Sequence[Any], columns: Columns, title: str) -> Table:
        table = Table(title=title or None, show_header=True)
        for _field_name, header in columns:
            style = "cyan" if header.lower() in ("name", "namespace") else None
            table.add_column(header, style=style)
        for resource in resources:
            if isinstance(resource, Resource):
                data = resource_view(resource)
            elif hasattr(resource, "model_dump"):
                data = resource.model_dump()
            else:
                data = resource
            table.add_row(
                *(self._format_cell_value(self._get_nested_value(data, f)) for f, _ in columns)
            )
        return table

    def format_list(self, resources: Sequence[Any], columns: Columns, title: str = "") -> None:
        """Format resources as a multi-column table."""
        if not resources:
            self.console.print(f"[yellow]No {title.lower() or 'resources'} found[/yellow]")
            return
        self.console.print(self._table(resources, columns, title))
        self.console.print(f"[dim]Total: {len(resources)} resources[/dim]")

    def format_groups(self, groups: Sequence[ResourceGroup], columns: Columns) -> None:
        """One table per group, with group metadata in the title."""
        if not groups or all(not g.resources for g in groups):
            self.console.print("[yellow]No resources found[/yellow]")
            return
        for group in groups:
            title = f"{group.group_type}: {group.name}" if group.group_type != "none" else ""
            if group.metadata:
                meta = ", ".join(f"{k}={v}" for k, v in sorted(group.metadata.items()))
                title = f"{title} ({meta})"
            self.console.print(self._table(group.resources, columns, title))
        total = sum(g.total for g in groups)
        self.console.print(f"[dim]Total: {total} resources in {len(groups)} groups[/dim]")

    def format_dict(self, data: dict[str, Any], title: str = "") -> None:
        """Format dictionary as a two-column table."""
        table = Table(title=title or None, show_header=True)
        table.add_column("Key", style="cyan", no_wrap=True)
        table.add_column("Value", style="green")
        for key, value in data.items():
            table.add_row(key, self._format_value(value))
        self.console.print(table)

    def _format_value(self, value: Any) -> str:
        if isinstance(value, dict):
            return json.dumps(value, indent=2)
        elif isinstance(value, list):
            if all(isinstance(v, str) for v in value):
                return ", ".join(value) or "-"
            return json.dumps(value, indent=2)
        elif isinstance(value, bool):
            return "[green]true[/green]" if value else "[red]false[/red]"
        elif value is None:
            return "[dim]-[/dim]"
        return str(value)

    def _format_cell_value(self, value: Any) -> str:
        if isinstance(value, dict):
            return ",".join(f"{k}={v}" for k, v in value.items()) or "-"
        elif isinstance(value, list | tuple):
            if len(value) == 0:
                return "-"
            result = ", ".join(str(v) for v in value[:3])
            if len(value) > 3:
                result += f" (+{len(value) - 3})"
            return result
        elif isinstance(value, bool):
            return "Yes" if value else "No"
        elif value is None or value == "":
            return "-"
        return str(value)

    def _get_nested_value(self, data: dict[str, Any], field_path: str) -> Any:
        value: Any = data
        for key in field_path.split("."):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return None
        return value


class JsonFormatter(ExplorerFormatter):
    """JSON output formatter."""

    def format_list(self, resources: Sequence[Any], columns: Columns, title: str = "") -> None:
        data = [_dump(r) for r in resources]
        self._print_raw(json.dumps({"data": data, "total": len(data)}, indent=2, default=str))

    def format_groups(self, groups: Sequence[ResourceGroup], columns: Columns) -> None:
        data = [
            {
                "name": g.name,
                "group_type": g.group_type,
                "metadata": g.metadata,
                "resources": [_dump(r) for r in g.resources],
            }
            for g in groups
        ]
        total = sum(g.total for g in groups)
        self._print_raw(json.dumps({"groups": data, "total": total}, indent=2, default=str))

    def format_dict(self, data: dict[str, Any], title: str = "") -> None:
        self._print_raw(json.dumps(data, indent=2, default=str))


class YamlFormatter(ExplorerFormatter):
    """YAML output formatter."""

    def format_list(self, resources: Sequence[Any], columns: Columns, title: str = "") -> None:
        data = [_dump(r) for r in resources]
        self._print_raw(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))

    def format_groups(self, groups: Sequence[ResourceGroup], columns: Columns) -> None:
        data = [
            {
                "name": g.name,
                "group_type": g.group_type,
                "metadata": g.metadata,
                "resources": [_dump(r) for r in g.resources],
            }
            for g in groups
        ]
        self._print_raw(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))

    def format_dict(self, data: dict[str, Any], title: str = "") -> None:
        self._print_raw(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))


def get_formatter(format_type: OutputFormat, console: Console | None = None) -> ExplorerFormatter:
    """Factory function to get the appropriate formatter."""
    if console is None:
        console = Console()

    formatters: dict[OutputFormat, type[ExplorerFormatter]] = {
        OutputFormat.TABLE: TableFormatter,
        OutputFormat.JSON: JsonFormatter,
        OutputFormat.YAML: YamlFormatter,
    }

    formatter_class = formatters.get(format_type, TableFormatter)
    return formatter_class(console)


# =============================================================================
# Graph Rendering
# =============================================================================


def _node_label(graph: TopologyGraph, ref: ResourceRef) -> str:
    node = graph.node(ref)
    label = f"[bold]{ref.kind}[/bold] {ref.name}"
    if node.resource is not None and node.resource.status_label:
        label += f" [dim]({node.resource.status_label})[/dim]"
    if not node.discovered:
        label += " [yellow](not discovered)[/yellow]"
    return label


def render_tree(graph: TopologyGraph, root: ResourceRef | None = None) -> Tree:
    """Render the graph as a Rich tree following outgoing edges.

    With a root, incoming ``routes-to`` and ``owns`` edges of the root are shown
    first. Without one, every node that has no incoming edge starts a branch.
    Nodes already shown are not expanded again, so cycles terminate.
    """
    visited: set[ResourceRef] = set()

    def expand(branch: Tree, ref: ResourceRef) -> None:
        for edge in graph.edges:
            if edge.source != ref:
                continue
            label = _node_label(graph, edge.target)
            child = branch.add(f"[dim]{edge.relation.value}[/dim] {label}")
            if edge.target not in visited:
                visited.add(edge.target)
                expand(child, edge.target)

    if root is not None:
        tree = Tree(_node_label(graph, root))
        visited.add(root)
        for edge in graph.edges:
            if edge.target == root:
                tree.add(
                    f"[dim]{edge.relation.value} from[/dim] {_node_label(graph, edge.source)}"
                )
        expand(tree, root)
        return tree

    tree = Tree("[bold]Topology[/bold]")
    targets = {edge.target for edge in graph.edges}
    roots = [node.ref for node in graph if node.ref not in targets]
    for ref in roots + [node.ref for node in graph]:
        if ref in visited:
            continue
        visited.add(ref)
        expand(tree.add(_node_label(graph, ref)), ref)
    return tree
