"""CLI commands for the service dependency graph."""

from __future__ import annotations

import json
from typing import Annotated

import typer
import yaml

from cluster_explorer.cli.commands.base import (
    AllNamespacesOption,
    CliState,
    NamespaceOption,
    OutputOption,
    SessionFactory,
    console,
    handle_cancelled,
    handle_discovery_error,
    handle_k8s_error,
    resolve_output,
)
from cluster_explorer.cli.formatters import (
    POD_COLUMNS,
    GraphFormat,
    OutputFormat,
    get_formatter,
    render_tree,
)
from cluster_explorer.cli.progress import discovery_progress
from cluster_explorer.discovery.exceptions import DiscoveryCancelledError, DiscoveryError
from cluster_explorer.integrations.kubernetes.exceptions import KubernetesError
from cluster_explorer.models.resource import ResourceKind, ResourceRef
from cluster_explorer.topology import builder, render
from cluster_explorer.topology.graph import TopologyGraph

GraphFormatOption = Annotated[
    GraphFormat | None,
    typer.Option(
        "--format",
        "-f",
        help="Graph format: dot, tree, json, or yaml",
        case_sensitive=False,
    ),
]


def _without_pods(graph: TopologyGraph) -> TopologyGraph:
    return graph.subgraph([n.ref for n in graph if n.ref.kind != ResourceKind.POD.value])


def _print_graph(
    graph: TopologyGraph,
    fmt: GraphFormat,
    highlight: str | None = None,
    root: ResourceRef | None = None,
) -> None:
    if fmt == GraphFormat.DOT:
        text = render.to_dot(graph, highlight=highlight)
    elif fmt == GraphFormat.JSON:
        text = json.dumps(graph.to_dict(), indent=2)
    elif fmt == GraphFormat.YAML:
        text = yaml.safe_dump(graph.to_dict(), default_flow_style=False, sort_keys=False)
    else:
        console.print(render_tree(graph, root))
        return
    console.print(text, markup=False, highlight=False, soft_wrap=True)


def register_graph_commands(app: typer.Typer, get_session: SessionFactory) -> None:
    """Register ``graph``, ``topology`` and ``describe``."""

    @app.command("graph")
    def graph_command(
        ctx: typer.Context,
        namespace: NamespaceOption = None,
        all_namespaces: AllNamespacesOption = False,
        include_pods: bool = typer.Option(
            False, "--include-pods", help="Draw Pod nodes and their edges"
        ),
        highlight: str | None = typer.Option(
            None, "--highlight", help="Service name to highlight"
        ),
        fmt: GraphFormatOption = None,
    ) -> None:
        """Render the service dependency graph.

        Examples:
            kdx graph > deps.dot
            kdx graph -A --include-pods --format json
        """
        state = ctx.ensure_object(CliState)
        try:
            session = get_session(state)
            namespaces = session.resolve_namespaces(namespace, all_namespaces)
            with discovery_progress(state.show_progress, description="Building graph") as cb:
                graph = session.build_topology(
                    namespaces, page_size=state.page_size, progress_callback=cb
                )
            if not include_pods:
                graph = _without_pods(graph)
            _print_graph(graph, fmt or GraphFormat.DOT, highlight=highlight)
        except DiscoveryError as e:
            handle_discovery_error(e)
        except DiscoveryCancelledError as e:
            handle_cancelled(e)
        except KubernetesError as e:
            handle_k8s_error(e)

    @app.command("topology")
    def topology_command(
        ctx: typer.Context,
        service: str = typer.Argument(help="Service name"),
        namespace: NamespaceOption = None,
        all_namespaces: AllNamespacesOption = False,
        fmt: GraphFormatOption = None,
    ) -> None:
        """Show what a service routes from, selects, mounts, and is owned by.

        Examples:
            kdx topology api -n shop
            kdx topology api -A --format dot
        """
        state = ctx.ensure_object(CliState)
        try:
            session = get_session(state)
            namespaces = session.resolve_namespaces(namespace, all_namespaces)
            with discovery_progress(state.show_progress, description="Building graph") as cb:
                graph = session.build_topology(
                    namespaces, page_size=state.page_size, progress_callback=cb
                )
            scope = namespaces[0] if not all_namespaces else None
            try:
                ref = builder.find_service(graph, service, scope)
            except KeyError as e:
                console.print(f"[red]Error:[/red] {e.args[0]}")
                raise typer.Exit(1) from e
            _print_graph(
                graph.subgraph_for(ref), fmt or GraphFormat.TREE, highlight=service, root=ref
            )
        except DiscoveryError as e:
            handle_discovery_error(e)
        except DiscoveryCancelledError as e:
            handle_cancelled(e)
        except KubernetesError as e:
            handle_k8s_error(e)

    @app.command("describe")
    def describe_command(
        ctx: typer.Context,
        service: str = typer.Argument(help="Service name"),
        namespace: NamespaceOption = None,
        output: OutputOption = None,
    ) -> None:
        """Describe a service: its pods, ingress routes, configuration, and health.

        Examples:
            kdx describe api -n shop
            kdx describe api -o json
        """
        state = ctx.ensure_object(CliState)
        try:
            session = get_session(state)
            with discovery_progress(state.show_progress, description="Describing") as cb:
                description = session.describe_service(
                    service, namespace, page_size=state.page_size, progress_callback=cb
                )
        except DiscoveryError as e:
            handle_discovery_error(e)
        except DiscoveryCancelledError as e:
            handle_cancelled(e)
        except KubernetesError as e:
            handle_k8s_error(e)

        fmt = resolve_output(state, output)
        formatter = get_formatter(fmt, console)
        summary = description.summary()
        if fmt != OutputFormat.TABLE:
            formatter.format_dict(summary)
            return
        formatter.format_dict(summary, title=f"Service {service}")
        if description.pods:
            formatter.format_list(list(description.pods), POD_COLUMNS, title="Selected Pods")
        health = description.health
        style = "green" if health.healthy else "red"
        console.print(
            f"[{style}]Health: {'healthy' if health.healthy else 'unhealthy'}[/{style}]"
            f" ({health.reason}, {health.ready_pods}/{health.total_pods} pods ready)"
        )
