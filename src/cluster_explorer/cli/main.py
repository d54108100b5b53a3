"""Main CLI entry point using Typer."""

from __future__ import annotations

import typer
from rich.console import Console

from cluster_explorer import __version__
from cluster_explorer.cli.commands.base import CliState
from cluster_explorer.cli.commands.cache import register_cache_commands
from cluster_explorer.cli.commands.graph import register_graph_commands
from cluster_explorer.cli.commands.resources import register_resource_commands
from cluster_explorer.cli.formatters import OutputFormat
from cluster_explorer.integrations.kubernetes.client import KubernetesClient
from cluster_explorer.integrations.kubernetes.config import DiscoveryDefaults, ExplorerConfig
from cluster_explorer.integrations.kubernetes.source import KubernetesResourceSource
from cluster_explorer.logging.config import configure_logging
from cluster_explorer.services.explorer import ExplorerSession

app = typer.Typer(
    name="kdx",
    help="Explore Kubernetes resources and the dependencies between them.",
    add_completion=True,
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"kdx version {__version__}")
        raise typer.Exit()


def build_config(state: CliState) -> ExplorerConfig:
    """Environment configuration with the global flags applied on top."""
    config = ExplorerConfig.from_env()
    overrides = {
        key: value
        for key, value in (
            ("page_size", state.page_size),
            ("concurrency", state.concurrency),
            ("cache_ttl", state.cache_ttl),
        )
        if value is not None
    }
    if overrides:
        config.defaults = DiscoveryDefaults.model_validate(
            {**config.defaults.model_dump(), **overrides}
        )
    if state.context:
        config.active_cluster = state.context
    if state.namespace:
        config.namespace_override = state.namespace
        for cluster_cfg in config.clusters.values():
            cluster_cfg.namespace = state.namespace
    return config


def create_session(state: CliState) -> ExplorerSession:
    """Build the process-wide session on first use.

    Raises:
        KubernetesConnectionError: If no Kubernetes configuration can be loaded.
    """
    if state.session is None:
        config = build_config(state)
        client = KubernetesClient(config)
        state.session = ExplorerSession(KubernetesResourceSource(client), config)
    return state.session


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode.",
    ),
    context: str | None = typer.Option(
        None,
        "--context",
        help="Kubernetes context to use (defaults to the kubeconfig's current context).",
    ),
    namespace: str | None = typer.Option(
        None,
        "--namespace",
        help="Default namespace for commands that do not pass -n.",
    ),
    output: OutputFormat | None = typer.Option(
        None,
        "--output",
        help="Default output format: table, json, or yaml.",
        case_sensitive=False,
    ),
    limit: int | None = typer.Option(
        None,
        "--limit",
        min=1,
        help="Maximum number of resources per list.",
    ),
    page_size: int | None = typer.Option(
        None,
        "--page-size",
        min=1,
        help="Items requested per API page.",
    ),
    concurrency: int | None = typer.Option(
        None,
        "--concurrency",
        min=1,
        help="Maximum concurrent API calls.",
    ),
    show_progress: bool = typer.Option(
        False,
        "--show-progress",
        help="Show a progress bar while discovering.",
    ),
    cache_ttl: float | None = typer.Option(
        None,
        "--cache-ttl",
        min=0,
        help="Lifetime of cached pages in seconds.",
    ),
) -> None:
    """kdx - Kubernetes discovery and dependency explorer."""
    configure_logging(verbose=verbose, debug=debug)
    ctx.obj = CliState(
        context=context,
        namespace=namespace,
        output=output,
        limit=limit,
        page_size=page_size,
        concurrency=concurrency,
        show_progress=show_progress,
        cache_ttl=cache_ttl,
    )


# Register subcommands
register_resource_commands(app, create_session)
register_graph_commands(app, create_session)
register_cache_commands(app, create_session)


if __name__ == "__main__":
    app()
