"""CLI commands for the discovery cache."""

from __future__ import annotations

import typer

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
from cluster_explorer.cli.formatters import get_formatter
from cluster_explorer.cli.progress import discovery_progress
from cluster_explorer.discovery.exceptions import DiscoveryCancelledError, DiscoveryError
from cluster_explorer.integrations.kubernetes.exceptions import KubernetesError
from cluster_explorer.models.resource import ResourceKind
from cluster_explorer.services.explorer import WARM_KINDS


def _parse_kinds(kinds: str | None) -> list[ResourceKind]:
    if not kinds:
        return list(WARM_KINDS)
    try:
        return [ResourceKind.parse(k.strip()) for k in kinds.split(",") if k.strip()]
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--kinds") from e


def register_cache_commands(app: typer.Typer, get_session: SessionFactory) -> None:
    """Register the ``cache`` command group."""

    cache_app = typer.Typer(
        name="cache",
        help="Inspect and manage the discovery cache",
        no_args_is_help=True,
    )
    app.add_typer(cache_app, name="cache")

    @cache_app.command("stats")
    def stats(ctx: typer.Context, output: OutputOption = None) -> None:
        """Show cache entry counts, hit rate, and TTL."""
        state = ctx.ensure_object(CliState)
        try:
            session = get_session(state)
        except KubernetesError as e:
            handle_k8s_error(e)
        cache_stats = session.cache_stats()
        data = cache_stats.model_dump()
        data["hit_rate"] = round(cache_stats.hit_rate, 3)
        formatter = get_formatter(resolve_output(state, output), console)
        formatter.format_dict(data, title="Cache Statistics")

    @cache_app.command("clear")
    def clear(ctx: typer.Context) -> None:
        """Drop every cached page."""
        state = ctx.ensure_object(CliState)
        try:
            session = get_session(state)
        except KubernetesError as e:
            handle_k8s_error(e)
        removed = session.clear_cache()
        console.print(f"[green]Cleared {removed} cache entries[/green]")

    @cache_app.command("warm")
    def warm(
        ctx: typer.Context,
        kinds: str | None = typer.Option(
            None, "--kinds", help="Comma-separated kinds to pre-load (default: all built-in)"
        ),
        namespace: NamespaceOption = None,
        all_namespaces: AllNamespacesOption = False,
    ) -> None:
        """Pre-load the cache with unfiltered listings.

        Examples:
            kdx cache warm -A
            kdx cache warm --kinds pods,services -n shop
        """
        state = ctx.ensure_object(CliState)
        wanted = _parse_kinds(kinds)
        try:
            session = get_session(state)
            namespaces = session.resolve_namespaces(namespace, all_namespaces)
            with discovery_progress(state.show_progress, description="Warming cache") as cb:
                result = session.warm_cache(namespaces, wanted, progress_callback=cb)
            console.print(
                f"[green]Cached {len(result)} resources from {result.units} units[/green]"
            )
        except DiscoveryError as e:
            handle_discovery_error(e)
        except DiscoveryCancelledError as e:
            handle_cancelled(e)
        except KubernetesError as e:
            handle_k8s_error(e)
