"""Base utilities for explorer CLI commands.

Provides the shared CLI state, common Typer options, and error handling
utilities used by every command module.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.markup import escape

from cluster_explorer.cli.formatters import OutputFormat
from cluster_explorer.discovery.exceptions import (
    DiscoveryCancelledError,
    DiscoveryError,
    SelectorParseError,
)
from cluster_explorer.discovery.filtering import parse_duration
from cluster_explorer.integrations.kubernetes.exceptions import (
    FetchErrorKind,
    KubernetesAuthError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesMalformedError,
    KubernetesNotFoundError,
    KubernetesRateLimitError,
    KubernetesTimeoutError,
)

if TYPE_CHECKING:
    from cluster_explorer.services.explorer import ExplorerSession

# Shared console instance
console = Console()

SELECTOR_ERROR_EXIT_CODE = 2


@dataclass
class CliState:
    """Global options collected by the root callback, shared with commands."""

    context: str | None = None
    namespace: str | None = None
    output: OutputFormat | None = None
    limit: int | None = None
    page_size: int | None = None
    concurrency: int | None = None
    show_progress: bool = False
    cache_ttl: float | None = None
    session: ExplorerSession | None = None


SessionFactory = Callable[[CliState], "ExplorerSession"]


def resolve_output(state: CliState, output: OutputFormat | None) -> OutputFormat:
    """Per-command ``--output`` wins over the global flag and the configured default."""
    if output is not None:
        return output
    if state.output is not None:
        return state.output
    if state.session is not None:
        return OutputFormat(state.session.config.output_format)
    return OutputFormat.TABLE


# =============================================================================
# Common Typer Option Annotations
# =============================================================================

OutputOption = Annotated[
    OutputFormat | None,
    typer.Option(
        "--output",
        "-o",
        help="Output format: table, json, or yaml",
        case_sensitive=False,
    ),
]

NamespaceOption = Annotated[
    str | None,
    typer.Option(
        "--namespace",
        "-n",
        help="Kubernetes namespace (defaults to config or 'default')",
    ),
]

AllNamespacesOption = Annotated[
    bool,
    typer.Option(
        "--all-namespaces",
        "-A",
        help="Discover resources across all namespaces",
    ),
]

LabelSelectorOption = Annotated[
    str | None,
    typer.Option(
        "--selector",
        "-l",
        help="Label selector (e.g., 'app=nginx,tier notin (cache)')",
    ),
]

StatusOption = Annotated[
    str | None,
    typer.Option(
        "--status",
        help="Only show resources with this status (e.g., Running, Ready)",
    ),
]

GroupByOption = Annotated[
    str | None,
    typer.Option(
        "--group-by",
        help="Group by app, tier, helm-release, namespace, or any label key",
    ),
]

NewerThanOption = Annotated[
    str | None,
    typer.Option(
        "--newer-than",
        help="Only resources younger than this age (e.g., 30s, 15m, 2h, 7d)",
    ),
]

OlderThanOption = Annotated[
    str | None,
    typer.Option(
        "--older-than",
        help="Only resources older than this age (e.g., 30s, 15m, 2h, 7d)",
    ),
]

StreamOption = Annotated[
    bool,
    typer.Option(
        "--stream",
        help="Print resources page by page as they arrive",
    ),
]


# =============================================================================
# Error Handling
# =============================================================================


def _print_hint(error: KubernetesError) -> None:
    if isinstance(error, KubernetesConnectionError):
        if error.original_error:
            console.print(f"  Cause: {error.original_error}")
        console.print(
            "\n[dim]Hint: Check that your kubeconfig is valid and the cluster is reachable.[/dim]"
        )
    elif isinstance(error, KubernetesAuthError):
        console.print("\n[dim]Hint: Check your credentials, token, or RBAC permissions.[/dim]")
    elif isinstance(error, KubernetesRateLimitError):
        console.print(
            "\n[dim]Hint: Lower --concurrency or raise --page-size to make fewer calls.[/dim]"
        )
    elif isinstance(error, KubernetesMalformedError):
        console.print(
            "\n[dim]Hint: The listing may have changed underneath a paginated read; retry.[/dim]"
        )
    elif isinstance(error, KubernetesTimeoutError):
        console.print(
            "\n[dim]Hint: Try increasing the timeout with KDX_TIMEOUT or narrowing the scope.[/dim]"
        )


_HEADLINES: dict[FetchErrorKind, str] = {
    FetchErrorKind.UNREACHABLE: "Cannot connect to Kubernetes cluster",
    FetchErrorKind.UNAUTHORIZED: "Authentication/authorization failed",
    FetchErrorKind.NOT_FOUND: "Resource not found",
    FetchErrorKind.RATE_LIMITED: "Rate limited by the API server",
    FetchErrorKind.MALFORMED: "Unexpected API response",
    FetchErrorKind.TIMEOUT: "Operation timed out",
}


def handle_k8s_error(error: KubernetesError) -> None:
    """Handle Kubernetes errors with user-friendly output.

    Args:
        error: The Kubernetes error to handle.

    Raises:
        typer.Exit: Always exits with code 1.
    """
    headline = _HEADLINES.get(error.error_kind)
    if headline is None:
        console.print(f"[red]Error:[/red] {error.message}")
        if error.status_code:
            console.print(f"  HTTP Status: {error.status_code}")
    else:
        console.print(f"[red]Error:[/red] {headline}")
        console.print(f"  {error.message}")
        _print_hint(error)

    raise typer.Exit(1)


def handle_discovery_error(error: DiscoveryError) -> None:
    """Report a failed discovery and the unit that failed it.

    Raises:
        typer.Exit: Always exits with code 1.
    """
    headline = _HEADLINES.get(error.error_kind, "Discovery failed")
    console.print(f"[red]Error:[/red] {headline}")
    console.print(f"  {escape(str(error))}")
    if isinstance(error.cause, KubernetesNotFoundError) and error.cause.resource_type:
        console.print(f"  Missing: {error.cause.resource_type}")
    _print_hint(error.cause)
    raise typer.Exit(1)


def handle_selector_error(error: SelectorParseError) -> None:
    """Report a malformed label selector.

    Raises:
        typer.Exit: Always exits with code 2.
    """
    console.print(f"[red]Error:[/red] {escape(str(error))}")
    console.print(
        "\n[dim]Hint: Use key=value, key!=value, key in (a,b), key notin (a), key, or !key.[/dim]"
    )
    raise typer.Exit(SELECTOR_ERROR_EXIT_CODE)


def handle_cancelled(error: DiscoveryCancelledError) -> None:
    """Report a discovery cancelled by the user.

    Raises:
        typer.Exit: Always exits with code 130.
    """
    console.print("[yellow]Discovery cancelled[/yellow]")
    raise typer.Exit(130)


def parse_age_option(value: str | None, option_name: str) -> float | None:
    """Parse a ``--newer-than``/``--older-than`` value into seconds.

    Raises:
        typer.BadParameter: If the value is not a duration.
    """
    if value is None:
        return None
    try:
        return parse_duration(value)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint=option_name) from e
