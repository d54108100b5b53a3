"""CLI commands for listing discovered resources.

One list command is registered per built-in kind, plus ``custom-resources``
for CRD-backed types. All of them share the same filter, grouping and
output options.
"""

from __future__ import annotations

import json
from collections.abc import Callable

import typer
import yaml

from cluster_explorer.cli.commands.base import (
    AllNamespacesOption,
    CliState,
    GroupByOption,
    LabelSelectorOption,
    NamespaceOption,
    NewerThanOption,
    OlderThanOption,
    OutputOption,
    SessionFactory,
    StatusOption,
    StreamOption,
    console,
    handle_cancelled,
    handle_discovery_error,
    handle_k8s_error,
    handle_selector_error,
    parse_age_option,
    resolve_output,
)
from cluster_explorer.cli.formatters import (
    COLUMNS_BY_KIND,
    CRD_COLUMNS,
    Columns,
    OutputFormat,
    get_formatter,
    resource_document,
)
from cluster_explorer.cli.progress import discovery_progress
from cluster_explorer.discovery.coordinator import DiscoveryResult
from cluster_explorer.discovery.exceptions import (
    DiscoveryCancelledError,
    DiscoveryError,
    SelectorParseError,
)
from cluster_explorer.discovery.filtering import GroupBy, group_resources
from cluster_explorer.integrations.kubernetes.exceptions import KubernetesError
from cluster_explorer.models.request import DiscoveryRequest
from cluster_explorer.models.resource import Resource, ResourceKind
from cluster_explorer.services.explorer import ExplorerSession

# (command name, kind, table title)
LIST_COMMANDS: list[tuple[str, ResourceKind, str]] = [
    ("services", ResourceKind.SERVICE, "Services"),
    ("pods", ResourceKind.POD, "Pods"),
    ("deployments", ResourceKind.DEPLOYMENT, "Deployments"),
    ("statefulsets", ResourceKind.STATEFULSET, "StatefulSets"),
    ("daemonsets", ResourceKind.DAEMONSET, "DaemonSets"),
    ("configmaps", ResourceKind.CONFIGMAP, "ConfigMaps"),
    ("secrets", ResourceKind.SECRET, "Secrets"),
    ("ingresses", ResourceKind.INGRESS, "Ingresses"),
]


# =============================================================================
# Helpers
# =============================================================================


def _print_stream_item(resource: Resource, output: OutputFormat) -> None:
    if output == OutputFormat.JSON:
        console.print(
            json.dumps(resource_document(resource), default=str),
            markup=False,
            highlight=False,
            soft_wrap=True,
        )
    elif output == OutputFormat.YAML:
        console.print(
            "---\n" + yaml.safe_dump(resource_document(resource), sort_keys=False),
            markup=False,
            highlight=False,
            soft_wrap=True,
        )
    else:
        status = resource.status_label or "-"
        console.print(
            f"{resource.identity}  {status}  {resource.age}",
            markup=False,
            highlight=False,
        )


def _stream(
    session: ExplorerSession,
    template: DiscoveryRequest,
    namespaces: list[str | None],
    output: OutputFormat,
) -> None:
    """Print resources unit by unit, page by page, without aggregating."""
    count = 0
    truncated = False
    for namespace in namespaces:
        stream = session.stream_resources(template.for_namespace(namespace))
        for resource in stream:
            _print_stream_item(resource, output)
            count += 1
        truncated = truncated or stream.truncated
    if output == OutputFormat.TABLE:
        console.print(f"[dim]Total: {count} resources[/dim]")
        if truncated:
            console.print("[dim]More resources available; raise --limit to see them[/dim]")


def _render(
    result: DiscoveryResult,
    columns: Columns,
    title: str,
    output: OutputFormat,
    group_by: str | None,
) -> None:
    resources = result.sorted()
    formatter = get_formatter(output, console)
    if group_by:
        groups = group_resources(resources, GroupBy.parse(group_by))
        formatter.format_groups(groups, columns)
    else:
        formatter.format_list(resources, columns, title=title)
    if result.truncated and output == OutputFormat.TABLE:
        console.print("[dim]More resources available; raise --limit to see them[/dim]")


# =============================================================================
# Command Registration
# =============================================================================


def register_resource_commands(app: typer.Typer, get_session: SessionFactory) -> None:
    """Register the per-kind list commands and ``custom-resources``."""

    def make_list_command(kind: ResourceKind, title: str) -> Callable[..., None]:
        columns = COLUMNS_BY_KIND[kind]

        def list_command(
            ctx: typer.Context,
            namespace: NamespaceOption = None,
            all_namespaces: AllNamespacesOption = False,
            label_selector: LabelSelectorOption = None,
            status: StatusOption = None,
            group_by: GroupByOption = None,
            newer_than: NewerThanOption = None,
            older_than: OlderThanOption = None,
            stream: StreamOption = False,
            output: OutputOption = None,
        ) -> None:
            state = ctx.ensure_object(CliState)
            newer = parse_age_option(newer_than, "--newer-than")
            older = parse_age_option(older_than, "--older-than")
            try:
                session = get_session(state)
                fmt = resolve_output(state, output)
                namespaces = session.resolve_namespaces(namespace, all_namespaces)
                template = session.make_request(
                    kind,
                    selector=label_selector,
                    status=status,
                    newer_than=newer,
                    older_than=older,
                    page_size=state.page_size,
                    limit=state.limit,
                )
                if stream:
                    _stream(session, template, namespaces, fmt)
                    return
                with discovery_progress(state.show_progress) as callback:
                    result = session.discover(
                        [kind],
                        namespaces,
                        template,
                        concurrency=state.concurrency,
                        progress_callback=callback,
                    )
                _render(result, columns, title, fmt, group_by)
            except SelectorParseError as e:
                handle_selector_error(e)
            except DiscoveryError as e:
                handle_discovery_error(e)
            except DiscoveryCancelledError as e:
                handle_cancelled(e)
            except KubernetesError as e:
                handle_k8s_error(e)

        list_command.__doc__ = f"""List {title.lower()}.

        Examples:
            kdx {title.lower()}
            kdx {title.lower()} -A -l 'app=web,tier!=cache'
            kdx {title.lower()} --group-by app -o yaml
        """
        return list_command

    for name, kind, title in LIST_COMMANDS:
        app.command(name)(make_list_command(kind, title))

    @app.command("custom-resources")
    def custom_resources(
        ctx: typer.Context,
        crd: str | None = typer.Argument(
            None, help="Custom resource type (kind, plural, or plural.group)"
        ),
        namespace: NamespaceOption = None,
        all_namespaces: AllNamespacesOption = False,
        label_selector: LabelSelectorOption = None,
        status: StatusOption = None,
        group_by: GroupByOption = None,
        newer_than: NewerThanOption = None,
        older_than: OlderThanOption = None,
        output: OutputOption = None,
    ) -> None:
        """List custom resources, or the installed custom resource types.

        Examples:
            kdx custom-resources
            kdx custom-resources certificates.cert-manager.io -A
        """
        state = ctx.ensure_object(CliState)
        newer = parse_age_option(newer_than, "--newer-than")
        older = parse_age_option(older_than, "--older-than")
        try:
            session = get_session(state)
            fmt = resolve_output(state, output)
            formatter = get_formatter(fmt, console)
            if crd is None:
                types = session.list_custom_resource_types()
                formatter.format_list(types, CRD_COLUMNS, title="Custom Resource Types")
                return
            with discovery_progress(state.show_progress) as callback:
                result = session.list_custom_resources(
                    crd,
                    namespaces=session.resolve_namespaces(namespace, all_namespaces),
                    selector=label_selector,
                    status=status,
                    newer_than=newer,
                    older_than=older,
                    page_size=state.page_size,
                    limit=state.limit,
                    progress_callback=callback,
                )
            _render(result, COLUMNS_BY_KIND[ResourceKind.CUSTOM_RESOURCE], crd, fmt, group_by)
        except SelectorParseError as e:
            handle_selector_error(e)
        except DiscoveryError as e:
            handle_discovery_error(e)
        except DiscoveryCancelledError as e:
            handle_cancelled(e)
        except KubernetesError as e:
            handle_k8s_error(e)
