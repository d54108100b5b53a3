"""Resource source backed by the Kubernetes API.

Each page call maps onto one ``list_*`` request with ``limit`` and
``_continue`` set, so the API server does the paging and label filtering.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from cluster_explorer.integrations.kubernetes.exceptions import (
    KubernetesError,
    KubernetesMalformedError,
)
from cluster_explorer.models.base import _dict_get, _safe_get
from cluster_explorer.models.request import CustomResourceType, PageRequest, ResourcePage
from cluster_explorer.models.resource import Resource, ResourceKind

if TYPE_CHECKING:
    from cluster_explorer.integrations.kubernetes.client import KubernetesClient

logger = structlog.get_logger()

# kind -> (API group accessor, namespaced list method, all-namespaces list method)
_LIST_METHODS: dict[ResourceKind, tuple[str, str, str]] = {
    ResourceKind.SERVICE: ("core_v1", "list_namespaced_service", "list_service_for_all_namespaces"),
    ResourceKind.POD: ("core_v1", "list_namespaced_pod", "list_pod_for_all_namespaces"),
    ResourceKind.CONFIGMAP: (
        "core_v1",
        "list_namespaced_config_map",
        "list_config_map_for_all_namespaces",
    ),
    ResourceKind.SECRET: ("core_v1", "list_namespaced_secret", "list_secret_for_all_namespaces"),
    ResourceKind.DEPLOYMENT: (
        "apps_v1",
        "list_namespaced_deployment",
        "list_deployment_for_all_namespaces",
    ),
    ResourceKind.STATEFULSET: (
        "apps_v1",
        "list_namespaced_stateful_set",
        "list_stateful_set_for_all_namespaces",
    ),
    ResourceKind.DAEMONSET: (
        "apps_v1",
        "list_namespaced_daemon_set",
        "list_daemon_set_for_all_namespaces",
    ),
    ResourceKind.REPLICASET: (
        "apps_v1",
        "list_namespaced_replica_set",
        "list_replica_set_for_all_namespaces",
    ),
    ResourceKind.INGRESS: (
        "networking_v1",
        "list_namespaced_ingress",
        "list_ingress_for_all_namespaces",
    ),
}


class KubernetesResourceSource:
    """Serves resource pages from a live cluster.

    Args:
        client: Kubernetes API client instance.
    """

    _entity_name = "resource_source"

    def __init__(self, client: KubernetesClient) -> None:
        self._client = client
        self._log = logger.bind(entity=self._entity_name)

    def _handle_api_error(
        self,
        e: Exception,
        resource_type: str | None = None,
        namespace: str | None = None,
    ) -> KubernetesError:
        return self._client.translate_api_exception(
            e, resource_type=resource_type, namespace=namespace
        )

    @staticmethod
    def _page_kwargs(request: PageRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"limit": request.page_size}
        if request.cursor:
            kwargs["_continue"] = request.cursor
        if request.label_selector:
            kwargs["label_selector"] = request.label_selector
        return kwargs

    def list_page(self, request: PageRequest) -> ResourcePage:
        """Fetch one page of resources.

        Raises:
            KubernetesError: Translated API failure.
        """
        if request.kind == ResourceKind.CUSTOM_RESOURCE:
            return self._list_custom_page(request)

        group, namespaced_method, all_method = _LIST_METHODS[request.kind]
        api = getattr(self._client, group)
        kwargs = self._page_kwargs(request)

        self._log.debug(
            "listing_page",
            kind=request.kind.value,
            namespace=request.namespace,
            cursor=request.cursor,
        )
        try:
            if request.namespace is not None:
                result = getattr(api, namespaced_method)(request.namespace, **kwargs)
            else:
                result = getattr(api, all_method)(**kwargs)
        except Exception as e:
            raise self._handle_api_error(e, request.kind.value, request.namespace) from e

        items = getattr(result, "items", None)
        if items is None:
            raise KubernetesMalformedError(
                message="List response has no items",
                resource_type=request.kind.value,
                namespace=request.namespace,
            )
        try:
            resources = tuple(Resource.from_k8s_object(request.kind, item) for item in items)
        except (ValidationError, ValueError, TypeError) as e:
            raise KubernetesMalformedError(
                message=f"Cannot interpret {request.kind.value} list item: {e}",
                resource_type=request.kind.value,
                namespace=request.namespace,
            ) from e

        return ResourcePage(
            items=resources,
            next_cursor=_safe_get(result, "metadata", "_continue") or None,
        )

    def _list_custom_page(self, request: PageRequest) -> ResourcePage:
        crd = request.custom
        if crd is None:
            raise KubernetesMalformedError(
                message="Custom resource page request without a resource type",
                resource_type=ResourceKind.CUSTOM_RESOURCE.value,
            )
        api = self._client.custom_objects
        kwargs = self._page_kwargs(request)

        self._log.debug(
            "listing_custom_page",
            kind=crd.kind,
            namespace=request.namespace,
            cursor=request.cursor,
        )
        try:
            if request.namespace is not None and crd.namespaced:
                result = api.list_namespaced_custom_object(
                    crd.group, crd.version, request.namespace, crd.plural, **kwargs
                )
            else:
                result = api.list_cluster_custom_object(
                    crd.group, crd.version, crd.plural, **kwargs
                )
        except Exception as e:
            raise self._handle_api_error(e, crd.kind, request.namespace) from e

        if not isinstance(result, dict) or not isinstance(result.get("items"), list):
            raise KubernetesMalformedError(
                message=f"Unexpected list response for {crd.key}",
                resource_type=crd.kind,
                namespace=request.namespace,
            )
        try:
            resources = tuple(
                Resource.from_custom_object(item, crd)
                for item in result["items"]
                if isinstance(item, dict)
            )
        except ValidationError as e:
            raise KubernetesMalformedError(
                message=f"Cannot interpret {crd.kind} list item: {e}",
                resource_type=crd.kind,
                namespace=request.namespace,
            ) from e

        return ResourcePage(
            items=resources,
            next_cursor=_dict_get(result, "metadata", "continue") or None,
        )

    def list_namespaces(self) -> list[str]:
        """Names of all namespaces visible to the caller."""
        return self._client.list_namespaces()

    def list_custom_resource_types(self) -> list[CustomResourceType]:
        """Custom resource types installed in the cluster, sorted by kind."""
        try:
            result = self._client.apiextensions_v1.list_custom_resource_definition()
        except Exception as e:
            raise self._handle_api_error(e, "CustomResourceDefinition") from e
        types = [CustomResourceType.from_k8s_object(item) for item in result.items or []]
        self._log.debug("listed_custom_resource_types", count=len(types))
        return sorted(types, key=lambda t: (t.kind, t.group))
