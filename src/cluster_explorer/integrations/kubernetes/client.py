"""Read-only access to a cluster's API groups.

The client resolves which cluster to talk to (kubeconfig context first,
in-cluster service account second), hands out the generated API objects the
resource source lists through, and maps client failures onto the fetch error
classes in :mod:`cluster_explorer.integrations.kubernetes.exceptions`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from cluster_explorer.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesMalformedError,
    KubernetesNotFoundError,
    KubernetesRateLimitError,
)

if TYPE_CHECKING:
    from kubernetes.client import (
        ApiextensionsV1Api,
        AppsV1Api,
        CoreV1Api,
        CustomObjectsApi,
        NetworkingV1Api,
    )

    from cluster_explorer.integrations.kubernetes.config import ExplorerConfig

logger = structlog.get_logger()

# Attribute suffix -> class name in kubernetes.client
_API_GROUPS: dict[str, str] = {
    "core_v1": "CoreV1Api",
    "apps_v1": "AppsV1Api",
    "networking_v1": "NetworkingV1Api",
    "custom_objects": "CustomObjectsApi",
    "apiextensions_v1": "ApiextensionsV1Api",
}

# Statuses the API server uses for requests it could not act on. 410 is
# what an expired continue token comes back as.
_MALFORMED_STATUSES = frozenset({400, 410, 422})

IN_CLUSTER = "in-cluster"


class KubernetesClient:
    """Cluster connection used by :class:`KubernetesResourceSource`.

    API group objects are built on first use and dropped again on
    :meth:`close`, so the client is cheap to construct even when a command
    never reaches the cluster.

    Example:
        ```python
        config = ExplorerConfig.from_env()
        with KubernetesClient(config) as client:
            print(client.list_namespaces())
        ```
    """

    def __init__(self, explorer_config: ExplorerConfig) -> None:
        self._config = explorer_config
        self._current_context: str | None = None

        self._core_v1: CoreV1Api | None = None
        self._apps_v1: AppsV1Api | None = None
        self._networking_v1: NetworkingV1Api | None = None
        self._custom_objects: CustomObjectsApi | None = None
        self._apiextensions_v1: ApiextensionsV1Api | None = None

        self._connect()

        logger.info(
            "kubernetes_client_initialized",
            context=self._current_context,
            default_namespace=explorer_config.get_active_namespace(),
        )

    def _connect(self) -> None:
        from kubernetes import config
        from kubernetes.config import ConfigException

        context = self._config.get_active_context()
        kubeconfig = self._config.get_active_kubeconfig()

        try:
            config.load_kube_config(config_file=kubeconfig, context=context)
        except ConfigException as kube_error:
            logger.debug("kubeconfig_unavailable", error=str(kube_error))
            try:
                config.load_incluster_config()
            except ConfigException as e:
                raise KubernetesConnectionError(
                    message="Cannot load Kubernetes configuration: no usable kubeconfig "
                    "and not running inside a cluster.",
                    original_error=e,
                ) from e
            self._current_context = IN_CLUSTER
        else:
            self._current_context = context
            logger.debug("loaded_kubeconfig", context=context, kubeconfig=kubeconfig)

        self._drop_api_groups()

    def _drop_api_groups(self) -> None:
        for name in _API_GROUPS:
            setattr(self, f"_{name}", None)

    def _api(self, name: str) -> Any:
        api = getattr(self, f"_{name}")
        if api is None:
            import kubernetes.client

            api = getattr(kubernetes.client, _API_GROUPS[name])()
            setattr(self, f"_{name}", api)
        return api

    @property
    def core_v1(self) -> CoreV1Api:
        """Pods, services, configmaps, secrets and namespaces."""
        return self._api("core_v1")

    @property
    def apps_v1(self) -> AppsV1Api:
        """Deployments, stateful sets, daemon sets and replica sets."""
        return self._api("apps_v1")

    @property
    def networking_v1(self) -> NetworkingV1Api:
        return self._api("networking_v1")

    @property
    def custom_objects(self) -> CustomObjectsApi:
        """Instances of custom resource types."""
        return self._api("custom_objects")

    @property
    def apiextensions_v1(self) -> ApiextensionsV1Api:
        """CustomResourceDefinition objects."""
        return self._api("apiextensions_v1")

    def get_current_context(self) -> str:
        """Name of the kubeconfig context in use, or ``"in-cluster"``."""
        return self._current_context or "unknown"

    @property
    def default_namespace(self) -> str:
        return self._config.get_active_namespace()

    @property
    def timeout(self) -> int:
        return self._config.get_active_timeout()

    @staticmethod
    def translate_api_exception(
        e: Exception,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> KubernetesError:
        """Map an exception from the kubernetes client onto a fetch error.

        Transport failures (urllib3) and 5xx answers are ``unreachable``; the
        remaining statuses follow the API server's meaning. Anything that is
        not an API answer at all becomes a plain :class:`KubernetesError`.

        Args:
            e: Exception raised while talking to the API server.
            resource_type: Kind that was being listed.
            resource_name: Object name, for single-object reads.
            namespace: Namespace that was being listed.
        """
        from kubernetes.client import ApiException
        from urllib3.exceptions import HTTPError

        if isinstance(e, HTTPError):
            return KubernetesConnectionError(
                message=f"Kubernetes API server unreachable: {e}", original_error=e
            )
        if not isinstance(e, ApiException):
            return KubernetesError(
                message=str(e),
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        status = e.status
        where = {"resource_type": resource_type, "namespace": namespace}

        if status == 404:
            return KubernetesNotFoundError(resource_name=resource_name, **where)
        if status in (401, 403):
            return KubernetesAuthError(
                message=e.reason or "Authentication/authorization failed",
                status_code=status,
                reason=e.reason,
                **where,
            )
        if status == 429:
            return KubernetesRateLimitError(
                message=e.reason or "Too Many Requests",
                retry_after=_retry_after(e),
                **where,
            )
        if status in _MALFORMED_STATUSES:
            return KubernetesMalformedError(
                message=e.reason or "Request rejected by the API server",
                status_code=status,
                **where,
            )
        if status is not None and status >= 500:
            return KubernetesConnectionError(
                message=e.reason or f"Kubernetes API server error: {status}",
                original_error=e,
                status_code=status,
            )
        return KubernetesError(
            message=e.reason or f"Kubernetes API error: {status}",
            status_code=status,
            resource_name=resource_name,
            **where,
        )

    def list_namespaces(self) -> list[str]:
        """Sorted names of the namespaces the credentials can see."""
        try:
            result = self.core_v1.list_namespace()
        except Exception as e:
            raise self.translate_api_exception(e, resource_type="Namespace") from e
        return sorted(ns.metadata.name for ns in result.items or [])

    def close(self) -> None:
        self._drop_api_groups()
        logger.debug("kubernetes_client_closed", context=self._current_context)

    def __enter__(self) -> KubernetesClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def _retry_after(e: Any) -> float | None:
    """Seconds from a Retry-After header; HTTP-date values are ignored."""
    value = (getattr(e, "headers", None) or {}).get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
