"""Unit tests for the Kubernetes-backed resource source."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from kubernetes.client import (
    ApiException,
    V1CustomResourceDefinition,
    V1CustomResourceDefinitionList,
    V1CustomResourceDefinitionNames,
    V1CustomResourceDefinitionSpec,
    V1CustomResourceDefinitionVersion,
    V1ListMeta,
    V1ObjectMeta,
    V1Pod,
    V1PodList,
    V1Service,
    V1ServiceList,
)

from cluster_explorer.integrations.kubernetes.client import KubernetesClient
from cluster_explorer.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesMalformedError,
    KubernetesNotFoundError,
)
from cluster_explorer.integrations.kubernetes.source import KubernetesResourceSource
from cluster_explorer.models.request import CustomResourceType, PageRequest
from cluster_explorer.models.resource import ResourceKind
from tests.unit.conftest import CERTIFICATE_CRD


@pytest.fixture
def mock_client() -> MagicMock:
    client = MagicMock()
    client.translate_api_exception.side_effect = KubernetesClient.translate_api_exception
    return client


@pytest.fixture
def source(mock_client: MagicMock) -> KubernetesResourceSource:
    return KubernetesResourceSource(mock_client)


def pod_list(names: list[str], cursor: str | None = None) -> V1PodList:
    return V1PodList(
        items=[V1Pod(metadata=V1ObjectMeta(name=n, namespace="default")) for n in names],
        metadata=V1ListMeta(_continue=cursor),
    )


def custom_doc(name: str) -> dict[str, object]:
    return {
        "apiVersion": "cert-manager.io/v1",
        "kind": "Certificate",
        "metadata": {"name": name, "namespace": "default"},
    }


@pytest.mark.unit
@pytest.mark.kubernetes
class TestListPage:
    """Test built-in kind page calls."""

    def test_namespaced_page(
        self, source: KubernetesResourceSource, mock_client: MagicMock
    ) -> None:
        """Test limit, selector and cursor map onto the list call."""
        mock_client.core_v1.list_namespaced_pod.return_value = pod_list(["a", "b"], "tok-2")
        request = PageRequest(
            kind=ResourceKind.POD,
            namespace="default",
            label_selector="app=web",
            page_size=2,
            cursor="tok-1",
        )

        page = source.list_page(request)

        mock_client.core_v1.list_namespaced_pod.assert_called_once_with(
            "default", limit=2, _continue="tok-1", label_selector="app=web"
        )
        assert [r.name for r in page.items] == ["a", "b"]
        assert page.next_cursor == "tok-2"

    def test_all_namespaces_first_page(
        self, source: KubernetesResourceSource, mock_client: MagicMock
    ) -> None:
        """Test a first page across namespaces sends no cursor or selector."""
        mock_client.core_v1.list_service_for_all_namespaces.return_value = V1ServiceList(
            items=[V1Service(metadata=V1ObjectMeta(name="web", namespace="a"))],
            metadata=V1ListMeta(),
        )

        page = source.list_page(PageRequest(kind=ResourceKind.SERVICE, page_size=10))

        mock_client.core_v1.list_service_for_all_namespaces.assert_called_once_with(limit=10)
        assert page.items[0].kind == ResourceKind.SERVICE
        assert page.next_cursor is None

    @pytest.mark.parametrize(
        ("kind", "group", "method"),
        [
            (ResourceKind.DEPLOYMENT, "apps_v1", "list_namespaced_deployment"),
            (ResourceKind.STATEFULSET, "apps_v1", "list_namespaced_stateful_set"),
            (ResourceKind.DAEMONSET, "apps_v1", "list_namespaced_daemon_set"),
            (ResourceKind.REPLICASET, "apps_v1", "list_namespaced_replica_set"),
            (ResourceKind.CONFIGMAP, "core_v1", "list_namespaced_config_map"),
            (ResourceKind.SECRET, "core_v1", "list_namespaced_secret"),
            (ResourceKind.INGRESS, "networking_v1", "list_namespaced_ingress"),
        ],
    )
    def test_kind_dispatch(
        self,
        source: KubernetesResourceSource,
        mock_client: MagicMock,
        kind: ResourceKind,
        group: str,
        method: str,
    ) -> None:
        """Test each kind is listed through its API group."""
        list_method = getattr(getattr(mock_client, group), method)
        list_method.return_value = MagicMock(items=[], metadata=None)

        page = source.list_page(PageRequest(kind=kind, namespace="ns"))

        list_method.assert_called_once()
        assert page.items == ()

    def test_api_error_translated(
        self, source: KubernetesResourceSource, mock_client: MagicMock
    ) -> None:
        """Test API failures surface as typed fetch errors with context."""
        mock_client.core_v1.list_namespaced_pod.side_effect = ApiException(status=403)

        with pytest.raises(KubernetesAuthError) as exc_info:
            source.list_page(PageRequest(kind=ResourceKind.POD, namespace="prod"))

        assert exc_info.value.resource_type == "Pod"
        assert exc_info.value.namespace == "prod"

    def test_response_without_items_is_malformed(
        self, source: KubernetesResourceSource, mock_client: MagicMock
    ) -> None:
        """Test a list response missing items is rejected."""
        mock_client.core_v1.list_namespaced_pod.return_value = MagicMock(items=None)

        with pytest.raises(KubernetesMalformedError, match="no items"):
            source.list_page(PageRequest(kind=ResourceKind.POD, namespace="a"))


@pytest.mark.unit
@pytest.mark.kubernetes
class TestCustomPages:
    """Test custom resource page calls."""

    def test_namespaced_custom_page(
        self, source: KubernetesResourceSource, mock_client: MagicMock
    ) -> None:
        """Test group, version and plural are passed through."""
        api = mock_client.custom_objects
        api.list_namespaced_custom_object.return_value = {
            "items": [custom_doc("shop-tls"), "junk"],
            "metadata": {"continue": "next"},
        }
        request = PageRequest(
            kind=ResourceKind.CUSTOM_RESOURCE,
            namespace="default",
            custom=CERTIFICATE_CRD,
            page_size=5,
        )

        page = source.list_page(request)

        api.list_namespaced_custom_object.assert_called_once_with(
            "cert-manager.io", "v1", "default", "certificates", limit=5
        )
        assert [r.display_kind for r in page.items] == ["Certificate"]
        assert page.next_cursor == "next"

    def test_cluster_scoped_type_ignores_namespace(
        self, source: KubernetesResourceSource, mock_client: MagicMock
    ) -> None:
        """Test cluster-scoped types are always listed cluster-wide."""
        crd = CustomResourceType(
            group="example.com", version="v1", plural="widgets", kind="Widget", namespaced=False
        )
        api = mock_client.custom_objects
        api.list_cluster_custom_object.return_value = {"items": []}

        page = source.list_page(
            PageRequest(kind=ResourceKind.CUSTOM_RESOURCE, namespace="default", custom=crd)
        )

        api.list_cluster_custom_object.assert_called_once()
        api.list_namespaced_custom_object.assert_not_called()
        assert page.next_cursor is None

    def test_unexpected_shape_is_malformed(
        self, source: KubernetesResourceSource, mock_client: MagicMock
    ) -> None:
        """Test a response without an items list is rejected."""
        mock_client.custom_objects.list_namespaced_custom_object.return_value = {"items": "x"}

        with pytest.raises(KubernetesMalformedError, match="Unexpected list response"):
            source.list_page(
                PageRequest(
                    kind=ResourceKind.CUSTOM_RESOURCE, namespace="a", custom=CERTIFICATE_CRD
                )
            )

    def test_missing_type_is_malformed(self, source: KubernetesResourceSource) -> None:
        """Test a custom page request must carry its type."""
        with pytest.raises(KubernetesMalformedError):
            source.list_page(PageRequest(kind=ResourceKind.CUSTOM_RESOURCE))

    def test_not_found_translated(
        self, source: KubernetesResourceSource, mock_client: MagicMock
    ) -> None:
        """Test an uninstalled type reports NotFound."""
        api = mock_client.custom_objects
        api.list_namespaced_custom_object.side_effect = ApiException(status=404)

        with pytest.raises(KubernetesNotFoundError):
            source.list_page(
                PageRequest(
                    kind=ResourceKind.CUSTOM_RESOURCE, namespace="a", custom=CERTIFICATE_CRD
                )
            )


@pytest.mark.unit
@pytest.mark.kubernetes
class TestClusterQueries:
    """Test namespace and custom type listing."""

    def test_list_namespaces_delegates(
        self, source: KubernetesResourceSource, mock_client: MagicMock
    ) -> None:
        """Test namespaces come from the client."""
        mock_client.list_namespaces.return_value = ["a", "b"]

        assert source.list_namespaces() == ["a", "b"]

    def test_list_custom_resource_types_sorted(
        self, source: KubernetesResourceSource, mock_client: MagicMock
    ) -> None:
        """Test CRDs are converted and sorted by kind."""

        def crd(kind: str, plural: str) -> V1CustomResourceDefinition:
            return V1CustomResourceDefinition(
                spec=V1CustomResourceDefinitionSpec(
                    group="example.com",
                    names=V1CustomResourceDefinitionNames(kind=kind, plural=plural),
                    scope="Cluster",
                    versions=[
                        V1CustomResourceDefinitionVersion(name="v1", served=True, storage=True)
                    ],
                )
            )

        api = mock_client.apiextensions_v1
        api.list_custom_resource_definition.return_value = V1CustomResourceDefinitionList(
            items=[crd("Widget", "widgets"), crd("Gadget", "gadgets")]
        )

        types = source.list_custom_resource_types()

        assert [t.kind for t in types] == ["Gadget", "Widget"]
        assert not types[0].namespaced
