"""Resource source contract consumed by the fetcher."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from cluster_explorer.models.request import CustomResourceType, PageRequest, ResourcePage


@runtime_checkable
class ResourceSource(Protocol):
    """Serves one page of resources per call.

    Implementations raise the typed ``KubernetesError`` family on failure;
    only ``KubernetesRateLimitError`` is considered retryable.
    """

    def list_page(self, request: PageRequest) -> ResourcePage:
        """Return at most ``request.page_size`` items after ``request.cursor``."""
        ...

    def list_namespaces(self) -> list[str]:
        """Return the names of all namespaces visible to the caller."""
        ...

    def list_custom_resource_types(self) -> list[CustomResourceType]:
        """Return the custom resource types installed in the cluster."""
        ...
