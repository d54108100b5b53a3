"""Resource and request models."""

from cluster_explorer.models.request import (
    CustomResourceType,
    DiscoveryRequest,
    PageRequest,
    ResourcePage,
)
from cluster_explorer.models.resource import (
    OwnerReference,
    Resource,
    ResourceKind,
    ResourceRef,
    ResourceStatus,
)

__all__ = [
    "CustomResourceType",
    "DiscoveryRequest",
    "OwnerReference",
    "PageRequest",
    "Resource",
    "ResourceKind",
    "ResourcePage",
    "ResourceRef",
    "ResourceStatus",
]
