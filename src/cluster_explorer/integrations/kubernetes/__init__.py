"""Kubernetes integration - API client and configuration models."""

from cluster_explorer.integrations.kubernetes.client import KubernetesClient
from cluster_explorer.integrations.kubernetes.config import (
    ClusterConfig,
    DiscoveryDefaults,
    ExplorerConfig,
)
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

__all__ = [
    "ClusterConfig",
    "DiscoveryDefaults",
    "ExplorerConfig",
    "FetchErrorKind",
    "KubernetesAuthError",
    "KubernetesClient",
    "KubernetesConnectionError",
    "KubernetesError",
    "KubernetesMalformedError",
    "KubernetesNotFoundError",
    "KubernetesRateLimitError",
    "KubernetesTimeoutError",
]
