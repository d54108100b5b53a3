"""Discovered resource models.

A :class:`Resource` is the single shape every resource kind is normalised into.
Kind-specific details live in a tagged ``status`` variant; relationship inputs
(owner references, selectors, config references, ingress backends) are lifted
onto the resource itself so the topology builder never has to look at the raw
Kubernetes object.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Annotated, Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field

from cluster_explorer.models.base import (
    _dict_get,
    _get_annotations,
    _get_labels,
    _get_timestamp,
    _safe_get,
    format_age,
    parse_timestamp,
)

if TYPE_CHECKING:
    from cluster_explorer.models.request import CustomResourceType


class ResourceKind(StrEnum):
    """Resource kinds the explorer knows how to discover."""

    SERVICE = "Service"
    POD = "Pod"
    DEPLOYMENT = "Deployment"
    STATEFULSET = "StatefulSet"
    DAEMONSET = "DaemonSet"
    REPLICASET = "ReplicaSet"
    CONFIGMAP = "ConfigMap"
    SECRET = "Secret"
    INGRESS = "Ingress"
    CUSTOM_RESOURCE = "CustomResource"

    @classmethod
    def parse(cls, value: str) -> ResourceKind:
        """Resolve a kind from its name, plural, or kubectl short name.

        Raises:
            ValueError: If the value names no known kind.
        """
        key = value.strip().lower()
        if key in _KIND_ALIASES:
            return _KIND_ALIASES[key]
        raise ValueError(f"Unknown resource kind: {value!r}")


_KIND_ALIASES: dict[str, ResourceKind] = {}
for _kind in ResourceKind:
    _KIND_ALIASES[_kind.value.lower()] = _kind
    _KIND_ALIASES[_kind.value.lower() + "s"] = _kind
_KIND_ALIASES.update(
    {
        "svc": ResourceKind.SERVICE,
        "po": ResourceKind.POD,
        "deploy": ResourceKind.DEPLOYMENT,
        "sts": ResourceKind.STATEFULSET,
        "ds": ResourceKind.DAEMONSET,
        "rs": ResourceKind.REPLICASET,
        "cm": ResourceKind.CONFIGMAP,
        "ing": ResourceKind.INGRESS,
        "ingresses": ResourceKind.INGRESS,
        "cr": ResourceKind.CUSTOM_RESOURCE,
    }
)

WORKLOAD_KINDS: frozenset[ResourceKind] = frozenset(
    {
        ResourceKind.DEPLOYMENT,
        ResourceKind.STATEFULSET,
        ResourceKind.DAEMONSET,
        ResourceKind.REPLICASET,
    }
)


class ResourceRef(BaseModel):
    """Identity of a resource: kind, namespace and name.

    For custom resources the kind component is the declared kind string
    (for example ``Certificate``), so two resources of different kinds that
    share a name are never the same node.
    """

    model_config = ConfigDict(frozen=True)

    kind: str
    namespace: str | None = None
    name: str

    def sort_key(self) -> tuple[str, str, str]:
        """Ordering key used by sorted discovery output."""
        return (self.kind, self.namespace or "", self.name)

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"


class OwnerReference(BaseModel):
    """Kubernetes owner reference."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    kind: str
    name: str
    api_version: str | None = None
    uid: str | None = None
    controller: bool = False

    @classmethod
    def from_k8s_object(cls, obj: Any) -> OwnerReference:
        """Create from a kubernetes V1OwnerReference object."""
        return cls(
            kind=getattr(obj, "kind", None) or "",
            name=getattr(obj, "name", None) or "",
            api_version=getattr(obj, "api_version", None),
            uid=getattr(obj, "uid", None),
            controller=bool(getattr(obj, "controller", False)),
        )

    @classmethod
    def from_dict(cls, doc: dict[str, Any]) -> OwnerReference:
        """Create from an unstructured ``ownerReferences`` entry."""
        return cls(
            kind=doc.get("kind") or "",
            name=doc.get("name") or "",
            api_version=doc.get("apiVersion"),
            uid=doc.get("uid"),
            controller=bool(doc.get("controller", False)),
        )


class ReferenceSource(StrEnum):
    """Where in a pod spec a config reference was found."""

    VOLUME = "volume"
    ENV = "env"
    ENV_FROM = "envFrom"
    IMAGE_PULL_SECRET = "imagePullSecret"


class ConfigReference(BaseModel):
    """A pod's reference to a ConfigMap or Secret."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["ConfigMap", "Secret"]
    name: str
    via: ReferenceSource


# =============================================================================
# Status variants
# =============================================================================


class _StatusBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    @property
    def label(self) -> str:
        """String matched by status predicates."""
        return ""


class PodStatus(_StatusBase):
    """Pod phase and container readiness."""

    variant: Literal["pod"] = "pod"
    phase: str = Field(default="Unknown", description="Pod phase")
    ready_containers: int = Field(default=0, description="Number of ready containers")
    total_containers: int = Field(default=0, description="Total number of containers")
    restarts: int = Field(default=0, description="Total container restarts")
    node_name: str | None = Field(default=None, description="Node the pod is running on")
    pod_ip: str | None = Field(default=None, description="Pod IP address")

    @property
    def label(self) -> str:
        return self.phase

    @property
    def ready(self) -> str:
        return f"{self.ready_containers}/{self.total_containers}"

    @classmethod
    def from_k8s_object(cls, obj: Any) -> PodStatus:
        """Create from a kubernetes V1Pod object."""
        container_statuses = _safe_get(obj, "status", "container_statuses") or []
        return cls(
            phase=_safe_get(obj, "status", "phase", default="Unknown"),
            ready_containers=sum(1 for cs in container_statuses if getattr(cs, "ready", False)),
            total_containers=len(_safe_get(obj, "spec", "containers") or []),
            restarts=sum(getattr(cs, "restart_count", 0) or 0 for cs in container_statuses),
            node_name=_safe_get(obj, "spec", "node_name"),
            pod_ip=_safe_get(obj, "status", "pod_ip"),
        )


def readiness_label(desired: int, ready: int) -> str:
    """``Ready`` / ``PartiallyReady`` / ``NotReady`` from replica counts."""
    if ready >= desired:
        return "Ready"
    if ready == 0:
        return "NotReady"
    return "PartiallyReady"


class ReplicaStatus(_StatusBase):
    """Replica counts for Deployments, StatefulSets and ReplicaSets."""

    variant: Literal["replicas"] = "replicas"
    desired: int = Field(default=0, description="Desired replicas")
    ready: int = Field(default=0, description="Ready replicas")
    available: int = Field(default=0, description="Available replicas")
    updated: int = Field(default=0, description="Updated replicas")

    @property
    def label(self) -> str:
        return readiness_label(self.desired, self.ready)

    @classmethod
    def from_k8s_object(cls, obj: Any) -> ReplicaStatus:
        """Create from a V1Deployment, V1StatefulSet or V1ReplicaSet object."""
        return cls(
            desired=_safe_get(obj, "spec", "replicas", default=0) or 0,
            ready=_safe_get(obj, "status", "ready_replicas", default=0) or 0,
            available=_safe_get(obj, "status", "available_replicas", default=0) or 0,
            updated=_safe_get(obj, "status", "updated_replicas", default=0) or 0,
        )


class DaemonSetStatus(_StatusBase):
    """Scheduling counts for a DaemonSet."""

    variant: Literal["daemonset"] = "daemonset"
    desired: int = Field(default=0, description="Desired number scheduled")
    current: int = Field(default=0, description="Current number scheduled")
    ready: int = Field(default=0, description="Number ready")
    up_to_date: int = Field(default=0, description="Updated number scheduled")

    @property
    def label(self) -> str:
        return readiness_label(self.desired, self.ready)

    @classmethod
    def from_k8s_object(cls, obj: Any) -> DaemonSetStatus:
        """Create from a kubernetes V1DaemonSet object."""
        return cls(
            desired=_safe_get(obj, "status", "desired_number_scheduled", default=0) or 0,
            current=_safe_get(obj, "status", "current_number_scheduled", default=0) or 0,
            ready=_safe_get(obj, "status", "number_ready", default=0) or 0,
            up_to_date=_safe_get(obj, "status", "updated_number_scheduled", default=0) or 0,
        )


class ServicePort(BaseModel):
    """Service port entry."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str | None = None
    port: int = 0
    target_port: str | None = None
    protocol: str = "TCP"

    def __str__(self) -> str:
        text = f"{self.port}/{self.protocol}"
        if self.target_port and self.target_port != str(self.port):
            text = f"{self.port}:{self.target_port}/{self.protocol}"
        return text


class ServiceStatus(_StatusBase):
    """Service type, address and ports."""

    variant: Literal["service"] = "service"
    type: str = Field(default="ClusterIP", description="Service type")
    cluster_ip: str | None = Field(default=None, description="Cluster IP")
    ports: tuple[ServicePort, ...] = Field(default=(), description="Service ports")

    @property
    def label(self) -> str:
        return self.type

    @classmethod
    def from_k8s_object(cls, obj: Any) -> ServiceStatus:
        """Create from a kubernetes V1Service object."""
        ports = tuple(
            ServicePort(
                name=getattr(p, "name", None),
                port=getattr(p, "port", 0) or 0,
                target_port=(
                    str(p.target_port) if getattr(p, "target_port", None) is not None else None
                ),
                protocol=getattr(p, "protocol", None) or "TCP",
            )
            for p in _safe_get(obj, "spec", "ports") or []
        )
        return cls(
            type=_safe_get(obj, "spec", "type", default="ClusterIP"),
            cluster_ip=_safe_get(obj, "spec", "cluster_ip"),
            ports=ports,
        )


class IngressStatus(_StatusBase):
    """Ingress hosts and TLS flag."""

    variant: Literal["ingress"] = "ingress"
    hosts: tuple[str, ...] = Field(default=(), description="Rule hosts")
    tls: bool = Field(default=False, description="Whether TLS is configured")
    ingress_class: str | None = Field(default=None, description="Ingress class name")

    @property
    def routes(self) -> list[str]:
        scheme = "https" if self.tls else "http"
        return [f"{scheme}://{host}" for host in self.hosts]

    @classmethod
    def from_k8s_object(cls, obj: Any) -> IngressStatus:
        """Create from a kubernetes V1Ingress object."""
        rules = _safe_get(obj, "spec", "rules") or []
        return cls(
            hosts=tuple(r.host for r in rules if getattr(r, "host", None)),
            tls=bool(_safe_get(obj, "spec", "tls")),
            ingress_class=_safe_get(obj, "spec", "ingress_class_name"),
        )


class DataStatus(_StatusBase):
    """Key names of a ConfigMap or Secret. Values are never kept."""

    variant: Literal["data"] = "data"
    data_keys: tuple[str, ...] = Field(default=(), description="Data key names")
    secret_type: str | None = Field(default=None, description="Secret type")

    @property
    def label(self) -> str:
        return self.secret_type or ""

    @classmethod
    def from_k8s_object(cls, obj: Any) -> DataStatus:
        """Create from a kubernetes V1ConfigMap or V1Secret object."""
        keys = set(getattr(obj, "data", None) or {})
        keys.update(getattr(obj, "binary_data", None) or {})
        return cls(
            data_keys=tuple(sorted(keys)),
            secret_type=getattr(obj, "type", None),
        )


class CustomStatus(_StatusBase):
    """Status block of a custom resource, kept as a generic document."""

    variant: Literal["custom"] = "custom"
    document: dict[str, Any] = Field(default_factory=dict, description="Raw status block")

    @property
    def label(self) -> str:
        phase = self.document.get("phase")
        if phase:
            return str(phase)
        for condition in self.document.get("conditions") or []:
            if isinstance(condition, dict) and condition.get("type") == "Ready":
                return "Ready" if condition.get("status") == "True" else "NotReady"
        return ""


ResourceStatus = Annotated[
    PodStatus
    | ReplicaStatus
    | DaemonSetStatus
    | ServiceStatus
    | IngressStatus
    | DataStatus
    | CustomStatus,
    Field(discriminator="variant"),
]


# =============================================================================
# Resource
# =============================================================================


class Resource(BaseModel):
    """A discovered resource, immutable after construction."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    kind: ResourceKind = Field(description="Resource kind")
    namespace: str | None = Field(default=None, description="Resource namespace")
    name: str = Field(description="Resource name")
    uid: str | None = Field(default=None, description="Kubernetes UID")
    api_version: str | None = Field(default=None, description="API group/version")
    creation_timestamp: str | None = Field(default=None, description="Creation time")
    labels: dict[str, str] = Field(default_factory=dict, description="Resource labels")
    annotations: dict[str, str] = Field(default_factory=dict, description="Resource annotations")
    status: ResourceStatus | None = Field(default=None, description="Kind-specific status")
    owner_references: tuple[OwnerReference, ...] = Field(default=(), description="Owners")
    selector: dict[str, str] | None = Field(
        default=None, description="Match labels of a Service or workload"
    )
    config_refs: tuple[ConfigReference, ...] = Field(
        default=(), description="ConfigMaps and Secrets a Pod references"
    )
    backends: tuple[str, ...] = Field(default=(), description="Services an Ingress routes to")
    custom_kind: str | None = Field(default=None, description="Declared kind of a custom resource")
    document: dict[str, Any] | None = Field(
        default=None, description="Unstructured body of a custom resource"
    )

    _API_VERSIONS: ClassVar[dict[ResourceKind, str]] = {
        ResourceKind.SERVICE: "v1",
        ResourceKind.POD: "v1",
        ResourceKind.CONFIGMAP: "v1",
        ResourceKind.SECRET: "v1",
        ResourceKind.DEPLOYMENT: "apps/v1",
        ResourceKind.STATEFULSET: "apps/v1",
        ResourceKind.DAEMONSET: "apps/v1",
        ResourceKind.REPLICASET: "apps/v1",
        ResourceKind.INGRESS: "networking.k8s.io/v1",
    }

    @property
    def display_kind(self) -> str:
        """Declared kind for custom resources, otherwise the built-in kind."""
        return self.custom_kind or self.kind.value

    @property
    def identity(self) -> ResourceRef:
        return ResourceRef(kind=self.display_kind, namespace=self.namespace, name=self.name)

    @property
    def status_label(self) -> str:
        return self.status.label if self.status is not None else ""

    @property
    def created_at(self) -> datetime | None:
        return parse_timestamp(self.creation_timestamp)

    @property
    def age(self) -> str:
        """Human-readable age string."""
        return format_age(self.creation_timestamp)

    def age_seconds(self, now: datetime | None = None) -> float | None:
        """Seconds since creation, or None when the timestamp is unknown."""
        created = self.created_at
        if created is None:
            return None
        return ((now or datetime.now(UTC)) - created).total_seconds()

    @classmethod
    def from_k8s_object(cls, kind: ResourceKind, obj: Any) -> Resource:
        """Create from a typed kubernetes SDK object of the given kind."""
        owners = tuple(
            OwnerReference.from_k8s_object(ref)
            for ref in _safe_get(obj, "metadata", "owner_references") or []
        )
        fields: dict[str, Any] = {
            "kind": kind,
            "namespace": _safe_get(obj, "metadata", "namespace"),
            "name": _safe_get(obj, "metadata", "name", default=""),
            "uid": _safe_get(obj, "metadata", "uid"),
            "api_version": getattr(obj, "api_version", None) or cls._API_VERSIONS.get(kind),
            "creation_timestamp": _get_timestamp(
                _safe_get(obj, "metadata", "creation_timestamp")
            ),
            "labels": _get_labels(obj),
            "annotations": _get_annotations(obj),
            "owner_references": owners,
        }

        if kind == ResourceKind.POD:
            fields["status"] = PodStatus.from_k8s_object(obj)
            fields["config_refs"] = _pod_config_refs(obj)
        elif kind == ResourceKind.SERVICE:
            fields["status"] = ServiceStatus.from_k8s_object(obj)
            selector = _safe_get(obj, "spec", "selector")
            fields["selector"] = dict(selector) if selector else None
        elif kind == ResourceKind.DAEMONSET:
            fields["status"] = DaemonSetStatus.from_k8s_object(obj)
            fields["selector"] = _match_labels(obj)
        elif kind in WORKLOAD_KINDS:
            fields["status"] = ReplicaStatus.from_k8s_object(obj)
            fields["selector"] = _match_labels(obj)
        elif kind in (ResourceKind.CONFIGMAP, ResourceKind.SECRET):
            fields["status"] = DataStatus.from_k8s_object(obj)
        elif kind == ResourceKind.INGRESS:
            fields["status"] = IngressStatus.from_k8s_object(obj)
            fields["backends"] = _ingress_backends(obj)
        else:
            raise ValueError(f"{kind} objects are built with from_custom_object")

        return cls(**fields)

    @classmethod
    def from_custom_object(cls, doc: dict[str, Any], crd: CustomResourceType) -> Resource:
        """Create from an unstructured custom object returned by the API server."""
        metadata = doc.get("metadata") or {}
        return cls(
            kind=ResourceKind.CUSTOM_RESOURCE,
            namespace=metadata.get("namespace"),
            name=metadata.get("name") or "",
            uid=metadata.get("uid"),
            api_version=doc.get("apiVersion") or crd.api_version,
            creation_timestamp=_get_timestamp(metadata.get("creationTimestamp")),
            labels=dict(metadata.get("labels") or {}),
            annotations=dict(metadata.get("annotations") or {}),
            owner_references=tuple(
                OwnerReference.from_dict(ref)
                for ref in metadata.get("ownerReferences") or []
                if isinstance(ref, dict)
            ),
            status=CustomStatus(document=dict(_dict_get(doc, "status", default={}))),
            custom_kind=doc.get("kind") or crd.kind,
            document=doc,
        )


def _match_labels(obj: Any) -> dict[str, str] | None:
    labels = _safe_get(obj, "spec", "selector", "match_labels")
    return dict(labels) if labels else None


def _pod_config_refs(obj: Any) -> tuple[ConfigReference, ...]:
    """Collect ConfigMap and Secret references from a pod spec, in spec order."""
    refs: list[ConfigReference] = []

    def add(kind: Literal["ConfigMap", "Secret"], name: str | None, via: ReferenceSource) -> None:
        if not name:
            return
        ref = ConfigReference(kind=kind, name=name, via=via)
        if ref not in refs:
            refs.append(ref)

    for volume in _safe_get(obj, "spec", "volumes") or []:
        add("ConfigMap", _safe_get(volume, "config_map", "name"), ReferenceSource.VOLUME)
        add("Secret", _safe_get(volume, "secret", "secret_name"), ReferenceSource.VOLUME)
        for source in _safe_get(volume, "projected", "sources") or []:
            add("ConfigMap", _safe_get(source, "config_map", "name"), ReferenceSource.VOLUME)
            add("Secret", _safe_get(source, "secret", "name"), ReferenceSource.VOLUME)

    containers = list(_safe_get(obj, "spec", "init_containers") or [])
    containers.extend(_safe_get(obj, "spec", "containers") or [])
    for container in containers:
        for env in getattr(container, "env", None) or []:
            add(
                "ConfigMap",
                _safe_get(env, "value_from", "config_map_key_ref", "name"),
                ReferenceSource.ENV,
            )
            add(
                "Secret",
                _safe_get(env, "value_from", "secret_key_ref", "name"),
                ReferenceSource.ENV,
            )
        for env_from in getattr(container, "env_from", None) or []:
            add(
                "ConfigMap",
                _safe_get(env_from, "config_map_ref", "name"),
                ReferenceSource.ENV_FROM,
            )
            add("Secret", _safe_get(env_from, "secret_ref", "name"), ReferenceSource.ENV_FROM)

    for pull_secret in _safe_get(obj, "spec", "image_pull_secrets") or []:
        add("Secret", getattr(pull_secret, "name", None), ReferenceSource.IMAGE_PULL_SECRET)

    return tuple(refs)


def _ingress_backends(obj: Any) -> tuple[str, ...]:
    """Service names an ingress routes to, deduplicated in rule order."""
    names: list[str] = []
    default = _safe_get(obj, "spec", "default_backend", "service", "name")
    if default:
        names.append(default)
    for rule in _safe_get(obj, "spec", "rules") or []:
        for path in _safe_get(rule, "http", "paths") or []:
            name = _safe_get(path, "backend", "service", "name")
            if name and name not in names:
                names.append(name)
    return tuple(names)
