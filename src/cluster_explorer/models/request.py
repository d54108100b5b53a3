"""Discovery request and page models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cluster_explorer.discovery.selector import LabelSelector
from cluster_explorer.integrations.kubernetes.config import DEFAULT_PAGE_SIZE
from cluster_explorer.models.base import _safe_get
from cluster_explorer.models.resource import Resource, ResourceKind

ALL_NAMESPACES = "*"


class CustomResourceType(BaseModel):
    """A custom resource type, as declared by its CustomResourceDefinition."""

    model_config = ConfigDict(frozen=True)

    group: str
    version: str
    plural: str
    kind: str
    namespaced: bool = True

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"

    @property
    def key(self) -> str:
        """Stable key naming this type, e.g. ``certificates.cert-manager.io/v1``."""
        return f"{self.plural}.{self.group}/{self.version}"

    @classmethod
    def from_k8s_object(cls, obj: Any) -> CustomResourceType:
        """Create from a kubernetes V1CustomResourceDefinition object.

        Picks the storage version, falling back to the first served version.
        """
        versions = _safe_get(obj, "spec", "versions") or []
        chosen = next((v for v in versions if getattr(v, "storage", False)), None)
        if chosen is None:
            chosen = next((v for v in versions if getattr(v, "served", False)), None)
        return cls(
            group=_safe_get(obj, "spec", "group", default=""),
            version=getattr(chosen, "name", None) or "v1",
            plural=_safe_get(obj, "spec", "names", "plural", default=""),
            kind=_safe_get(obj, "spec", "names", "kind", default=""),
            namespaced=_safe_get(obj, "spec", "scope", default="Namespaced") == "Namespaced",
        )


class DiscoveryRequest(BaseModel):
    """Parameters of one discovery unit: a kind in a namespace scope.

    ``namespace=None`` means all namespaces.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: ResourceKind
    namespace: str | None = None
    selector: LabelSelector | None = None
    status: str | None = Field(default=None, description="Status label to match")
    newer_than: float | None = Field(default=None, description="Maximum age in seconds")
    older_than: float | None = Field(default=None, description="Minimum age in seconds")
    custom: CustomResourceType | None = None
    page_size: int = DEFAULT_PAGE_SIZE
    limit: int | None = None

    @field_validator("page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        """Validate page size is positive."""
        if v <= 0:
            raise ValueError("page_size must be positive")
        return v

    @field_validator("limit")
    @classmethod
    def validate_limit(cls, v: int | None) -> int | None:
        """Validate limit is positive when set."""
        if v is not None and v <= 0:
            raise ValueError("limit must be positive")
        return v

    @model_validator(mode="after")
    def validate_custom_type(self) -> DiscoveryRequest:
        """Custom resource requests must name their type."""
        if self.kind == ResourceKind.CUSTOM_RESOURCE and self.custom is None:
            raise ValueError("custom resource requests require a custom resource type")
        return self

    @property
    def kind_key(self) -> str:
        """Cache and log key for the kind, distinguishing custom resource types."""
        if self.custom is not None:
            return f"{self.kind.value}:{self.custom.key}"
        return self.kind.value

    @property
    def namespace_scope(self) -> str:
        return self.namespace or ALL_NAMESPACES

    @property
    def selector_fingerprint(self) -> str:
        return self.selector.fingerprint if self.selector is not None else ""

    def for_namespace(self, namespace: str | None) -> DiscoveryRequest:
        """Copy of this request scoped to another namespace."""
        return self.model_copy(update={"namespace": namespace})

    def for_kind(self, kind: ResourceKind) -> DiscoveryRequest:
        """Copy of this request for another built-in kind."""
        return self.model_copy(update={"kind": kind, "custom": None})

    def describe(self) -> str:
        """Short human description used in error context."""
        text = f"{self.custom.kind if self.custom else self.kind.value} in {self.namespace_scope}"
        if self.selector is not None and not self.selector.is_empty:
            text += f" (selector: {self.selector})"
        return text


class PageRequest(BaseModel):
    """One page call against a resource source."""

    model_config = ConfigDict(frozen=True)

    kind: ResourceKind
    namespace: str | None = None
    label_selector: str | None = None
    custom: CustomResourceType | None = None
    page_size: int = DEFAULT_PAGE_SIZE
    cursor: str | None = None

    @classmethod
    def first(cls, request: DiscoveryRequest) -> PageRequest:
        """Page request for the first page of a discovery request."""
        query = request.selector.to_query() if request.selector is not None else ""
        return cls(
            kind=request.kind,
            namespace=request.namespace,
            label_selector=query or None,
            custom=request.custom,
            page_size=request.page_size,
        )

    def next(self, cursor: str) -> PageRequest:
        """Page request continuing from a cursor."""
        return self.model_copy(update={"cursor": cursor})


class ResourcePage(BaseModel):
    """One page of resources returned by a resource source."""

    model_config = ConfigDict(frozen=True)

    items: tuple[Resource, ...] = ()
    next_cursor: str | None = None
