"""Status and age predicates, and grouping of discovered resources."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from cluster_explorer.models.resource import Resource, ResourceKind

HELM_RELEASE_LABEL = "app.kubernetes.io/instance"
UNKNOWN_GROUP = "unknown"

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(text: str) -> float:
    """Parse ``30s`` / ``15m`` / ``2h`` / ``7d`` (bare numbers are seconds).

    Raises:
        ValueError: If the text is not a duration.
    """
    match = _DURATION_RE.match(text)
    if match is None:
        raise ValueError(f"Invalid duration '{text}': expected forms like 30s, 15m, 2h, 7d")
    return float(int(match.group(1)) * _DURATION_UNITS[match.group(2)])


def matches_status(resource: Resource, status: str | None) -> bool:
    """Case-sensitive comparison against the resource's status label."""
    if status is None:
        return True
    return resource.status_label == status


def matches_age(
    resource: Resource,
    newer_than: float | None = None,
    older_than: float | None = None,
    now: datetime | None = None,
) -> bool:
    """Whether the resource's age lies within the given bounds, in seconds.

    Resources without a creation timestamp fail any age bound.
    """
    if newer_than is None and older_than is None:
        return True
    age = resource.age_seconds(now)
    if age is None:
        return False
    if newer_than is not None and age > newer_than:
        return False
    return not (older_than is not None and age < older_than)


class GroupMode(StrEnum):
    """How resources are grouped for display."""

    APP = "app"
    TIER = "tier"
    HELM_RELEASE = "helm-release"
    NAMESPACE = "namespace"
    LABEL = "label"
    NONE = "none"


@dataclass(frozen=True)
class GroupBy:
    """A grouping mode plus the label key it groups on, if any."""

    mode: GroupMode
    label_key: str | None = None

    @classmethod
    def parse(cls, text: str) -> GroupBy:
        """Any string that is not a known mode is a custom label key."""
        match text.strip():
            case "app":
                return cls(GroupMode.APP, "app")
            case "tier":
                return cls(GroupMode.TIER, "tier")
            case "helm-release" | "helm":
                return cls(GroupMode.HELM_RELEASE, HELM_RELEASE_LABEL)
            case "namespace" | "ns":
                return cls(GroupMode.NAMESPACE)
            case "none" | "":
                return cls(GroupMode.NONE)
            case custom:
                return cls(GroupMode.LABEL, custom)


class ResourceGroup(BaseModel):
    """A named group of resources."""

    name: str
    group_type: str
    resources: list[Resource] = Field(default_factory=list)
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.resources)

    def count_by_kind(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for resource in self.resources:
            counts[resource.display_kind] = counts.get(resource.display_kind, 0) + 1
        return counts


def _group_value(resource: Resource, group_by: GroupBy) -> str:
    if group_by.mode == GroupMode.NAMESPACE:
        return resource.namespace or UNKNOWN_GROUP
    key = group_by.label_key or ""
    # Services are grouped by what they select, not by their own labels
    if resource.kind == ResourceKind.SERVICE:
        return (resource.selector or {}).get(key, UNKNOWN_GROUP)
    return resource.labels.get(key, UNKNOWN_GROUP)


def group_resources(resources: Iterable[Resource], group_by: GroupBy) -> list[ResourceGroup]:
    """Group resources, returning groups ordered by name."""
    items = list(resources)
    if group_by.mode == GroupMode.NONE:
        return [ResourceGroup(name="all", group_type="none", resources=items)]

    group_type = (
        GroupMode.NAMESPACE.value if group_by.mode == GroupMode.NAMESPACE else group_by.label_key
    )
    groups: dict[str, ResourceGroup] = {}
    for resource in items:
        name = _group_value(resource, group_by)
        group = groups.get(name)
        if group is None:
            group = groups[name] = ResourceGroup(name=name, group_type=group_type or "")
            if group_by.mode == GroupMode.HELM_RELEASE:
                group.metadata["managed-by"] = "Helm"
        group.resources.append(resource)
    return [groups[name] for name in sorted(groups)]
