"""Shared helpers for building resource models from Kubernetes objects."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any


def _safe_get(obj: Any, *attrs: str, default: Any = None) -> Any:
    """Safely traverse nested attributes on kubernetes SDK objects."""
    current = obj
    for attr in attrs:
        if current is None:
            return default
        current = getattr(current, attr, None)
    return current if current is not None else default


def _dict_get(doc: Any, *keys: str, default: Any = None) -> Any:
    """Safely traverse nested keys on an unstructured object document."""
    current = doc
    for key in keys:
        if not isinstance(current, dict):
            return default
        current = current.get(key)
    return current if current is not None else default


def _get_timestamp(obj: Any) -> str | None:
    """Extract ISO timestamp string from a datetime or string."""
    if obj is None:
        return None
    if isinstance(obj, str):
        return obj
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


def _get_labels(obj: Any) -> dict[str, str]:
    """Extract labels dict from an SDK object."""
    labels = _safe_get(obj, "metadata", "labels")
    return dict(labels) if labels else {}


def _get_annotations(obj: Any) -> dict[str, str]:
    """Extract annotations dict from an SDK object."""
    annotations = _safe_get(obj, "metadata", "annotations")
    return dict(annotations) if annotations else {}


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a Kubernetes RFC 3339 timestamp, returning None when unparseable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def format_age(value: str | None, now: datetime | None = None) -> str:
    """Human-readable age string in the kubectl style (``3d``, ``5h``, ``12m``)."""
    created = parse_timestamp(value)
    if created is None:
        return "Unknown"
    delta = (now or datetime.now(UTC)) - created
    days = delta.days
    hours, remainder = divmod(delta.seconds, 3600)
    minutes = remainder // 60
    if days > 0:
        return f"{days}d"
    if hours > 0:
        return f"{hours}h"
    return f"{minutes}m"
