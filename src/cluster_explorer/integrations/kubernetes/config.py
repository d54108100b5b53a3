"""Configuration for reaching a cluster and tuning discovery runs.

Values come from an optional base mapping (e.g. a parsed config file) with
``KDX_*`` environment variables layered on top; CLI flags are applied last
by :func:`cluster_explorer.cli.main.build_config`.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_PAGE_SIZE = 100
DEFAULT_CACHE_TTL = 300.0

OutputFormatName = Literal["table", "json", "yaml"]

# Environment variable -> (DiscoveryDefaults field, parser)
_DEFAULTS_ENV: dict[str, tuple[str, Callable[[str], Any]]] = {
    "KDX_TIMEOUT": ("timeout", int),
    "KDX_PAGE_SIZE": ("page_size", int),
    "KDX_CONCURRENCY": ("concurrency", int),
    "KDX_CACHE_TTL": ("cache_ttl", float),
    "KDX_RETRY_ATTEMPTS": ("retry_attempts", int),
}


def default_concurrency() -> int:
    """Worker count derived from available parallelism."""
    return min(32, (os.cpu_count() or 1) + 4)


class ClusterConfig(BaseModel):
    """A named cluster: which kubeconfig context to use and its defaults."""

    model_config = ConfigDict(extra="forbid")

    context: str = ""
    kubeconfig: str = "~/.kube/config"
    namespace: str = "default"
    timeout: int = 300

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("kubeconfig")
    @classmethod
    def expand_kubeconfig(cls, v: str) -> str:
        return str(Path(v).expanduser())


class DiscoveryDefaults(BaseModel):
    """Paging, concurrency, caching and retry settings for a session.

    ``concurrency`` left unset means "derive from the CPU count"; a
    ``cache_ttl`` of zero disables caching.
    """

    model_config = ConfigDict(extra="forbid")

    timeout: int = 300
    page_size: int = DEFAULT_PAGE_SIZE
    concurrency: int | None = None
    cache_ttl: float = DEFAULT_CACHE_TTL
    retry_attempts: int = 5
    retry_min_wait: float = 0.5
    retry_max_wait: float = 8.0

    @field_validator("timeout", "page_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("concurrency")
    @classmethod
    def validate_concurrency(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("concurrency must be at least 1")
        return v

    @field_validator("cache_ttl", "retry_min_wait", "retry_max_wait")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("duration must be non-negative")
        return v

    @field_validator("retry_attempts")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("retry_attempts must be at least 1")
        return v

    def resolved_concurrency(self) -> int:
        return self.concurrency or default_concurrency()


class ExplorerConfig(BaseModel):
    """Everything a session needs: known clusters, the active one, defaults."""

    model_config = ConfigDict(extra="forbid")

    clusters: dict[str, ClusterConfig] = {}
    active_cluster: str | None = None
    defaults: DiscoveryDefaults = DiscoveryDefaults()
    output_format: OutputFormatName = "table"
    kubeconfig_override: str | None = None
    namespace_override: str | None = None

    @classmethod
    def from_env(cls, base_config: dict[str, Any] | None = None) -> ExplorerConfig:
        """Build a config from ``base_config`` with ``KDX_*`` overrides applied.

        ``KDX_CONTEXT`` selects the active cluster (or raw context name),
        ``KDX_NAMESPACE`` and ``KDX_KUBECONFIG`` are forced onto every
        configured cluster, ``KDX_OUTPUT`` sets the output format, and
        ``KDX_TIMEOUT``, ``KDX_PAGE_SIZE``, ``KDX_CONCURRENCY``,
        ``KDX_CACHE_TTL`` and ``KDX_RETRY_ATTEMPTS`` override discovery
        defaults. The caller's mapping is not modified.
        """
        data = dict(base_config or {})
        defaults = dict(data.get("defaults", {}))
        for var, (field, parse) in _DEFAULTS_ENV.items():
            if raw := os.environ.get(var):
                defaults[field] = parse(raw)
        data["defaults"] = defaults
        data.setdefault("clusters", {})

        if context := os.environ.get("KDX_CONTEXT"):
            data["active_cluster"] = context
        if output_format := os.environ.get("KDX_OUTPUT"):
            data["output_format"] = output_format

        instance = cls.model_validate(data)

        if kubeconfig := os.environ.get("KDX_KUBECONFIG"):
            instance.kubeconfig_override = str(Path(kubeconfig).expanduser())
            for cluster in instance.clusters.values():
                cluster.kubeconfig = instance.kubeconfig_override
        if namespace := os.environ.get("KDX_NAMESPACE"):
            instance.namespace_override = namespace
            for cluster in instance.clusters.values():
                cluster.namespace = namespace

        return instance

    def _active(self) -> ClusterConfig | None:
        """The selected cluster entry, else the first one configured."""
        if self.active_cluster:
            return self.clusters.get(self.active_cluster)
        return next(iter(self.clusters.values()), None)

    def get_active_context(self) -> str | None:
        """Context to load; an unknown ``active_cluster`` is used as a context name."""
        cluster = self._active()
        if cluster is not None:
            return cluster.context or None
        return self.active_cluster

    def get_active_kubeconfig(self) -> str | None:
        if self.active_cluster and self.active_cluster in self.clusters:
            return self.clusters[self.active_cluster].kubeconfig
        return self.kubeconfig_override

    def get_active_namespace(self) -> str:
        cluster = self._active()
        if cluster is not None:
            return cluster.namespace
        return self.namespace_override or "default"

    def get_active_timeout(self) -> int:
        if self.active_cluster and self.active_cluster in self.clusters:
            return self.clusters[self.active_cluster].timeout
        return self.defaults.timeout
