"""Discovery errors."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cluster_explorer.integrations.kubernetes.exceptions import FetchErrorKind, KubernetesError

if TYPE_CHECKING:
    from cluster_explorer.discovery.selector import LabelSelector


class SelectorParseError(ValueError):
    """Raised when label selector text is malformed.

    Attributes:
        fragment: The requirement text that could not be parsed.
        reason: What was wrong with it.
    """

    def __init__(self, fragment: str, reason: str) -> None:
        self.fragment = fragment
        self.reason = reason
        super().__init__(f"Invalid label selector '{fragment}': {reason}")


class CacheError(Exception):
    """Internal cache failure. Never escapes the cache."""


class DiscoveryError(Exception):
    """A discovery run failed on its first fatal unit error.

    Attributes:
        cause: The fetch error that failed the unit.
        kind: Kind of the failing unit.
        namespace: Namespace scope of the failing unit (None for all namespaces).
        selector: Label selector of the failing unit, if any.
    """

    def __init__(
        self,
        cause: KubernetesError,
        kind: str,
        namespace: str | None = None,
        selector: LabelSelector | None = None,
    ) -> None:
        self.cause = cause
        self.kind = kind
        self.namespace = namespace
        self.selector = selector
        scope = namespace or "all namespaces"
        message = f"Discovery of {kind} in {scope} failed: {cause}"
        if selector is not None and not selector.is_empty:
            message += f" (selector: {selector})"
        super().__init__(message)

    @property
    def error_kind(self) -> FetchErrorKind:
        return self.cause.error_kind


class DiscoveryCancelledError(Exception):
    """Raised when a discovery is cancelled by its caller."""
