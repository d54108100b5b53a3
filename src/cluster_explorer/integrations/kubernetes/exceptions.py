"""Fetch errors raised by resource sources.

Every error carries a :class:`FetchErrorKind`, so discovery code can decide
what to do (retry, report as missing, give up) from ``error.error_kind``
alone. Only rate limiting is retryable.
"""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar


class FetchErrorKind(StrEnum):
    """Why a page of resources could not be fetched."""

    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    UNREACHABLE = "unreachable"
    MALFORMED = "malformed"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class KubernetesError(Exception):
    """A list or read against the cluster failed.

    ``str()`` appends the HTTP status and the object involved when known,
    e.g. ``boom (status: 500) [Pod/web in prod]``.
    """

    error_kind: ClassVar[FetchErrorKind] = FetchErrorKind.UNKNOWN
    retryable: ClassVar[bool] = False

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.resource_type = resource_type
        self.resource_name = resource_name
        self.namespace = namespace

    def _location(self) -> str | None:
        if not self.resource_type:
            return None
        target = self.resource_type
        if self.resource_name:
            target = f"{target}/{self.resource_name}"
        if self.namespace:
            target = f"{target} in {self.namespace}"
        return f"[{target}]"

    def __str__(self) -> str:
        status = f"(status: {self.status_code})" if self.status_code else None
        return " ".join(p for p in (self.message, status, self._location()) if p)


class KubernetesConnectionError(KubernetesError):
    """No usable answer from the API server.

    Raised for missing kubeconfig, transport failures and 5xx responses.
    """

    error_kind = FetchErrorKind.UNREACHABLE

    def __init__(
        self,
        message: str = "Failed to connect to Kubernetes cluster",
        original_error: Exception | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, status_code=status_code)
        self.original_error = original_error


class KubernetesAuthError(KubernetesError):
    """The credentials were rejected (401) or lack permission (403)."""

    error_kind = FetchErrorKind.UNAUTHORIZED

    def __init__(
        self,
        message: str = "Kubernetes authentication/authorization failed",
        status_code: int | None = 401,
        reason: str | None = None,
        resource_type: str | None = None,
        namespace: str | None = None,
    ) -> None:
        super().__init__(
            message, status_code=status_code, resource_type=resource_type, namespace=namespace
        )
        self.reason = reason


class KubernetesNotFoundError(KubernetesError):
    """A resource type or named object does not exist.

    When both kind and name are given the message is built from them,
    e.g. ``Service 'web' not found in namespace 'shop'``.
    """

    error_kind = FetchErrorKind.NOT_FOUND

    def __init__(
        self,
        message: str = "Kubernetes resource not found",
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        if resource_type and resource_name:
            scope = f" in namespace '{namespace}'" if namespace else ""
            message = f"{resource_type} '{resource_name}' not found{scope}"
        super().__init__(message, 404, resource_type, resource_name, namespace)


class KubernetesRateLimitError(KubernetesError):
    """The API server answered 429.

    ``retry_after`` holds the server's Retry-After hint in seconds, if any.
    """

    error_kind = FetchErrorKind.RATE_LIMITED
    retryable = True

    def __init__(
        self,
        message: str = "Kubernetes API rate limit exceeded",
        retry_after: float | None = None,
        resource_type: str | None = None,
        namespace: str | None = None,
    ) -> None:
        super().__init__(message, status_code=429, resource_type=resource_type, namespace=namespace)
        self.retry_after = retry_after


class KubernetesMalformedError(KubernetesError):
    """The request was refused (400/410/422) or a page had an unexpected shape."""

    error_kind = FetchErrorKind.MALFORMED

    def __init__(
        self,
        message: str = "Malformed Kubernetes API request or response",
        status_code: int | None = None,
        resource_type: str | None = None,
        namespace: str | None = None,
    ) -> None:
        super().__init__(
            message, status_code=status_code, resource_type=resource_type, namespace=namespace
        )


class KubernetesTimeoutError(KubernetesError):
    """A discovery ran past the caller's deadline."""

    error_kind = FetchErrorKind.TIMEOUT

    def __init__(
        self,
        message: str = "Kubernetes operation timed out",
        timeout_seconds: float | None = None,
    ) -> None:
        if timeout_seconds:
            message = f"{message} (after {timeout_seconds:g}s)"
        super().__init__(message)
        self.timeout_seconds = timeout_seconds
