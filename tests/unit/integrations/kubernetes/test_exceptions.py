"""Unit tests for Kubernetes fetch errors."""

from __future__ import annotations

import pytest

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


@pytest.mark.unit
@pytest.mark.kubernetes
class TestKubernetesError:
    """Test the base exception."""

    def test_str_with_location(self) -> None:
        """Test status and resource location are rendered."""
        error = KubernetesError(
            "boom",
            status_code=500,
            resource_type="Pod",
            resource_name="web",
            namespace="prod",
        )

        assert str(error) == "boom (status: 500) [Pod/web in prod]"

    def test_str_message_only(self) -> None:
        """Test a bare message."""
        assert str(KubernetesError("boom")) == "boom"


@pytest.mark.unit
@pytest.mark.kubernetes
class TestErrorKinds:
    """Test the fetch error taxonomy."""

    @pytest.mark.parametrize(
        ("error", "kind"),
        [
            (KubernetesAuthError(), FetchErrorKind.UNAUTHORIZED),
            (KubernetesNotFoundError(), FetchErrorKind.NOT_FOUND),
            (KubernetesRateLimitError(), FetchErrorKind.RATE_LIMITED),
            (KubernetesConnectionError(), FetchErrorKind.UNREACHABLE),
            (KubernetesMalformedError(), FetchErrorKind.MALFORMED),
            (KubernetesTimeoutError(), FetchErrorKind.TIMEOUT),
            (KubernetesError("x"), FetchErrorKind.UNKNOWN),
        ],
    )
    def test_error_kind(self, error: KubernetesError, kind: FetchErrorKind) -> None:
        """Test every subclass reports its kind."""
        assert error.error_kind == kind
        assert isinstance(error, KubernetesError)

    def test_only_rate_limit_is_retryable(self) -> None:
        """Test retryability."""
        assert KubernetesRateLimitError.retryable
        for cls in (
            KubernetesAuthError,
            KubernetesNotFoundError,
            KubernetesConnectionError,
            KubernetesMalformedError,
            KubernetesTimeoutError,
        ):
            assert not cls.retryable


@pytest.mark.unit
@pytest.mark.kubernetes
class TestSubclasses:
    """Test subclass-specific fields."""

    def test_not_found_message(self) -> None:
        """Test the message names the resource."""
        error = KubernetesNotFoundError(resource_type="Service", resource_name="web", namespace="a")

        assert error.message == "Service 'web' not found in namespace 'a'"
        assert error.status_code == 404

    def test_auth_defaults(self) -> None:
        """Test auth errors default to 401."""
        error = KubernetesAuthError(reason="Forbidden", status_code=403)

        assert error.status_code == 403
        assert error.reason == "Forbidden"

    def test_rate_limit_carries_retry_after(self) -> None:
        """Test Retry-After is kept."""
        error = KubernetesRateLimitError(retry_after=2.5)

        assert error.retry_after == 2.5
        assert error.status_code == 429

    def test_connection_keeps_original(self) -> None:
        """Test the underlying error is preserved."""
        cause = OSError("refused")

        assert KubernetesConnectionError(original_error=cause).original_error is cause

    def test_timeout_message(self) -> None:
        """Test the exceeded timeout is part of the message."""
        error = KubernetesTimeoutError(timeout_seconds=1.5)

        assert str(error) == "Kubernetes operation timed out (after 1.5s)"
        assert error.timeout_seconds == 1.5
