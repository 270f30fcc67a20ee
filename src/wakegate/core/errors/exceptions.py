"""Domain exceptions for the application.

These exceptions represent supervisor errors and are automatically
converted to RFC 7807 Problem Details responses by the exception handlers.

Retryable conditions (wake required, provisioning, unreachable tenant)
are flagged with ``retryable = True`` so clients can tell them apart
from failures that need new credentials.
"""

from typing import Any

from wakegate.core.constants import WAKE_REQUIRED_HEADER


class AppException(Exception):
    """Base exception for all application errors.

    All domain exceptions should inherit from this class.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for clients
        status_code: HTTP status code for the response
        details: Additional error details
        headers: Extra response headers
        retryable: Whether the caller may safely retry
    """

    message: str = "An unexpected error occurred"
    error_code: str = "internal_error"
    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        self.headers = headers or {}
        super().__init__(self.message)


class NotFoundError(AppException):
    """Raised when a requested resource is not found.

    Example:
        raise NotFoundError("Tenant not found", resource="tenant", resource_id=tid)
    """

    message = "Resource not found"
    error_code = "not_found"
    status_code = 404

    def __init__(
        self,
        message: str | None = None,
        resource: str | None = None,
        resource_id: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if resource:
            details["resource"] = resource
        if resource_id:
            details["resource_id"] = resource_id
        super().__init__(message=message, details=details, **kwargs)


class AuthenticationError(AppException):
    """Raised when the bearer token is missing, invalid, expired or revoked.

    Authentication failures are never retried without new credentials.

    Example:
        raise AuthenticationError("Invalid access token", error_code="invalid_token")
    """

    message = "Authentication required"
    error_code = "unauthorized"
    status_code = 401


class IdentityMismatchError(AuthenticationError):
    """Raised when a caller-supplied identity disagrees with the token."""

    message = "Supplied identity does not match the token"
    error_code = "identity_mismatch"
    status_code = 403


class ForbiddenError(AppException):
    """Raised when the caller lacks access to an admin resource."""

    message = "Access forbidden"
    error_code = "forbidden"
    status_code = 403


class WakeRequiredError(AppException):
    """Signal that the tenant is asleep and must be warmed up first.

    Not a failure: the caller should POST /warmup and retry the original
    request. The marker header distinguishes it from an auth failure.
    """

    message = "Tenant is sleeping"
    error_code = "wake_required"
    status_code = 401
    retryable = True

    def __init__(self, message: str | None = None, **kwargs: Any) -> None:
        headers = kwargs.pop("headers", {})
        headers[WAKE_REQUIRED_HEADER] = "1"
        super().__init__(message=message, headers=headers, **kwargs)


class ProvisioningFailedError(AppException):
    """Raised when a tenant runtime could not be brought up."""

    message = "Tenant runtime failed to start"
    error_code = "provisioning_failed"
    status_code = 503
    retryable = True


class ProvisioningTimeoutError(ProvisioningFailedError):
    """Raised when provisioning, or waiting on it, exceeds its deadline."""

    message = "Tenant runtime did not become ready in time"
    error_code = "provisioning_timeout"


class TenantUnreachableError(AppException):
    """Raised when the proxy cannot connect to a running tenant."""

    message = "Tenant runtime is unreachable"
    error_code = "tenant_unreachable"
    status_code = 502
    retryable = True


class ServiceUnavailableError(AppException):
    """Raised when a required service is unavailable."""

    message = "Service temporarily unavailable"
    error_code = "service_unavailable"
    status_code = 503


class InvalidTransitionError(Exception):
    """Raised when code asks the registry for a transition the lifecycle forbids.

    This is a programming error and is not converted to a client response.
    """

    def __init__(self, current: str, new: str) -> None:
        self.current = current
        self.new = new
        super().__init__(f"invalid tenant transition {current} -> {new}")
