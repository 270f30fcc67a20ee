"""Error handling module with RFC 7807 Problem Details."""

from wakegate.core.errors.exceptions import (
    AppException,
    AuthenticationError,
    ForbiddenError,
    IdentityMismatchError,
    InvalidTransitionError,
    NotFoundError,
    ProvisioningFailedError,
    ProvisioningTimeoutError,
    ServiceUnavailableError,
    TenantUnreachableError,
    WakeRequiredError,
)
from wakegate.core.errors.handlers import (
    FieldError,
    ProblemDetail,
    register_exception_handlers,
)


__all__ = [
    # Exceptions
    "AppException",
    "AuthenticationError",
    # Handlers
    "FieldError",
    "ForbiddenError",
    "IdentityMismatchError",
    "InvalidTransitionError",
    "NotFoundError",
    "ProblemDetail",
    "ProvisioningFailedError",
    "ProvisioningTimeoutError",
    "ServiceUnavailableError",
    "TenantUnreachableError",
    "WakeRequiredError",
    "register_exception_handlers",
]
