"""FastAPI dependencies for authentication.

This module provides FastAPI dependency injection functions for:
- Authenticating the session token (bearer header or cookie)
- Checking caller-supplied identity against the token
- Guarding the admin surface
"""

import secrets
from typing import Annotated

import structlog
from fastapi import Depends, Request

from wakegate.api.dependencies import AppSettings
from wakegate.core.auth.guard import AuthGuard, extract_token
from wakegate.core.auth.schemas import AuthResult, TokenClaims
from wakegate.core.constants import ADMIN_TOKEN_HEADER
from wakegate.core.errors import ForbiddenError


def get_guard(request: Request) -> AuthGuard:
    return request.app.state.guard


Guard = Annotated[AuthGuard, Depends(get_guard)]


async def get_auth_result(
    request: Request,
    guard: Guard,
    settings: AppSettings,
) -> AuthResult:
    """Authenticate the request's session token.

    Runs before any handler touches the tenant registry. On success the
    tenant identity is recorded on ``request.state`` and bound to the log
    context, and a reissued token (if any) is left for
    ``TokenRefreshMiddleware``.

    Raises:
        AuthenticationError: If the token is missing, invalid, expired or revoked
    """
    result = await guard.authenticate(extract_token(request, settings.cookie_name))

    request.state.tenant_id = result.claims.tenant_id
    request.state.refreshed_token = result.refreshed
    structlog.contextvars.bind_contextvars(tenant_id=result.claims.tenant_id)

    return result


async def get_current_claims(
    result: Annotated[AuthResult, Depends(get_auth_result)],
) -> TokenClaims:
    return result.claims


CurrentClaims = Annotated[TokenClaims, Depends(get_current_claims)]


async def get_verified_claims(
    request: Request,
    claims: CurrentClaims,
    guard: Guard,
) -> TokenClaims:
    """Authenticated claims whose identity the request does not contradict.

    Raises:
        IdentityMismatchError: If ``X-User-ID`` or a JSON ``user_id`` names
            another tenant
    """
    await guard.check_request_identity(request, claims)
    return claims


VerifiedClaims = Annotated[TokenClaims, Depends(get_verified_claims)]


async def require_admin(request: Request, settings: AppSettings) -> None:
    """Require the admin token when one is configured.

    Without a configured token the admin surface is open; deploy it on a
    private network only.

    Raises:
        ForbiddenError: If the admin token is missing or wrong
    """
    if not settings.admin_token:
        return

    supplied = request.headers.get(ADMIN_TOKEN_HEADER, "")
    if not secrets.compare_digest(supplied.encode(), settings.admin_token.encode()):
        raise ForbiddenError(
            "Admin token required",
            error_code="admin_token_required",
        )


AdminAccess = Depends(require_admin)
