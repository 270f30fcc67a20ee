"""Authentication API routes.

Provides endpoints for:
- Issuing a session (called by the trusted login frontend)
- Logout with token revocation
- Session status with sliding refresh
"""

import structlog
from fastapi import APIRouter, Request, Response, status

from wakegate.api.dependencies import AppSettings
from wakegate.core.auth.backend import create_access_token, decode_token
from wakegate.core.auth.dependencies import AdminAccess, Guard
from wakegate.core.auth.guard import extract_token
from wakegate.core.auth.middleware import clear_session_cookie, set_session_cookie
from wakegate.core.auth.schemas import LoginRequest, LoginResponse, SessionResponse
from wakegate.core.errors import AuthenticationError


logger = structlog.get_logger()

router = APIRouter(tags=["auth"])


@router.post(
    "/auth/login",
    response_model=LoginResponse,
    dependencies=[AdminAccess],
    summary="Issue a session",
    description="Issues a session token for an already authenticated user and sets the session cookie.",
)
async def login(
    data: LoginRequest,
    response: Response,
    settings: AppSettings,
) -> LoginResponse:
    """Issue a session token."""
    issued = create_access_token(
        user_id=data.user_id,
        email=data.email,
        plan=data.plan.strip(),
        onboarding_completed=data.onboarding_completed,
        settings=settings,
    )
    set_session_cookie(response, issued, settings)
    logger.info("session_issued", tenant_id=data.user_id)

    claims = issued.claims
    return LoginResponse(
        user_id=claims.sub,
        email=claims.email,
        plan=claims.plan,
        onboarding_completed=claims.onboarding_completed,
        expires_at=claims.exp,
        access_token=issued.token,
    )


@router.post(
    "/auth/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Logout",
    description="Revokes the presented token (when revocation is available) and clears the session cookie.",
)
async def logout(
    request: Request,
    guard: Guard,
    settings: AppSettings,
) -> Response:
    """Revoke the current token and clear the cookie."""
    token = extract_token(request, settings.cookie_name)
    claims = decode_token(token, settings) if token else None
    if claims is not None:
        await guard.revoke(claims)

    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    clear_session_cookie(response, settings)
    return response


@router.get(
    "/session/status",
    response_model=SessionResponse,
    summary="Session status",
    description="Reports whether the presented session is valid, reissuing it inside the refresh window.",
)
async def session_status(
    request: Request,
    guard: Guard,
    settings: AppSettings,
) -> SessionResponse:
    """Describe the current session without failing on a bad one."""
    try:
        result = await guard.authenticate(extract_token(request, settings.cookie_name))
    except AuthenticationError:
        return SessionResponse(valid=False)

    request.state.refreshed_token = result.refreshed
    claims = result.refreshed.claims if result.refreshed else result.claims
    return SessionResponse(
        user_id=claims.sub,
        email=claims.email,
        plan=claims.plan,
        onboarding_completed=claims.onboarding_completed,
        expires_at=claims.exp,
    )
