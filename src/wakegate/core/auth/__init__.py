"""Authentication: session tokens, the auth guard and its dependencies."""

from wakegate.core.auth.backend import (
    create_access_token,
    decode_token,
    needs_refresh,
    reissue,
)
from wakegate.core.auth.dependencies import (
    AdminAccess,
    CurrentClaims,
    Guard,
    VerifiedClaims,
    get_auth_result,
    require_admin,
)
from wakegate.core.auth.guard import AuthGuard, extract_token
from wakegate.core.auth.middleware import RequestIdMiddleware, TokenRefreshMiddleware
from wakegate.core.auth.routes import router as auth_router
from wakegate.core.auth.schemas import AuthResult, IssuedToken, TokenClaims


__all__ = [
    # Dependencies
    "AdminAccess",
    # Guard
    "AuthGuard",
    # Schemas
    "AuthResult",
    "CurrentClaims",
    "Guard",
    "IssuedToken",
    # Middleware
    "RequestIdMiddleware",
    "TokenClaims",
    "TokenRefreshMiddleware",
    "VerifiedClaims",
    # Routers
    "auth_router",
    # Token utilities
    "create_access_token",
    "decode_token",
    "extract_token",
    "get_auth_result",
    "needs_refresh",
    "reissue",
    "require_admin",
]
