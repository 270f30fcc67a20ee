"""Authentication schemas for token handling."""

from datetime import datetime

from pydantic import BaseModel, Field

from wakegate.core.constants import DEFAULT_PLAN


class TokenClaims(BaseModel):
    """Claims carried by a session token.

    Attributes:
        sub: Tenant identity (the user id)
        email: User email
        plan: Subscription plan
        onboarding_completed: Whether onboarding finished
        jti: Unique token id, used for revocation
        iat: Issued-at time
        exp: Expiry time
        type: Token type; only "access" tokens are accepted
    """

    sub: str
    email: str = ""
    plan: str = DEFAULT_PLAN
    onboarding_completed: bool = False
    jti: str | None = None
    iat: datetime | None = None
    exp: datetime
    type: str = "access"

    @property
    def tenant_id(self) -> str:
        """Tenant identity this token authenticates."""
        return self.sub


class IssuedToken(BaseModel):
    """A freshly signed token with its claims."""

    token: str
    claims: TokenClaims

    @property
    def expires_at(self) -> datetime:
        return self.claims.exp


class AuthResult(BaseModel):
    """Outcome of authenticating a request.

    Attributes:
        claims: Verified claims of the presented token
        refreshed: Replacement token when the presented one is close to expiry
    """

    claims: TokenClaims
    refreshed: IssuedToken | None = None


class LoginRequest(BaseModel):
    """Session issue request."""

    user_id: str = Field(min_length=1)
    email: str = Field(min_length=1)
    plan: str = DEFAULT_PLAN
    onboarding_completed: bool = False


class SessionResponse(BaseModel):
    """Session description returned by login and status."""

    valid: bool = True
    user_id: str | None = None
    email: str | None = None
    plan: str | None = None
    onboarding_completed: bool | None = None
    expires_at: datetime | None = None


class LoginResponse(SessionResponse):
    """Login response; also carries the token for bearer clients."""

    access_token: str
    token_type: str = "bearer"
