"""Authentication backend for JWT handling.

This module provides core token utilities:
- JWT session token creation and verification
- Refresh-window detection
"""

import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from wakegate.config import Settings, settings as default_settings
from wakegate.core.auth.schemas import IssuedToken, TokenClaims
from wakegate.core.constants import ACCESS_TOKEN_JTI_LENGTH, DEFAULT_PLAN


def create_access_token(
    user_id: str,
    email: str = "",
    plan: str = DEFAULT_PLAN,
    onboarding_completed: bool = False,
    expires_delta: timedelta | None = None,
    settings: Settings | None = None,
) -> IssuedToken:
    """Create a signed session token.

    Args:
        user_id: Tenant identity placed in ``sub``
        email: User email
        plan: Subscription plan
        onboarding_completed: Onboarding flag carried through refreshes
        expires_delta: Optional custom lifetime
        settings: Settings to sign with (defaults to process settings)

    Returns:
        The encoded token with its claims
    """
    cfg = settings or default_settings
    now = datetime.now(UTC).replace(microsecond=0)
    if expires_delta is None:
        expires_delta = timedelta(minutes=cfg.access_token_expire_minutes)

    claims = TokenClaims(
        sub=user_id,
        email=email,
        plan=plan or DEFAULT_PLAN,
        onboarding_completed=onboarding_completed,
        jti=secrets.token_urlsafe(ACCESS_TOKEN_JTI_LENGTH),
        iat=now,
        exp=now + expires_delta,
    )

    to_encode: dict[str, Any] = claims.model_dump()
    to_encode["iat"] = int(now.timestamp())
    to_encode["exp"] = int(claims.exp.timestamp())

    token = jwt.encode(to_encode, cfg.secret_key, algorithm=cfg.jwt_algorithm)
    return IssuedToken(token=token, claims=claims)


def decode_token(token: str, settings: Settings | None = None) -> TokenClaims | None:
    """Decode and validate a JWT token.

    Expiry is checked with zero leeway.

    Args:
        token: The JWT token to decode
        settings: Settings to verify with (defaults to process settings)

    Returns:
        TokenClaims if valid, None if invalid or expired
    """
    cfg = settings or default_settings
    try:
        payload = jwt.decode(
            token,
            cfg.secret_key,
            algorithms=[cfg.jwt_algorithm],
            options={"leeway": 0},
        )

        sub = payload.get("sub")
        exp = payload.get("exp")
        if not sub or exp is None:
            return None

        iat = payload.get("iat")
        return TokenClaims(
            sub=str(sub),
            email=str(payload.get("email") or ""),
            plan=str(payload.get("plan") or DEFAULT_PLAN),
            onboarding_completed=payload.get("onboarding_completed") is True,
            jti=payload.get("jti"),
            iat=datetime.fromtimestamp(iat, tz=UTC) if iat is not None else None,
            exp=datetime.fromtimestamp(exp, tz=UTC),
            type=payload.get("type", "access"),
        )

    except (JWTError, ValueError, TypeError):
        return None


def needs_refresh(
    claims: TokenClaims,
    window: timedelta,
    now: datetime | None = None,
) -> bool:
    """Whether a token's remaining validity is inside the refresh window."""
    now = now or datetime.now(UTC)
    return claims.exp - now <= window


def reissue(claims: TokenClaims, settings: Settings | None = None) -> IssuedToken:
    """Issue a new token carrying the same identity and profile claims."""
    return create_access_token(
        user_id=claims.sub,
        email=claims.email,
        plan=claims.plan,
        onboarding_completed=claims.onboarding_completed,
        settings=settings,
    )
