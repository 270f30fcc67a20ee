"""Authentication guard.

Verifies session tokens before anything keyed by tenant identity is
touched, reissues tokens that are about to expire, and rejects requests
whose self-declared identity disagrees with the token.
"""

import json
from datetime import UTC, datetime, timedelta

import structlog
from redis.exceptions import RedisError
from starlette.requests import Request

from wakegate.config import Settings
from wakegate.core.auth.backend import decode_token, needs_refresh, reissue
from wakegate.core.auth.schemas import AuthResult, TokenClaims
from wakegate.core.cache import RedisCache
from wakegate.core.constants import USER_ID_HEADER
from wakegate.core.errors import AuthenticationError, IdentityMismatchError


logger = structlog.get_logger()


def extract_token(request: Request, cookie_name: str) -> str | None:
    """Read the session token from the Authorization header or the cookie."""
    auth_header = request.headers.get("Authorization")
    if auth_header:
        scheme, _, credentials = auth_header.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
    return request.cookies.get(cookie_name) or None


class AuthGuard:
    """Validates bearer tokens and derives the tenant identity.

    Args:
        settings: Signing and refresh-window configuration
        revocations: Revocation list keyed by ``jti``; revocation is not
            enforced when no Redis is configured
    """

    def __init__(self, settings: Settings, revocations: RedisCache | None = None) -> None:
        self.settings = settings
        self.revocations = revocations
        self.refresh_window = timedelta(minutes=settings.token_refresh_window_minutes)

    async def authenticate(self, token: str | None) -> AuthResult:
        """Verify a token and reissue it when it is inside the refresh window.

        Raises:
            AuthenticationError: If the token is missing, invalid, expired,
                revoked or not an access token
        """
        if not token:
            raise AuthenticationError(
                "Missing authentication token",
                error_code="missing_token",
            )

        claims = decode_token(token, self.settings)
        if claims is None:
            raise AuthenticationError(
                "Invalid or expired token",
                error_code="invalid_token",
            )

        if claims.type != "access":
            raise AuthenticationError(
                "Invalid token type",
                error_code="invalid_token_type",
            )

        if await self.is_revoked(claims):
            raise AuthenticationError(
                "Token has been revoked",
                error_code="token_revoked",
            )

        refreshed = None
        if needs_refresh(claims, self.refresh_window):
            refreshed = reissue(claims, self.settings)
            logger.debug("session_token_refreshed", tenant_id=claims.sub)

        return AuthResult(claims=claims, refreshed=refreshed)

    def check_identity(self, claims: TokenClaims, supplied: str | None) -> None:
        """Fail closed when a caller-supplied identity disagrees with the token.

        Raises:
            IdentityMismatchError: If ``supplied`` is set and differs from ``sub``
        """
        if supplied is not None and supplied != claims.sub:
            logger.warning(
                "identity_mismatch",
                token_identity=claims.sub,
                supplied_identity=supplied,
            )
            raise IdentityMismatchError(details={"supplied": supplied})

    async def check_request_identity(self, request: Request, claims: TokenClaims) -> None:
        """Check the identity header and, for JSON bodies, the ``user_id`` field."""
        self.check_identity(claims, request.headers.get(USER_ID_HEADER))

        content_type = request.headers.get("content-type", "")
        if not content_type.startswith("application/json"):
            return

        body = await request.body()
        if not body:
            return
        try:
            payload = json.loads(body)
        except ValueError:
            # Not our business to validate the tenant's payloads
            return
        if isinstance(payload, dict) and "user_id" in payload:
            supplied = payload["user_id"]
            self.check_identity(claims, None if supplied is None else str(supplied))

    async def is_revoked(self, claims: TokenClaims) -> bool:
        """Check the revocation list for the token's ``jti``."""
        if self.revocations is None or not claims.jti:
            return False
        try:
            return await self.revocations.get(claims.jti) == "1"
        except RedisError as e:
            # Fail closed: a token we cannot check is not trusted
            logger.error("revocation_check_failed", error=str(e))
            raise AuthenticationError(
                "Unable to verify token",
                error_code="revocation_unavailable",
            ) from e

    async def revoke(self, claims: TokenClaims) -> bool:
        """Revoke a token until its natural expiry.

        Returns:
            True if the revocation was recorded
        """
        if self.revocations is None or not claims.jti:
            logger.warning("token_revocation_unavailable", tenant_id=claims.sub)
            return False

        ttl = int((claims.exp - datetime.now(UTC)).total_seconds())
        if ttl <= 0:
            return True
        try:
            await self.revocations.set(claims.jti, "1", ttl)
        except RedisError as e:
            logger.error("token_revocation_failed", tenant_id=claims.sub, error=str(e))
            return False
        logger.info("token_revoked", tenant_id=claims.sub)
        return True
