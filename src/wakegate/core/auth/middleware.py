"""Request ID and session refresh middleware.

This module provides middleware for:
- Request tracing with unique IDs
- Delivering reissued session tokens on the way out
"""

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from wakegate.config import Settings
from wakegate.core.auth.schemas import IssuedToken
from wakegate.core.constants import REFRESHED_TOKEN_HEADER, REQUEST_ID_HEADER


if TYPE_CHECKING:
    from starlette.types import ASGIApp


logger = structlog.get_logger()


def set_session_cookie(response: Response, issued: IssuedToken, settings: Settings) -> None:
    """Store a session token in the HTTP-only session cookie."""
    max_age = settings.access_token_expire_minutes * 60
    response.set_cookie(
        key=settings.cookie_name,
        value=issued.token,
        max_age=max_age,
        expires=issued.expires_at,
        path="/",
        domain=settings.cookie_domain,
        secure=settings.cookie_secure,
        httponly=True,
        samesite="strict",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.cookie_name,
        path="/",
        domain=settings.cookie_domain,
        secure=settings.cookie_secure,
        httponly=True,
        samesite="strict",
    )


class TokenRefreshMiddleware(BaseHTTPMiddleware):
    """Attach a reissued session token to the response.

    The authentication dependency leaves the new token on
    ``request.state.refreshed_token``. It is returned both as the
    ``X-Refreshed-Token`` header (bearer clients) and as the session cookie
    (browser clients). This works for streamed proxy responses too, where an
    endpoint cannot add headers itself.
    """

    def __init__(self, app: "ASGIApp", settings: Settings) -> None:
        super().__init__(app)
        self.settings = settings

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        response = await call_next(request)

        issued: IssuedToken | None = getattr(request.state, "refreshed_token", None)
        if issued is not None:
            response.headers[REFRESHED_TOKEN_HEADER] = issued.token
            set_session_cookie(response, issued, self.settings)

        return response


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Middleware that adds a unique request ID to each request.

    The request ID is added to:
    - request.state.request_id
    - Response header X-Request-ID
    - Structlog context
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process the request and add request ID.

        Args:
            request: The incoming request
            call_next: The next middleware/handler

        Returns:
            The response with X-Request-ID header
        """
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())

        request.state.request_id = request_id
        request.state.trace_id = request_id  # Alias for error handler

        structlog.contextvars.bind_contextvars(request_id=request_id)

        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id", "tenant_id")

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
