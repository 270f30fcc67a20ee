"""Access logging for gateway requests.

Every request other than health and documentation traffic produces one
``request_completed`` entry, labelled with an outcome that separates the
gateway's own rejections from upstream trouble and from wakes the client
still has to wait for. The request ID comes from the structlog context
bound by RequestIdMiddleware.
"""

import time

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from wakegate.core.constants import WAKE_REQUIRED_HEADER


logger = structlog.get_logger()

QUIET_PATHS = frozenset({"/health", "/ready", "/docs", "/redoc", "/openapi.json"})

OUTCOME_LEVELS = {
    "ok": "info",
    "wake_required": "info",
    "rejected": "warning",
    "upstream_unreachable": "warning",
    "unavailable": "warning",
    "error": "error",
}


def classify(response: Response) -> str:
    """Label a response for the access log.

    A wake-required answer is a normal step of the wake protocol, so it is
    told apart from other 401s.
    """
    status = response.status_code
    if WAKE_REQUIRED_HEADER in response.headers:
        return "wake_required"
    if status == 502:
        return "upstream_unreachable"
    if status == 503:
        return "unavailable"
    if status >= 500:
        return "error"
    if status >= 400:
        return "rejected"
    return "ok"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one structured entry per proxied or API request."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception(
                "request_failed",
                method=request.method,
                path=path,
                duration_ms=_elapsed_ms(started),
                error=str(exc),
            )
            raise

        outcome = classify(response)
        log = getattr(logger, OUTCOME_LEVELS[outcome])
        log(
            "request_completed",
            method=request.method,
            path=path,
            status_code=response.status_code,
            outcome=outcome,
            duration_ms=_elapsed_ms(started),
            tenant_id=getattr(request.state, "tenant_id", None),
            token_refreshed=getattr(request.state, "refreshed_token", None) is not None,
        )
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
