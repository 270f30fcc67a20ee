"""Logging module with structured logging and request tracking."""

import logging

import structlog

from wakegate.core.logging.middleware import RequestLoggingMiddleware, classify


def configure_logging(*, json_logs: bool, log_level: str) -> None:
    """Configure structlog for the process.

    Args:
        json_logs: Render JSON lines (production) instead of console output
        log_level: Minimum level name, e.g. "INFO" or "DEBUG"
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            (
                structlog.processors.JSONRenderer()
                if json_logs
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping().get(log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


__all__ = [
    "RequestLoggingMiddleware",
    "classify",
    "configure_logging",
]
