"""Shared helpers for the ARQ worker."""

from arq.connections import RedisSettings

from wakegate.config import Settings, settings as default_settings


def get_redis_settings(settings: Settings | None = None) -> RedisSettings:
    """ARQ Redis settings from the application's ``redis_url``.

    Falls back to ARQ's defaults (localhost:6379) when no URL is configured.
    """
    cfg = settings or default_settings
    if cfg.redis_url is None:
        return RedisSettings()
    return RedisSettings.from_dsn(str(cfg.redis_url))
