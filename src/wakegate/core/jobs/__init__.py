"""Background job processing with ARQ.

The idle reaper can run as an ARQ cron job in a dedicated worker when the
tenant registry is shared through Redis.
"""

from wakegate.core.jobs.worker import WorkerSettings


__all__ = [
    "WorkerSettings",
]
