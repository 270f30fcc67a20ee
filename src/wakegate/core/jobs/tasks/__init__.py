"""Background job tasks.

This package contains all background job implementations.
Each task module should define async functions that can be
registered in the worker.
"""

from wakegate.core.jobs.tasks.reaper import reap_idle_tenants


__all__ = [
    "reap_idle_tenants",
]
