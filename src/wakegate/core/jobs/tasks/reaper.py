"""Idle reaping task.

Runs the same sweep as the in-app reaper, for deployments that keep the
registry in Redis and reap from a dedicated worker process.
"""

from typing import Any

import structlog

from wakegate.modules.tenants.reaper import IdleReaper


log = structlog.get_logger()


async def reap_idle_tenants(ctx: dict[str, Any]) -> dict[str, list[str]]:
    """Reap tenants idle past the threshold.

    Args:
        ctx: Worker context containing the ``reaper``

    Returns:
        Reaped, skipped and health-checked tenant ids
    """
    reaper: IdleReaper = ctx["reaper"]
    result = await reaper.sweep()

    log.info(
        "reap_idle_tenants_complete",
        reaped=len(result.reaped),
        skipped=len(result.skipped),
        checked=len(result.checked),
    )
    return result.to_dict()
