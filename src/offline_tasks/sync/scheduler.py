# src/offline_tasks/sync/scheduler.py

from __future__ import annotations

"""
Periodic sync loop.

Every interval_seconds:
- push everything still marked sync_pending (and failed remote deletes),
- pull the remote tables.

Failures are logged and the loop keeps going. To stop it, cancel the task.
"""

import asyncio
import logging

from .coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


async def run_sync_loop(
        coordinator: SyncCoordinator,
        *,
        interval_seconds: float = 60.0,
        run_immediately: bool = True,
) -> None:
    sleep_s = max(0.1, float(interval_seconds))

    if not run_immediately:
        await asyncio.sleep(sleep_s)

    while True:
        try:
            ok = await coordinator.sync()
            if ok:
                logger.debug("Periodic sync done")
            else:
                logger.debug("Periodic sync incomplete: %s", coordinator.sync_error.value)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Periodic sync failed")

        await asyncio.sleep(sleep_s)
