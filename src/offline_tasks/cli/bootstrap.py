# src/offline_tasks/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- constructs the stores explicitly and wires them into AppState,
- owns their lifetime (shutdown_state closes what create_initial_state opened).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from ..config import get_settings
from ..core.ports import RemoteStore
from ..core.state import AppState
from ..sync.coordinator import SyncCoordinator
from ..sync.local_store import SQLiteLocalStore
from ..sync.offline import OfflineRemoteStore
from ..sync.remote_store import PostgrestRemoteStore
from ..sync.scheduler import run_sync_loop
from ..ui_state.ordering import OrderingController
from ..ui_state.reconciliation import ReconciliationState

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def create_remote_store(settings) -> RemoteStore:
    if not getattr(settings, "remote_enabled", False):
        logger.info("No remote configured; running offline (all changes stay pending)")
        return OfflineRemoteStore()
    return PostgrestRemoteStore.from_settings(settings)


def create_initial_state(*, settings=None, remote: RemoteStore | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings (and the remote store) injectable makes the app easier to
    test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    local = SQLiteLocalStore(settings.db_path)
    if remote is None:
        remote = create_remote_store(settings)

    coordinator = SyncCoordinator(local, remote)
    view = ReconciliationState(local, coordinator)
    ordering = OrderingController(
        local,
        coordinator,
        view,
        debounce_seconds=float(getattr(settings, "reorder_debounce_seconds", 0.5)),
        settle_seconds=float(getattr(settings, "reorder_settle_seconds", 0.1)),
    )

    return AppState(
        settings=settings,
        local=local,
        remote=remote,
        coordinator=coordinator,
        view=view,
        ordering=ordering,
    )


async def start_state(state: AppState) -> None:
    """Start publishing state and, if enabled, the periodic sync loop."""
    await state.view.start()

    interval = float(getattr(state.settings, "sync_interval_seconds", 0.0) or 0.0)
    if interval > 0:
        state.sync_task = asyncio.create_task(
            run_sync_loop(state.coordinator, interval_seconds=interval),
            name="sync-loop",
        )
        logger.info("Sync loop started (every %.0fs)", interval)
    else:
        logger.info("Sync loop disabled; use /sync to sync manually")


async def shutdown_state(state: AppState) -> None:
    """Best-effort shutdown: persist pending reorders, finish pushes, close stores."""
    if state.sync_task is not None:
        state.sync_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await state.sync_task
        state.sync_task = None

    try:
        await state.ordering.flush()
        await state.coordinator.wait_idle()
    except Exception:
        logger.exception("Failed to finish pending work on shutdown.")

    await state.view.close()

    close = getattr(state.local, "close", None)
    if callable(close):
        close()

    try:
        await state.remote.aclose()
    except Exception:
        logger.debug("Remote store close failed.", exc_info=True)
