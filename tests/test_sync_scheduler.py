# tests/test_sync_scheduler.py

from __future__ import annotations

import asyncio

import pytest

from offline_tasks.core.observable import Observable
from offline_tasks.sync.scheduler import run_sync_loop


class FakeCoordinator:
    """Counts sync() calls; the first one crashes."""

    def __init__(self) -> None:
        self.calls = 0
        self.sync_error: Observable[str | None] = Observable(None)

    async def sync(self) -> bool:
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("first sync explodes")
        return True


@pytest.mark.asyncio
async def test_sync_loop_survives_failures_and_repeats() -> None:
    coordinator = FakeCoordinator()

    runner = asyncio.create_task(run_sync_loop(coordinator, interval_seconds=0.1))

    await asyncio.sleep(0.35)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert coordinator.calls >= 3


@pytest.mark.asyncio
async def test_sync_loop_can_wait_before_first_run() -> None:
    coordinator = FakeCoordinator()

    runner = asyncio.create_task(
        run_sync_loop(coordinator, interval_seconds=0.2, run_immediately=False)
    )

    await asyncio.sleep(0.05)
    assert coordinator.calls == 0

    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner
