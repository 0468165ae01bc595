# tests/test_debounce.py

from __future__ import annotations

import asyncio
import logging

import pytest

from offline_tasks.ui_state.debounce import DebouncedAction
from offline_tasks.ui_state.drag_guard import DragGuard, DragPhase


@pytest.mark.asyncio
async def test_only_the_last_trigger_runs() -> None:
    runs: list[int] = []

    async def action() -> None:
        runs.append(1)

    d = DebouncedAction(0.05, action)
    for _ in range(5):
        d.trigger()
        await asyncio.sleep(0.01)

    assert runs == []
    await asyncio.sleep(0.15)
    assert runs == [1]
    assert not d.pending


@pytest.mark.asyncio
async def test_cancel_drops_the_scheduled_run() -> None:
    runs: list[int] = []

    async def action() -> None:
        runs.append(1)

    d = DebouncedAction(0.02, action)
    d.trigger()
    d.cancel()
    await asyncio.sleep(0.08)
    assert runs == []


@pytest.mark.asyncio
async def test_running_action_is_not_cancelled_by_new_trigger() -> None:
    release = asyncio.Event()
    finished: list[str] = []

    async def action() -> None:
        await release.wait()
        finished.append("run")

    d = DebouncedAction(0.0, action)
    d.trigger()
    await asyncio.sleep(0.02)
    assert d.running

    d.trigger()
    release.set()
    await d.flush()

    assert finished == ["run", "run"]


@pytest.mark.asyncio
async def test_flush_runs_pending_action_now() -> None:
    runs: list[int] = []

    async def action() -> None:
        runs.append(1)

    d = DebouncedAction(10.0, action)
    d.trigger()
    await d.flush()

    assert runs == [1]
    assert not d.pending


@pytest.mark.asyncio
async def test_failing_action_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    async def action() -> None:
        raise RuntimeError("boom")

    d = DebouncedAction(0.0, action, name="failing")
    with caplog.at_level(logging.ERROR):
        d.trigger()
        await asyncio.sleep(0.02)
        await d.flush()

    assert any("failing: action failed" in r.getMessage() for r in caplog.records)


def test_drag_guard_epochs() -> None:
    guard = DragGuard("t")
    assert guard.phase.value is DragPhase.IDLE
    assert not guard.suppressing

    first = guard.begin()
    assert guard.phase.value is DragPhase.DRAGGING
    assert guard.suppressing

    second = guard.begin()
    assert not guard.settling(first)
    assert not guard.release(first)
    assert guard.phase.value is DragPhase.DRAGGING

    assert guard.settling(second)
    assert guard.phase.value is DragPhase.SETTLING
    assert guard.suppressing
    assert guard.release(second)
    assert guard.phase.value is DragPhase.IDLE


def test_drag_guard_reset_invalidates_running_gesture() -> None:
    guard = DragGuard("t")
    phases: list[DragPhase] = []
    guard.phase.subscribe(phases.append)

    epoch = guard.begin()
    guard.reset()

    assert not guard.release(epoch)
    assert phases == [DragPhase.DRAGGING, DragPhase.IDLE]
