# tests/test_scenario.py

from __future__ import annotations

from types import SimpleNamespace

import pytest

from offline_tasks.cli.bootstrap import create_initial_state, shutdown_state, start_state
from offline_tasks.sync.coordinator import SyncCoordinator
from offline_tasks.sync.local_store import SQLiteLocalStore
from offline_tasks.sync.models import RemoteTable
from offline_tasks.sync.offline import OfflineRemoteStore

from .fakes import FakeRemoteStore


@pytest.mark.asyncio
async def test_work_home_milk_lifecycle(
    local: SQLiteLocalStore, remote: FakeRemoteStore, coordinator: SyncCoordinator
) -> None:
    work = await coordinator.create_topic("Work")
    assert work.rank == 0
    home = await coordinator.create_topic("Home")
    assert home.rank == -1000
    assert [t.name for t in await local.list_topics(archived=False)] == ["Home", "Work"]

    milk = await coordinator.create_task("Buy milk", home.id)
    await coordinator.wait_idle()

    pending_while_pushing: list[bool] = []

    async def on_call(op: str, table: RemoteTable) -> None:
        if op == "update" and table == RemoteTable.TASKS:
            pending_while_pushing.append((await local.get_task(milk.id)).sync_pending)

    remote.on_call = on_call
    toggled = await coordinator.toggle_task_done(milk.id)
    remote.on_call = None

    assert toggled.done is True
    assert pending_while_pushing == [True]
    assert toggled.sync_pending is False

    home_remote_id = (await local.get_topic(home.id)).remote_id
    milk_remote_id = (await local.get_task(milk.id)).remote_id
    assert home_remote_id is not None and milk_remote_id is not None

    assert await coordinator.delete_topic(home.id) is True

    assert await local.get_task(milk.id) is None
    deletes = [(c.table, c.filters) for c in remote.calls_for("delete")]
    assert deletes == [
        (RemoteTable.TASKS, {"id": milk_remote_id}),
        (RemoteTable.TOPICS, {"id": home_remote_id}),
    ]


@pytest.mark.asyncio
async def test_bootstrap_wires_offline_remote_and_shuts_down(settings: SimpleNamespace) -> None:
    state = create_initial_state(settings=settings)
    assert isinstance(state.remote, OfflineRemoteStore)

    await start_state(state)
    assert state.sync_task is None

    topic = await state.coordinator.create_topic("Offline")
    await shutdown_state(state)

    stored = await state.local.get_topic(topic.id)
    assert stored.sync_pending is True
    assert stored.remote_id is None


@pytest.mark.asyncio
async def test_bootstrap_accepts_injected_remote(settings: SimpleNamespace) -> None:
    remote = FakeRemoteStore()
    state = create_initial_state(settings=settings, remote=remote)

    await start_state(state)
    await state.coordinator.create_topic("Online")
    await shutdown_state(state)

    assert remote.closed is True
    assert [row["name"] for row in remote.tables[RemoteTable.TOPICS].values()] == ["Online"]
