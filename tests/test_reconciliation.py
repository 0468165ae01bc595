# tests/test_reconciliation.py

from __future__ import annotations

import pytest

from offline_tasks.sync.coordinator import SyncCoordinator
from offline_tasks.sync.local_store import SQLiteLocalStore
from offline_tasks.ui_state.reconciliation import Error, Loading, ReconciliationState, Success

from .fakes import wait_until


class _FailingSubscription:
    def __aiter__(self) -> "_FailingSubscription":
        return self

    async def __anext__(self):
        raise RuntimeError("disk on fire")

    def close(self) -> None:
        pass


def _contents(view: ReconciliationState) -> list[str]:
    return [t.content for t in view.current_tasks()]


@pytest.mark.asyncio
async def test_topics_and_archived_topics_are_published_separately(
    local: SQLiteLocalStore, view: ReconciliationState
) -> None:
    await local.insert_topic(name="B", rank=2000)
    await local.insert_topic(name="A", rank=1000)
    await local.insert_topic(name="Old", rank=0, archived=True)

    await view.start()
    try:
        await wait_until(lambda: len(view.topics.value) == 2 and len(view.archived_topics.value) == 1)
        assert [t.name for t in view.topics.value] == ["A", "B"]
        assert [t.name for t in view.archived_topics.value] == ["Old"]

        await local.insert_topic(name="Top", rank=-1000)
        await wait_until(lambda: len(view.topics.value) == 3)
        assert view.topics.value[0].name == "Top"
    finally:
        await view.close()


@pytest.mark.asyncio
async def test_select_topic_goes_loading_then_success(
    local: SQLiteLocalStore, view: ReconciliationState
) -> None:
    topic_id = await local.insert_topic(name="Home", rank=0)
    await local.insert_task(topic_id=topic_id, content="Buy milk", rank=1000)

    states = []
    view.tasks_of_active_topic.subscribe(states.append)

    await view.select_topic(topic_id)
    try:
        await wait_until(lambda: isinstance(view.tasks_of_active_topic.value, Success))
        assert isinstance(states[0], Loading)
        assert _contents(view) == ["Buy milk"]
    finally:
        await view.close()


@pytest.mark.asyncio
async def test_switching_topic_drops_late_updates_of_previous_topic(
    local: SQLiteLocalStore, view: ReconciliationState
) -> None:
    a = await local.insert_topic(name="A", rank=0)
    b = await local.insert_topic(name="B", rank=1000)
    await local.insert_task(topic_id=a, content="a1", rank=1000)
    await local.insert_task(topic_id=b, content="b1", rank=1000)

    await view.select_topic(a)
    await wait_until(lambda: _contents(view) == ["a1"])
    await view.select_topic(b)
    await wait_until(lambda: _contents(view) == ["b1"])

    try:
        # Writes to the old topic must not leak into the new topic's list.
        await local.insert_task(topic_id=a, content="a2", rank=2000)
        await local.insert_task(topic_id=b, content="b2", rank=2000)
        await wait_until(lambda: _contents(view) == ["b1", "b2"])
        assert view.active_topic_id.value == b
    finally:
        await view.close()


@pytest.mark.asyncio
async def test_subscription_failure_publishes_error(
    local: SQLiteLocalStore, view: ReconciliationState, monkeypatch: pytest.MonkeyPatch
) -> None:
    topic_id = await local.insert_topic(name="Broken", rank=0)
    monkeypatch.setattr(local, "subscribe_tasks", lambda _topic_id: _FailingSubscription())

    await view.select_topic(topic_id)
    try:
        await wait_until(lambda: isinstance(view.tasks_of_active_topic.value, Error))
        assert "disk on fire" in view.tasks_of_active_topic.value.reason
    finally:
        await view.close()


@pytest.mark.asyncio
async def test_no_active_topic_means_empty_success(view: ReconciliationState) -> None:
    await view.select_topic(None)
    assert view.tasks_of_active_topic.value == Success()
    assert view.current_tasks() == []


@pytest.mark.asyncio
async def test_refresh_reports_pull_errors(
    view: ReconciliationState, coordinator: SyncCoordinator, remote
) -> None:
    remote.failing = {"select"}
    assert await view.refresh() is False
    assert view.sync_error.value
    assert view.is_syncing.value is False
