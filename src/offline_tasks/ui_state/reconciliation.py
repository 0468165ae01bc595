# src/offline_tasks/ui_state/reconciliation.py

from __future__ import annotations

"""
Published application state.

What the presentation layer reads:
- topics: non-archived topics, rank ascending
- archived_topics: archived topics, rank ascending
- tasks_of_active_topic: Loading | Success(tasks) | Error(reason)
- is_syncing: true only while a pull() runs
- sync_error: reason of the last failed pull (None after a successful one)

Store snapshots drive these values, except while a reorder gesture holds the
sequence's DragGuard: then the gesture's in-memory order is what gets shown,
and the latest store snapshot is republished when the guard returns to IDLE.
"""

import asyncio
import contextlib
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..core.observable import Observable
from ..core.ports import LocalStore, Subscription
from ..sync.coordinator import SyncCoordinator
from ..sync.models import Task, Topic
from .drag_guard import DragGuard, DragPhase

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Loading:
    pass


@dataclass(frozen=True, slots=True)
class Success:
    tasks: list[Task] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class Error:
    reason: str


TaskListState = Loading | Success | Error


class ReconciliationState:
    def __init__(self, local: LocalStore, coordinator: SyncCoordinator) -> None:
        self._local = local
        self._coordinator = coordinator

        self.topics: Observable[list[Topic]] = Observable([], name="topics")
        self.archived_topics: Observable[list[Topic]] = Observable([], name="archived_topics")
        self.tasks_of_active_topic: Observable[TaskListState] = Observable(
            Success(), name="tasks_of_active_topic"
        )
        self.active_topic_id: Observable[int | None] = Observable(None, name="active_topic_id")
        self.is_syncing: Observable[bool] = coordinator.syncing
        self.sync_error: Observable[str | None] = coordinator.sync_error

        self.topic_guard = DragGuard("topics")
        self.task_guard = DragGuard("tasks")
        self.topic_guard.phase.subscribe(self._on_topic_phase)
        self.task_guard.phase.subscribe(self._on_task_phase)

        self._latest_topics: list[Topic] | None = None
        self._latest_tasks: list[Task] | None = None

        self._topic_watchers: list[asyncio.Task[None]] = []
        self._task_watcher: asyncio.Task[None] | None = None
        self._task_sub: Subscription[Task] | None = None

    # ---- lifecycle ----

    async def start(self) -> None:
        if self._topic_watchers:
            return
        for archived in (False, True):
            sub = self._local.subscribe_topics(archived=archived)
            self._topic_watchers.append(
                asyncio.create_task(
                    self._watch_topics(sub, archived=archived),
                    name=f"watch-topics-archived={archived}",
                )
            )
        logger.debug("ReconciliationState started")

    async def close(self) -> None:
        await self._stop_task_watcher()
        watchers, self._topic_watchers = self._topic_watchers, []
        for w in watchers:
            w.cancel()
        for w in watchers:
            with contextlib.suppress(asyncio.CancelledError):
                await w

    async def refresh(self) -> bool:
        """Explicit pull; failure is reported through sync_error."""
        return await self._coordinator.pull()

    # ---- topics ----

    async def _watch_topics(self, sub: Subscription[Topic], *, archived: bool) -> None:
        try:
            async for snapshot in sub:
                if archived:
                    self.archived_topics.set(snapshot)
                    continue
                self._latest_topics = snapshot
                if not self.topic_guard.suppressing:
                    self.topics.set(snapshot)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Topic subscription failed (archived=%s)", archived)
        finally:
            sub.close()

    def _on_topic_phase(self, phase: DragPhase) -> None:
        if phase is DragPhase.IDLE and self._latest_topics is not None:
            self.topics.set(self._latest_topics)

    def show_topics(self, topics: Sequence[Topic]) -> None:
        """Publish an optimistic topic order (used while a gesture holds the guard)."""
        self.topics.set(list(topics))

    # ---- tasks of the active topic ----

    async def select_topic(self, topic_id: int | None) -> None:
        """
        Switch the active topic.

        The previous task subscription is closed and its watcher awaited
        before the new one starts, so no snapshot of the old topic can land
        after this returns.
        """
        await self._stop_task_watcher()
        self.task_guard.reset()
        self._latest_tasks = None
        self.active_topic_id.set(topic_id)

        if topic_id is None:
            self.tasks_of_active_topic.set(Success())
            return

        self.tasks_of_active_topic.set(Loading())
        sub = self._local.subscribe_tasks(topic_id)
        self._task_sub = sub
        self._task_watcher = asyncio.create_task(
            self._watch_tasks(topic_id, sub),
            name=f"watch-tasks-{topic_id}",
        )

    async def _stop_task_watcher(self) -> None:
        sub, self._task_sub = self._task_sub, None
        watcher, self._task_watcher = self._task_watcher, None
        if sub is not None:
            sub.close()
        if watcher is not None:
            watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watcher

    async def _watch_tasks(self, topic_id: int, sub: Subscription[Task]) -> None:
        try:
            async for snapshot in sub:
                if self.active_topic_id.value != topic_id:
                    break
                self._latest_tasks = snapshot
                if not self.task_guard.suppressing:
                    self.tasks_of_active_topic.set(Success(snapshot))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Task subscription for topic id=%s failed: %s", topic_id, e)
            if self.active_topic_id.value == topic_id:
                self.tasks_of_active_topic.set(Error(str(e) or type(e).__name__))
        finally:
            sub.close()

    def _on_task_phase(self, phase: DragPhase) -> None:
        if phase is DragPhase.IDLE and self._latest_tasks is not None:
            self.tasks_of_active_topic.set(Success(self._latest_tasks))

    def show_tasks(self, topic_id: int, tasks: Sequence[Task]) -> bool:
        """Publish an optimistic task order; ignored if topic_id is no longer active."""
        if self.active_topic_id.value != topic_id:
            return False
        self.tasks_of_active_topic.set(Success(list(tasks)))
        return True

    def current_tasks(self) -> list[Task]:
        state = self.tasks_of_active_topic.value
        return list(state.tasks) if isinstance(state, Success) else []
