# src/offline_tasks/ui_state/ordering.py

from __future__ import annotations

"""
Drag-and-drop reordering for the topic list and the active topic's task list.

A gesture is a run of move events on one sequence:
1. the first move takes the sequence's DragGuard (store snapshots stop driving
   the displayed order),
2. every move is applied to the displayed list immediately,
3. a debounce timer restarts on each move; when it fires, the final positions
   of the moved items are persisted (one rank update each, or a rebalance on
   collision),
4. after a short settle period the guard is released and store snapshots take
   over again.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any, TypeVar

from ..core.errors import OutOfBoundsError
from ..core.ports import LocalStore
from ..sync.coordinator import SyncCoordinator
from ..sync.ranks import needs_rebalance, rank_for_move
from .debounce import DebouncedAction
from .drag_guard import DragGuard, DragPhase
from .reconciliation import ReconciliationState

logger = logging.getLogger(__name__)

T = TypeVar("T")


def move_item(items: Sequence[T], from_index: int, to_index: int) -> list[T]:
    """Return a copy of items with items[from_index] reinserted at to_index."""
    n = len(items)
    if not (0 <= from_index < n and 0 <= to_index < n):
        raise OutOfBoundsError(f"move {from_index}->{to_index} is out of range for {n} item(s)")
    out = list(items)
    out.insert(to_index, out.pop(from_index))
    return out


def _merged_order(displayed: Sequence[Any], stored: Sequence[Any]) -> list[Any]:
    """
    Stored records in displayed order.

    Records no longer stored are dropped. Stored records missing from the
    display go before the first displayed record with a higher stored rank.
    """
    by_id = {item.id: item for item in stored}
    order = [by_id[item.id] for item in displayed if item.id in by_id]
    shown = {item.id for item in order}
    for extra in sorted(stored, key=lambda s: (s.rank, s.id)):
        if extra.id in shown:
            continue
        pos = next((i for i, item in enumerate(order) if item.rank > extra.rank), len(order))
        order.insert(pos, extra)
        shown.add(extra.id)
    return order


@dataclass(slots=True)
class _Gesture:
    epoch: int
    items: list[Any]
    moved: list[int] = field(default_factory=list)
    topic_id: int | None = None

    def record_move(self, item_id: int) -> None:
        if item_id in self.moved:
            self.moved.remove(item_id)
        self.moved.append(item_id)


class OrderingController:
    def __init__(
        self,
        local: LocalStore,
        coordinator: SyncCoordinator,
        state: ReconciliationState,
        *,
        debounce_seconds: float = 0.5,
        settle_seconds: float = 0.1,
    ) -> None:
        self._local = local
        self._coordinator = coordinator
        self._state = state
        self._settle = max(0.0, float(settle_seconds))

        self._topic_gesture: _Gesture | None = None
        self._task_gesture: _Gesture | None = None
        self._topic_lock = asyncio.Lock()
        self._task_lock = asyncio.Lock()

        self._topic_debounce = DebouncedAction(debounce_seconds, self._persist_topics, name="topic-reorder")
        self._task_debounce = DebouncedAction(debounce_seconds, self._persist_tasks, name="task-reorder")

    # ---- gestures ----

    @staticmethod
    def _gesture_for(guard: DragGuard, gesture: _Gesture | None, topic_id: int | None) -> _Gesture | None:
        # A gesture continues only while its guard is still DRAGGING in the same epoch.
        if (
            gesture is not None
            and gesture.epoch == guard.epoch
            and gesture.topic_id == topic_id
            and guard.phase.value is DragPhase.DRAGGING
        ):
            return gesture
        return None

    def move_topic(self, from_index: int, to_index: int) -> bool:
        """Move a topic in the displayed list. False (and no change) on bad indices."""
        try:
            items = move_item(self._state.topics.value, from_index, to_index)
        except OutOfBoundsError as e:
            logger.warning("Topic move rejected: %s", e)
            return False
        if from_index == to_index:
            return True

        guard = self._state.topic_guard
        gesture = self._gesture_for(guard, self._topic_gesture, None)
        if gesture is None:
            gesture = _Gesture(epoch=guard.begin(), items=items)
            self._topic_gesture = gesture
        gesture.items = items
        gesture.record_move(items[to_index].id)

        self._state.show_topics(items)
        self._topic_debounce.trigger()
        return True

    def move_task(self, from_index: int, to_index: int) -> bool:
        """Move a task of the active topic in the displayed list. False on bad indices."""
        topic_id = self._state.active_topic_id.value
        if topic_id is None:
            logger.warning("Task move rejected: no active topic")
            return False
        try:
            items = move_item(self._state.current_tasks(), from_index, to_index)
        except OutOfBoundsError as e:
            logger.warning("Task move rejected: %s", e)
            return False
        if from_index == to_index:
            return True

        guard = self._state.task_guard
        gesture = self._gesture_for(guard, self._task_gesture, topic_id)
        if gesture is None:
            gesture = _Gesture(epoch=guard.begin(), items=items, topic_id=topic_id)
            self._task_gesture = gesture
        gesture.items = items
        gesture.record_move(items[to_index].id)

        self._state.show_tasks(topic_id, items)
        self._task_debounce.trigger()
        return True

    async def flush(self) -> None:
        """Persist any pending gesture now and wait for it (shutdown, tests)."""
        await self._topic_debounce.flush()
        await self._task_debounce.flush()

    # ---- persistence ----

    async def _persist_topics(self) -> None:
        gesture = self._topic_gesture
        if gesture is None:
            return
        guard = self._state.topic_guard
        guard.settling(gesture.epoch)
        try:
            async with self._topic_lock:
                stored = await self._local.list_topics(archived=False)
                ranks = await self._apply_ranks(
                    gesture.items,
                    gesture.moved,
                    stored,
                    set_rank=self._coordinator.set_topic_rank,
                    rebalance=self._coordinator.rebalance_topics,
                )
            gesture.items = [replace(t, rank=ranks.get(t.id, t.rank)) for t in gesture.items]
            if guard.epoch == gesture.epoch:
                self._state.show_topics(gesture.items)
        finally:
            await asyncio.sleep(self._settle)
            guard.release(gesture.epoch)
            if self._topic_gesture is gesture:
                self._topic_gesture = None

    async def _persist_tasks(self) -> None:
        gesture = self._task_gesture
        if gesture is None or gesture.topic_id is None:
            return
        topic_id = gesture.topic_id
        guard = self._state.task_guard
        guard.settling(gesture.epoch)
        try:
            async with self._task_lock:
                stored = await self._local.list_tasks(topic_id)

                async def _rebalance(ordered: Sequence[Any]) -> dict[int, int]:
                    return await self._coordinator.rebalance(topic_id, ordered)

                ranks = await self._apply_ranks(
                    gesture.items,
                    gesture.moved,
                    stored,
                    set_rank=self._coordinator.set_task_rank,
                    rebalance=_rebalance,
                )
            gesture.items = [replace(t, rank=ranks.get(t.id, t.rank)) for t in gesture.items]
            if guard.epoch == gesture.epoch:
                self._state.show_tasks(topic_id, gesture.items)
        finally:
            await asyncio.sleep(self._settle)
            guard.release(gesture.epoch)
            if self._task_gesture is gesture:
                self._task_gesture = None

    async def _apply_ranks(
        self,
        displayed: Sequence[Any],
        moved: Sequence[int],
        stored: Sequence[Any],
        *,
        set_rank: Callable[[int, int], Awaitable[Any]],
        rebalance: Callable[[Sequence[Any]], Awaitable[dict[int, int]]],
    ) -> dict[int, int]:
        """
        Give each moved item a rank between its final neighbours.

        Neighbour ranks come from the store (the displayed copies may be stale).
        Items deleted since the gesture started are left out; items stored since
        then are slotted in by rank. Falls back to a rebalance of the whole
        sequence on a rank collision.
        """
        order = _merged_order(displayed, stored)
        ids = [item.id for item in order]
        working = {item.id: item.rank for item in order}
        changed: dict[int, int] = {}

        for item_id in moved:
            if item_id not in working:
                continue
            idx = ids.index(item_id)
            prev_rank = working[ids[idx - 1]] if idx > 0 else None
            next_rank = working[ids[idx + 1]] if idx + 1 < len(ids) else None

            current = working[item_id]
            if (prev_rank is None or prev_rank < current) and (next_rank is None or current < next_rank):
                continue

            rank = rank_for_move(prev_rank, next_rank)
            if rank is None:
                logger.info("Rank collision between %s and %s; rebalancing %d item(s)", prev_rank, next_rank, len(order))
                return await rebalance(order)
            working[item_id] = rank
            changed[item_id] = rank

        if needs_rebalance([working[i] for i in ids]):
            logger.info("Displayed order not representable by ranks; rebalancing %d item(s)", len(order))
            return await rebalance(order)

        for item_id, rank in changed.items():
            await set_rank(item_id, rank)
        return working
