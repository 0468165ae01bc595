# src/offline_tasks/sync/coordinator.py

from __future__ import annotations

"""
Sync coordinator.

Every mutation is local-first:
- write the LocalStore (marks the record sync_pending),
- then push the changed fields to the RemoteStore if the record is bound,
- clear sync_pending on success, keep it on failure.

Remote failures are logged and never propagate; the local write always stands.
pull() merges the remote tables into the LocalStore keyed by remote id.
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any

from ..core.errors import LocalIntegrityError, RemoteTransientError
from ..core.observable import Observable
from ..core.ports import LocalStore, RemoteRow, RemoteStore
from .models import (
    RANK_COLUMN,
    REMOTE_ID_COLUMN,
    TASK_WIRE_FIELDS,
    TOPIC_WIRE_FIELDS,
    RemoteTable,
    Task,
    Topic,
    task_from_row,
    task_to_row,
    to_wire,
    topic_from_row,
    topic_to_row,
)
from .ranks import rank_for_insert_at_bottom, rank_for_insert_at_top, rebalanced_ranks

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _Records:
    """How to read/write one record type locally, and which fields travel."""

    table: RemoteTable
    get: Callable[[int], Awaitable[Any]]
    update: Callable[[Any], Awaitable[None]]
    fields: tuple[str, ...]

    def values(self, record: Any) -> dict[str, Any]:
        return {f: getattr(record, f) for f in self.fields}


class SyncCoordinator:
    def __init__(self, local: LocalStore, remote: RemoteStore) -> None:
        self._local = local
        self._remote = remote

        self.syncing: Observable[bool] = Observable(False, name="syncing")
        self.sync_error: Observable[str | None] = Observable(None, name="sync_error")

        self._topics = _Records(
            RemoteTable.TOPICS, local.get_topic, local.update_topic, tuple(TOPIC_WIRE_FIELDS)
        )
        self._tasks = _Records(
            RemoteTable.TASKS, local.get_task, local.update_task, tuple(TASK_WIRE_FIELDS)
        )

        # Local read-modify-write sections. Never held across a remote call.
        self._write_lock = asyncio.Lock()
        # (table, local id) -> number of pushes currently running for that record.
        self._in_flight: dict[tuple[RemoteTable, int], int] = {}
        # Background create-pushes, by record.
        self._creating: dict[tuple[RemoteTable, int], asyncio.Task[bool]] = {}
        # (table, remote id) -> remote delete confirmed. Pull never re-inserts these.
        self._tombstones: dict[tuple[RemoteTable, int], bool] = {}
        # Result of the pull currently running; overlapping pulls share it.
        self._pull_result: asyncio.Future[bool] | None = None

    # ---- bookkeeping ----

    @contextlib.contextmanager
    def _pushing(self, table: RemoteTable, local_id: int) -> Iterator[None]:
        key = (table, local_id)
        self._in_flight[key] = self._in_flight.get(key, 0) + 1
        try:
            yield
        finally:
            n = self._in_flight[key] - 1
            if n:
                self._in_flight[key] = n
            else:
                del self._in_flight[key]

    def _is_in_flight(self, table: RemoteTable, local_id: int) -> bool:
        key = (table, local_id)
        return key in self._in_flight or key in self._creating

    def _spawn_create(self, table: RemoteTable, local_id: int, coro: Awaitable[bool]) -> None:
        task = asyncio.ensure_future(coro)
        key = (table, local_id)
        self._creating[key] = task

        def _done(t: asyncio.Task[bool]) -> None:
            if self._creating.get(key) is t:
                del self._creating[key]
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error("Background push of %s id=%s crashed", table.value, local_id, exc_info=exc)

        task.add_done_callback(_done)

    async def wait_idle(self) -> None:
        """Wait until every background create-push has finished."""
        while self._creating:
            await asyncio.wait(list(self._creating.values()))

    @property
    def pending_remote_deletes(self) -> int:
        return sum(1 for confirmed in self._tombstones.values() if not confirmed)

    # ---- remote helpers ----

    async def _push_fields(
        self,
        records: _Records,
        local_id: int,
        remote_id: int,
        changes: Mapping[str, Any],
    ) -> bool:
        try:
            await self._remote.update(
                records.table, {REMOTE_ID_COLUMN: remote_id}, to_wire(records.table, changes)
            )
        except RemoteTransientError as e:
            logger.warning(
                "Push %s id=%s remote_id=%s fields=%s failed: %s",
                records.table.value,
                local_id,
                remote_id,
                sorted(changes),
                e,
            )
            return False
        logger.debug(
            "Pushed %s id=%s remote_id=%s fields=%s", records.table.value, local_id, remote_id, sorted(changes)
        )
        return True

    async def _delete_remote(self, table: RemoteTable, remote_id: int) -> bool:
        self._tombstones.setdefault((table, remote_id), False)
        try:
            await self._remote.delete(table, {REMOTE_ID_COLUMN: remote_id})
        except RemoteTransientError as e:
            logger.warning("Remote delete %s remote_id=%s failed: %s", table.value, remote_id, e)
            return False
        self._tombstones[(table, remote_id)] = True
        logger.debug("Remote delete %s remote_id=%s done", table.value, remote_id)
        return True

    async def _settle(
        self,
        records: _Records,
        local_id: int,
        pushed: Mapping[str, Any],
        ok: bool,
    ) -> Any | None:
        """
        Update sync_pending after a push.

        Cleared only when the push succeeded, the pushed values are still the
        local values and no other push for this record is running.
        """
        async with self._write_lock:
            current = await records.get(local_id)
            if current is None:
                return None
            if not ok:
                pending = True
            elif self._in_flight.get((records.table, local_id), 0) <= 1 and all(
                getattr(current, k) == v for k, v in pushed.items()
            ):
                pending = False
            else:
                return current
            if current.sync_pending != pending:
                current = replace(current, sync_pending=pending)
                await records.update(current)
            return current

    async def _mutate(self, records: _Records, local_id: int, changes: dict[str, Any]) -> Any | None:
        with self._pushing(records.table, local_id):
            async with self._write_lock:
                current = await records.get(local_id)
                if current is None:
                    logger.warning(
                        "%s id=%s not found; update %s ignored", records.table.value, local_id, sorted(changes)
                    )
                    return None
                updated = replace(current, **changes, sync_pending=True)
                try:
                    await records.update(updated)
                except LocalIntegrityError as e:
                    logger.warning("Local update of %s id=%s failed: %s", records.table.value, local_id, e)
                    return None

            if updated.remote_id is None:
                logger.debug("%s id=%s not bound yet; left pending", records.table.value, local_id)
                return updated

            ok = await self._push_fields(records, local_id, updated.remote_id, changes)
            settled = await self._settle(records, local_id, changes, ok)
            return settled if settled is not None else updated

    async def _bind_created(
        self,
        records: _Records,
        local_id: int,
        remote_id: int,
        pushed: Mapping[str, Any],
    ) -> bool:
        """Attach a freshly inserted remote row to its local record."""
        async with self._write_lock:
            current = await records.get(local_id)
            if current is not None:
                try:
                    await records.update(replace(current, remote_id=remote_id))
                except LocalIntegrityError as e:
                    logger.warning(
                        "Binding %s id=%s to remote_id=%s failed: %s", records.table.value, local_id, remote_id, e
                    )
                    return False

        if current is None:
            # Deleted locally while the insert was in flight: remove the new remote row too.
            logger.info(
                "%s id=%s deleted before its push finished; deleting remote_id=%s",
                records.table.value,
                local_id,
                remote_id,
            )
            await self._delete_remote(records.table, remote_id)
            return False

        latest = records.values(current)
        changes = {k: v for k, v in latest.items() if pushed.get(k) != v}
        ok = True
        if changes:
            ok = await self._push_fields(records, local_id, remote_id, changes)
        settled = await self._settle(records, local_id, latest, ok)
        logger.debug("%s id=%s bound to remote_id=%s", records.table.value, local_id, remote_id)
        return settled is not None and not settled.sync_pending

    async def _insert_remote(self, table: RemoteTable, local_id: int, row: RemoteRow) -> int | None:
        try:
            created = await self._remote.insert(table, row)
            return int(created[REMOTE_ID_COLUMN])
        except RemoteTransientError as e:
            logger.warning("Push of new %s id=%s failed: %s", table.value, local_id, e)
        except (KeyError, TypeError, ValueError):
            logger.warning("Insert into %s for id=%s returned no usable id", table.value, local_id)
        return None

    async def _push_topic(self, topic_id: int) -> bool:
        """Create-or-update push of one topic. True when it ends up confirmed."""
        with self._pushing(RemoteTable.TOPICS, topic_id):
            topic: Topic | None = await self._local.get_topic(topic_id)
            if topic is None:
                return False

            if topic.remote_id is not None:
                values = self._topics.values(topic)
                ok = await self._push_fields(self._topics, topic_id, topic.remote_id, values)
                settled = await self._settle(self._topics, topic_id, values, ok)
                return settled is not None and not settled.sync_pending

            remote_id = await self._insert_remote(RemoteTable.TOPICS, topic_id, topic_to_row(topic))
            if remote_id is None:
                return False
            return await self._bind_created(self._topics, topic_id, remote_id, self._topics.values(topic))

    async def _push_task(self, task_id: int) -> bool:
        """Create-or-update push of one task. True when it ends up confirmed."""
        with self._pushing(RemoteTable.TASKS, task_id):
            task: Task | None = await self._local.get_task(task_id)
            if task is None:
                return False

            if task.remote_id is not None:
                values = self._tasks.values(task)
                ok = await self._push_fields(self._tasks, task_id, task.remote_id, values)
                settled = await self._settle(self._tasks, task_id, values, ok)
                return settled is not None and not settled.sync_pending

            parent_push = self._creating.get((RemoteTable.TOPICS, task.topic_id))
            if parent_push is not None:
                await asyncio.wait({parent_push})

            topic = await self._local.get_topic(task.topic_id)
            if topic is None or topic.remote_id is None:
                logger.debug("Task id=%s waits for topic id=%s to be pushed", task_id, task.topic_id)
                return False

            row = task_to_row(task, remote_topic_id=topic.remote_id)
            remote_id = await self._insert_remote(RemoteTable.TASKS, task_id, row)
            if remote_id is None:
                return False
            return await self._bind_created(self._tasks, task_id, remote_id, self._tasks.values(task))

    # ---- pull ----

    async def pull(self) -> bool:
        """
        Merge the remote tables into the LocalStore.

        Topics first (update-if-bound-else-insert by remote id), then tasks,
        whose remote topic reference is resolved through the topics just merged.
        Returns False when the remote could not be read (reason in sync_error).
        A pull started while another one runs waits for it and returns its result.
        """
        running = self._pull_result
        if running is not None:
            logger.debug("Pull already running; waiting for it")
            return await asyncio.shield(running)

        result: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._pull_result = result
        ok = False
        self.syncing.set(True)
        try:
            ok = await self._pull_once()
            return ok
        finally:
            self._pull_result = None
            self.syncing.set(False)
            result.set_result(ok)

    async def _pull_once(self) -> bool:
        try:
            topic_rows = await self._remote.select(RemoteTable.TOPICS, order_by=RANK_COLUMN)
            task_rows = await self._remote.select(RemoteTable.TASKS, order_by=RANK_COLUMN)
        except RemoteTransientError as e:
            logger.warning("Pull failed: %s", e)
            self.sync_error.set(str(e))
            return False

        # Creates started before the fetch may already be in the rows: bind them first.
        await self.wait_idle()

        topic_map = await self._merge_topics(topic_rows)
        merged_tasks, skipped = await self._merge_tasks(task_rows, topic_map)

        self._prune_tombstones(RemoteTable.TOPICS, self._remote_ids(topic_rows))
        self._prune_tombstones(RemoteTable.TASKS, self._remote_ids(task_rows))

        self.sync_error.set(None)
        logger.info(
            "Pull done: topics=%d tasks=%d skipped_tasks=%d",
            len(topic_map),
            merged_tasks,
            skipped,
        )
        return True

    @staticmethod
    def _remote_ids(rows: Sequence[RemoteRow]) -> set[int]:
        out: set[int] = set()
        for row in rows:
            with contextlib.suppress(KeyError, TypeError, ValueError):
                out.add(int(row[REMOTE_ID_COLUMN]))
        return out

    def _prune_tombstones(self, table: RemoteTable, seen: set[int]) -> None:
        for key in list(self._tombstones):
            if key[0] == table and key[1] not in seen:
                del self._tombstones[key]

    async def _merge_topics(self, rows: Sequence[RemoteRow]) -> dict[int, int]:
        mapping: dict[int, int] = {}
        for row in rows:
            try:
                remote = topic_from_row(row)
            except (TypeError, ValueError) as e:
                logger.warning("Skipping malformed remote topic row: %s", e)
                continue

            async with self._write_lock:
                existing = await self._local.get_topic_by_remote_id(remote.remote_id)
                if (RemoteTable.TOPICS, remote.remote_id) in self._tombstones:
                    continue
                try:
                    if existing is None:
                        local_id = await self._local.insert_topic(
                            name=remote.name,
                            rank=remote.rank,
                            archived=remote.archived,
                            remote_id=remote.remote_id,
                            sync_pending=False,
                        )
                    else:
                        local_id = existing.id
                        if self._is_in_flight(RemoteTable.TOPICS, existing.id):
                            logger.debug("Topic id=%s has a push in flight; local wins", existing.id)
                        else:
                            merged = replace(
                                existing,
                                name=remote.name,
                                rank=remote.rank,
                                archived=remote.archived,
                                sync_pending=False,
                            )
                            if merged != existing:
                                await self._local.update_topic(merged)
                except LocalIntegrityError as e:
                    logger.warning("Merging remote topic %s failed: %s", remote.remote_id, e)
                    continue
            mapping[remote.remote_id] = local_id
        return mapping

    async def _merge_tasks(self, rows: Sequence[RemoteRow], topic_map: Mapping[int, int]) -> tuple[int, int]:
        merged = 0
        skipped = 0
        for row in rows:
            try:
                remote = task_from_row(row)
            except (TypeError, ValueError) as e:
                logger.warning("Skipping malformed remote task row: %s", e)
                skipped += 1
                continue

            topic_id = topic_map.get(remote.remote_topic_id)
            if topic_id is None:
                logger.warning(
                    "Integrity gap: remote task %s references unknown remote topic %s; skipped this pull",
                    remote.remote_id,
                    remote.remote_topic_id,
                )
                skipped += 1
                continue

            async with self._write_lock:
                existing = await self._local.get_task_by_remote_id(remote.remote_id)
                if (RemoteTable.TASKS, remote.remote_id) in self._tombstones:
                    continue
                try:
                    if existing is None:
                        await self._local.insert_task(
                            topic_id=topic_id,
                            content=remote.content,
                            rank=remote.rank,
                            done=remote.done,
                            remote_id=remote.remote_id,
                            sync_pending=False,
                        )
                    elif self._is_in_flight(RemoteTable.TASKS, existing.id):
                        logger.debug("Task id=%s has a push in flight; local wins", existing.id)
                    else:
                        updated = replace(
                            existing,
                            topic_id=topic_id,
                            content=remote.content,
                            done=remote.done,
                            rank=remote.rank,
                            sync_pending=False,
                        )
                        if updated != existing:
                            await self._local.update_task(updated)
                except LocalIntegrityError as e:
                    logger.warning("Merging remote task %s failed: %s", remote.remote_id, e)
                    skipped += 1
                    continue
            merged += 1
        return merged, skipped

    async def push_pending(self) -> int:
        """
        Retry everything still marked sync_pending, plus failed remote deletes.

        Returns the number of records (and deletes) confirmed by this sweep.
        """
        # A record whose create-push is still running must not be inserted twice.
        await self.wait_idle()

        confirmed = 0
        for (table, remote_id), done in list(self._tombstones.items()):
            if not done and await self._delete_remote(table, remote_id):
                confirmed += 1

        for topic in await self._local.list_pending_topics():
            if self._is_in_flight(RemoteTable.TOPICS, topic.id):
                continue
            if await self._push_topic(topic.id):
                confirmed += 1

        for task in await self._local.list_pending_tasks():
            if self._is_in_flight(RemoteTable.TASKS, task.id):
                continue
            if await self._push_task(task.id):
                confirmed += 1

        if confirmed:
            logger.info("Pending sweep confirmed %d item(s)", confirmed)
        return confirmed

    async def sync(self) -> bool:
        """Push local pending work, then pull."""
        await self.push_pending()
        return await self.pull()

    # ---- topics ----

    async def create_topic(self, name: str) -> Topic:
        """Insert at the top of the topic list; the remote push runs in the background."""
        name = (name or "").strip()
        if not name:
            raise ValueError("name is required")

        rank = rank_for_insert_at_top(await self._local.min_topic_rank())
        topic_id = await self._local.insert_topic(name=name, rank=rank)
        logger.info("Topic created id=%s rank=%s", topic_id, rank)

        self._spawn_create(RemoteTable.TOPICS, topic_id, self._push_topic(topic_id))
        return Topic(id=topic_id, name=name, rank=rank)

    async def rename_topic(self, topic_id: int, name: str) -> Topic | None:
        name = (name or "").strip()
        if not name:
            raise ValueError("name is required")
        return await self._mutate(self._topics, topic_id, {"name": name})

    async def archive_topic(self, topic_id: int) -> Topic | None:
        return await self._mutate(self._topics, topic_id, {"archived": True})

    async def unarchive_topic(self, topic_id: int) -> Topic | None:
        return await self._mutate(self._topics, topic_id, {"archived": False})

    async def set_topic_rank(self, topic_id: int, rank: int) -> Topic | None:
        return await self._mutate(self._topics, topic_id, {"rank": int(rank)})

    async def delete_topic(self, topic_id: int) -> bool:
        """
        Delete locally (tasks cascade), then remotely: tasks first, then the topic.

        Remote ids are captured before the local delete; they are gone after it.
        """
        topic = await self._local.get_topic(topic_id)
        if topic is None:
            logger.warning("Topic id=%s not found; delete ignored", topic_id)
            return False

        tasks = await self._local.list_tasks(topic_id)
        task_remote_ids = [t.remote_id for t in tasks if t.remote_id is not None]

        for rid in task_remote_ids:
            self._tombstones.setdefault((RemoteTable.TASKS, rid), False)
        if topic.remote_id is not None:
            self._tombstones.setdefault((RemoteTable.TOPICS, topic.remote_id), False)

        await self._local.delete_topic(topic_id)
        logger.info("Topic deleted id=%s tasks=%d", topic_id, len(tasks))

        for rid in task_remote_ids:
            await self._delete_remote(RemoteTable.TASKS, rid)
        if topic.remote_id is not None:
            await self._delete_remote(RemoteTable.TOPICS, topic.remote_id)
        return True

    async def rebalance_topics(self, ordered: Sequence[Topic] | None = None) -> dict[int, int]:
        """Re-rank the non-archived topics STEP, 2*STEP, ... in display order."""
        topics = list(ordered) if ordered is not None else await self._local.list_topics(archived=False)
        return await self._rebalance(self._topics, topics)

    # ---- tasks ----

    async def create_task(self, content: str, topic_id: int) -> Task | None:
        """Append to the bottom of the topic's task list; the remote push runs in the background."""
        content = (content or "").strip()
        if not content:
            raise ValueError("content is required")

        if await self._local.get_topic(topic_id) is None:
            logger.warning("Topic id=%s not found; task not created", topic_id)
            return None

        rank = rank_for_insert_at_bottom(await self._local.max_task_rank(topic_id))
        try:
            task_id = await self._local.insert_task(topic_id=topic_id, content=content, rank=rank)
        except LocalIntegrityError as e:
            logger.warning("Task insert into topic id=%s failed: %s", topic_id, e)
            return None
        logger.info("Task created id=%s topic_id=%s rank=%s", task_id, topic_id, rank)

        self._spawn_create(RemoteTable.TASKS, task_id, self._push_task(task_id))
        return Task(id=task_id, topic_id=topic_id, content=content, rank=rank)

    async def update_task_done(self, task_id: int, done: bool) -> Task | None:
        return await self._mutate(self._tasks, task_id, {"done": bool(done)})

    async def toggle_task_done(self, task_id: int) -> Task | None:
        task = await self._local.get_task(task_id)
        if task is None:
            logger.warning("Task id=%s not found; toggle ignored", task_id)
            return None
        return await self.update_task_done(task_id, not task.done)

    async def update_task_content(self, task_id: int, content: str) -> Task | None:
        content = (content or "").strip()
        if not content:
            raise ValueError("content is required")
        return await self._mutate(self._tasks, task_id, {"content": content})

    async def set_task_rank(self, task_id: int, rank: int) -> Task | None:
        return await self._mutate(self._tasks, task_id, {"rank": int(rank)})

    async def delete_task(self, task_id: int) -> bool:
        task = await self._local.get_task(task_id)
        if task is None:
            logger.warning("Task id=%s not found; delete ignored", task_id)
            return False

        if task.remote_id is not None:
            self._tombstones.setdefault((RemoteTable.TASKS, task.remote_id), False)
        await self._local.delete_task(task_id)
        logger.info("Task deleted id=%s", task_id)

        if task.remote_id is not None:
            await self._delete_remote(RemoteTable.TASKS, task.remote_id)
        return True

    async def clear_topic(self, topic_id: int) -> int:
        """Delete every task of a topic; returns how many were deleted."""
        deleted = 0
        for task in await self._local.list_tasks(topic_id):
            if await self.delete_task(task.id):
                deleted += 1
        return deleted

    async def rebalance(self, topic_id: int, ordered: Sequence[Task] | None = None) -> dict[int, int]:
        """Re-rank a topic's tasks STEP, 2*STEP, ... in display order."""
        tasks = list(ordered) if ordered is not None else await self._local.list_tasks(topic_id)
        return await self._rebalance(self._tasks, tasks)

    async def _rebalance(self, records: _Records, items: Sequence[Any]) -> dict[int, int]:
        # Sequential on purpose: one remote update at a time, in display order.
        ranks: dict[int, int] = {}
        rewritten = 0
        for item, rank in zip(items, rebalanced_ranks(len(items))):
            ranks[item.id] = rank
            if item.rank != rank:
                await self._mutate(records, item.id, {"rank": rank})
                rewritten += 1
        logger.info("Rebalanced %s: %d item(s), %d rewritten", records.table.value, len(items), rewritten)
        return ranks
