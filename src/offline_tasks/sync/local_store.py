# src/offline_tasks/sync/local_store.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generic, TypeVar

from ..core.errors import LocalIntegrityError
from .models import Task, Topic

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TOPICS = "topics"
_TASKS = "tasks"


class StoreSubscription(Generic[T]):
    """
    Async iterator of list snapshots for one query.

    - the first __anext__ loads the current state and drops anything queued before it
    - every refresh() (called by the store after a write) queues a new snapshot
    - refreshes are serialized, so snapshots arrive in write order
    - a loader failure is raised from __anext__ to the consumer
    """

    def __init__(
            self,
            table: str,
            loader: Callable[[], list[T]],
            on_close: Callable[["StoreSubscription[Any]"], None],
    ) -> None:
        self.table = table
        self._loader = loader
        self._on_close = on_close
        self._queue: asyncio.Queue[list[T] | BaseException | None] = asyncio.Queue()
        self._lock = asyncio.Lock()
        self._primed = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def refresh(self) -> None:
        if self._closed:
            return
        async with self._lock:
            try:
                snapshot: list[T] | BaseException = await asyncio.to_thread(self._loader)
            except Exception as e:
                snapshot = e
            if not self._closed:
                self._queue.put_nowait(snapshot)

    def __aiter__(self) -> "StoreSubscription[T]":
        return self

    async def __anext__(self) -> list[T]:
        if self._closed:
            raise StopAsyncIteration
        if not self._primed:
            self._primed = True
            async with self._lock:
                # Snapshots of earlier writes are older than the priming load.
                while not self._queue.empty():
                    self._queue.get_nowait()
                return await asyncio.to_thread(self._loader)

        item = await self._queue.get()
        if item is None or self._closed:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)
        self._on_close(self)


class SQLiteLocalStore:
    """
    SQLite store for topics and tasks.

    - tasks.topic_id references topics.id with ON DELETE CASCADE
    - remote_id is UNIQUE per table (NULLs allowed), so a remote row can be
      bound to at most one local record
    - ranks are INTEGER

    Thread-safety:
    - each call opens its own SQLite connection and runs in a worker thread
      (asyncio.to_thread); change notifications are delivered on the event loop
    """

    def __init__(self, db_path: str | Path = "offline_tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._subscriptions: dict[str, list[StoreSubscription[Any]]] = {_TOPICS: [], _TASKS: []}
        self._ensure_schema()
        logger.info(
            "LocalStore ready db=%s topics=%s tasks=%s",
            self._db_path,
            self._count(_TOPICS),
            self._count(_TASKS),
        )

    def close(self) -> None:
        """Close every open subscription (no persistent connections to close)."""
        for subs in self._subscriptions.values():
            for sub in list(subs):
                sub.close()

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        # Foreign keys are per-connection in SQLite; cascade depends on it.
        conn.execute("PRAGMA foreign_keys=ON")
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS topics (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    rank INTEGER NOT NULL,
                    archived INTEGER NOT NULL DEFAULT 0,
                    remote_id INTEGER UNIQUE,
                    sync_pending INTEGER NOT NULL DEFAULT 1
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    topic_id INTEGER NOT NULL REFERENCES topics(id) ON DELETE CASCADE,
                    content TEXT NOT NULL,
                    done INTEGER NOT NULL DEFAULT 0,
                    rank INTEGER NOT NULL,
                    remote_id INTEGER UNIQUE,
                    sync_pending INTEGER NOT NULL DEFAULT 1
                )
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_topics_archived_rank ON topics(archived, rank)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_topic_rank ON tasks(topic_id, rank)")
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_topic(row: sqlite3.Row) -> Topic:
        return Topic(
            id=int(row["id"]),
            name=str(row["name"] or ""),
            rank=int(row["rank"] or 0),
            archived=bool(row["archived"]),
            remote_id=int(row["remote_id"]) if row["remote_id"] is not None else None,
            sync_pending=bool(row["sync_pending"]),
        )

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=int(row["id"]),
            topic_id=int(row["topic_id"]),
            content=str(row["content"] or ""),
            rank=int(row["rank"] or 0),
            done=bool(row["done"]),
            remote_id=int(row["remote_id"]) if row["remote_id"] is not None else None,
            sync_pending=bool(row["sync_pending"]),
        )

    def _fetch_all(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        conn = self._get_conn()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()

    def _fetch_one(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Row | None:
        conn = self._get_conn()
        try:
            return conn.execute(sql, params).fetchone()
        finally:
            conn.close()

    def _write(self, sql: str, params: tuple[Any, ...]) -> tuple[int, int | None]:
        """Execute one write; returns (rowcount, lastrowid)."""
        conn = self._get_conn()
        try:
            cur = conn.execute(sql, params)
            conn.commit()
            return cur.rowcount, cur.lastrowid
        except sqlite3.IntegrityError as e:
            raise LocalIntegrityError(str(e)) from e
        finally:
            conn.close()

    def _insert(self, sql: str, params: tuple[Any, ...]) -> int:
        _, rowid = self._write(sql, params)
        if rowid is None:
            raise RuntimeError("SQLite did not return lastrowid for insert")
        return int(rowid)

    def _count(self, table: str) -> int:
        row = self._fetch_one(f"SELECT COUNT(*) FROM {table}")
        return int(row[0]) if row else 0

    def _scalar(self, sql: str, params: tuple[Any, ...] = ()) -> int | None:
        row = self._fetch_one(sql, params)
        if row is None or row[0] is None:
            return None
        return int(row[0])

    async def _notify(self, *tables: str) -> None:
        for table in tables:
            for sub in list(self._subscriptions[table]):
                await sub.refresh()

    def _subscribe(self, table: str, loader: Callable[[], list[Any]]) -> StoreSubscription[Any]:
        sub: StoreSubscription[Any] = StoreSubscription(table, loader, self._unsubscribe)
        self._subscriptions[table].append(sub)
        return sub

    def _unsubscribe(self, sub: StoreSubscription[Any]) -> None:
        subs = self._subscriptions.get(sub.table, [])
        if sub in subs:
            subs.remove(sub)

    # ---- sync query helpers (run in worker threads) ----

    def _query_topics(self, archived: bool | None) -> list[Topic]:
        if archived is None:
            rows = self._fetch_all("SELECT * FROM topics ORDER BY rank ASC, id ASC")
        else:
            rows = self._fetch_all(
                "SELECT * FROM topics WHERE archived = ? ORDER BY rank ASC, id ASC",
                (1 if archived else 0,),
            )
        return [self._row_to_topic(r) for r in rows]

    def _query_tasks(self, topic_id: int) -> list[Task]:
        rows = self._fetch_all(
            "SELECT * FROM tasks WHERE topic_id = ? ORDER BY rank ASC, id ASC",
            (int(topic_id),),
        )
        return [self._row_to_task(r) for r in rows]

    def _query_topic(self, column: str, value: int) -> Topic | None:
        row = self._fetch_one(f"SELECT * FROM topics WHERE {column} = ? LIMIT 1", (int(value),))
        return self._row_to_topic(row) if row else None

    def _query_task(self, column: str, value: int) -> Task | None:
        row = self._fetch_one(f"SELECT * FROM tasks WHERE {column} = ? LIMIT 1", (int(value),))
        return self._row_to_task(row) if row else None

    # ---- topics ----

    async def insert_topic(
        self,
        *,
        name: str,
        rank: int,
        archived: bool = False,
        remote_id: int | None = None,
        sync_pending: bool = True,
    ) -> int:
        topic_id = await asyncio.to_thread(
            self._insert,
            "INSERT INTO topics(name, rank, archived, remote_id, sync_pending) VALUES (?, ?, ?, ?, ?)",
            (name, int(rank), int(bool(archived)), remote_id, int(bool(sync_pending))),
        )
        logger.debug("Topic inserted id=%s rank=%s remote_id=%s", topic_id, rank, remote_id)
        await self._notify(_TOPICS)
        return topic_id

    async def update_topic(self, topic: Topic) -> None:
        rowcount, _ = await asyncio.to_thread(
            self._write,
            """
            UPDATE topics
            SET name = ?, rank = ?, archived = ?, remote_id = ?, sync_pending = ?
            WHERE id = ?
            """,
            (
                topic.name,
                int(topic.rank),
                int(topic.archived),
                topic.remote_id,
                int(topic.sync_pending),
                int(topic.id),
            ),
        )
        if rowcount != 1:
            raise LocalIntegrityError(f"topic {topic.id} does not exist")
        await self._notify(_TOPICS)

    async def delete_topic(self, topic_id: int) -> None:
        await asyncio.to_thread(self._write, "DELETE FROM topics WHERE id = ?", (int(topic_id),))
        logger.debug("Topic deleted id=%s (tasks cascaded)", topic_id)
        await self._notify(_TOPICS, _TASKS)

    async def get_topic(self, topic_id: int) -> Topic | None:
        return await asyncio.to_thread(self._query_topic, "id", topic_id)

    async def get_topic_by_remote_id(self, remote_id: int) -> Topic | None:
        return await asyncio.to_thread(self._query_topic, "remote_id", remote_id)

    async def list_topics(self, *, archived: bool | None = None) -> list[Topic]:
        return await asyncio.to_thread(self._query_topics, archived)

    async def list_pending_topics(self) -> list[Topic]:
        rows = await asyncio.to_thread(
            self._fetch_all, "SELECT * FROM topics WHERE sync_pending = 1 ORDER BY id ASC"
        )
        return [self._row_to_topic(r) for r in rows]

    async def min_topic_rank(self) -> int | None:
        return await asyncio.to_thread(self._scalar, "SELECT MIN(rank) FROM topics")

    def subscribe_topics(self, *, archived: bool) -> StoreSubscription[Topic]:
        return self._subscribe(_TOPICS, lambda: self._query_topics(archived))

    # ---- tasks ----

    async def insert_task(
        self,
        *,
        topic_id: int,
        content: str,
        rank: int,
        done: bool = False,
        remote_id: int | None = None,
        sync_pending: bool = True,
    ) -> int:
        task_id = await asyncio.to_thread(
            self._insert,
            """
            INSERT INTO tasks(topic_id, content, done, rank, remote_id, sync_pending)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (int(topic_id), content, int(bool(done)), int(rank), remote_id, int(bool(sync_pending))),
        )
        logger.debug(
            "Task inserted id=%s topic_id=%s rank=%s remote_id=%s", task_id, topic_id, rank, remote_id
        )
        await self._notify(_TASKS)
        return task_id

    async def update_task(self, task: Task) -> None:
        rowcount, _ = await asyncio.to_thread(
            self._write,
            """
            UPDATE tasks
            SET topic_id = ?, content = ?, done = ?, rank = ?, remote_id = ?, sync_pending = ?
            WHERE id = ?
            """,
            (
                int(task.topic_id),
                task.content,
                int(task.done),
                int(task.rank),
                task.remote_id,
                int(task.sync_pending),
                int(task.id),
            ),
        )
        if rowcount != 1:
            raise LocalIntegrityError(f"task {task.id} does not exist")
        await self._notify(_TASKS)

    async def delete_task(self, task_id: int) -> None:
        await asyncio.to_thread(self._write, "DELETE FROM tasks WHERE id = ?", (int(task_id),))
        await self._notify(_TASKS)

    async def get_task(self, task_id: int) -> Task | None:
        return await asyncio.to_thread(self._query_task, "id", task_id)

    async def get_task_by_remote_id(self, remote_id: int) -> Task | None:
        return await asyncio.to_thread(self._query_task, "remote_id", remote_id)

    async def list_tasks(self, topic_id: int) -> list[Task]:
        return await asyncio.to_thread(self._query_tasks, topic_id)

    async def list_pending_tasks(self) -> list[Task]:
        rows = await asyncio.to_thread(
            self._fetch_all, "SELECT * FROM tasks WHERE sync_pending = 1 ORDER BY id ASC"
        )
        return [self._row_to_task(r) for r in rows]

    async def max_task_rank(self, topic_id: int) -> int | None:
        return await asyncio.to_thread(
            self._scalar, "SELECT MAX(rank) FROM tasks WHERE topic_id = ?", (int(topic_id),)
        )

    def subscribe_tasks(self, topic_id: int) -> StoreSubscription[Task]:
        return self._subscribe(_TASKS, lambda: self._query_tasks(topic_id))

    # ---- diagnostics ----

    async def count_topics(self) -> int:
        return await asyncio.to_thread(self._count, _TOPICS)

    async def count_tasks(self) -> int:
        return await asyncio.to_thread(self._count, _TASKS)
