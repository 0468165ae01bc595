# src/offline_tasks/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The coordinator, ordering controller and published state depend on these
Protocols instead of concrete stores. SQLiteLocalStore / PostgrestRemoteStore
are the production adapters; tests swap in in-memory fakes.
"""

from collections.abc import AsyncIterator, Mapping
from typing import Any, Protocol, TypeVar

from ..sync.models import RemoteTable, Task, Topic

T_co = TypeVar("T_co", covariant=True)

RemoteRow = dict[str, Any]


class Subscription(Protocol[T_co]):
    """
    Stream of list snapshots, one per underlying change (first item: current state).

    Iterate with `async for`; close() ends the stream and guarantees that no
    further snapshot is delivered.
    """

    def __aiter__(self) -> AsyncIterator[list[T_co]]: ...
    async def __anext__(self) -> list[T_co]: ...
    def close(self) -> None: ...


class LocalStore(Protocol):
    """Durable CRUD + change subscription for Topic/Task records (local ids)."""

    # Topics
    async def insert_topic(
            self,
            *,
            name: str,
            rank: int,
            archived: bool = False,
            remote_id: int | None = None,
            sync_pending: bool = True,
    ) -> int: ...
    async def update_topic(self, topic: Topic) -> None: ...
    async def delete_topic(self, topic_id: int) -> None: ...  # cascades to tasks
    async def get_topic(self, topic_id: int) -> Topic | None: ...
    async def get_topic_by_remote_id(self, remote_id: int) -> Topic | None: ...
    async def list_topics(self, *, archived: bool | None = None) -> list[Topic]: ...
    async def list_pending_topics(self) -> list[Topic]: ...
    async def min_topic_rank(self) -> int | None: ...
    def subscribe_topics(self, *, archived: bool) -> Subscription[Topic]: ...

    # Tasks
    async def insert_task(
            self,
            *,
            topic_id: int,
            content: str,
            rank: int,
            done: bool = False,
            remote_id: int | None = None,
            sync_pending: bool = True,
    ) -> int: ...
    async def update_task(self, task: Task) -> None: ...
    async def delete_task(self, task_id: int) -> None: ...
    async def get_task(self, task_id: int) -> Task | None: ...
    async def get_task_by_remote_id(self, remote_id: int) -> Task | None: ...
    async def list_tasks(self, topic_id: int) -> list[Task]: ...
    async def list_pending_tasks(self) -> list[Task]: ...
    async def max_task_rank(self, topic_id: int) -> int | None: ...
    def subscribe_tasks(self, topic_id: int) -> Subscription[Task]: ...

    # Diagnostics
    async def count_topics(self) -> int: ...
    async def count_tasks(self) -> int: ...


class RemoteStore(Protocol):
    """
    Network CRUD over the two remote tables (remote ids).

    Filters are equality filters on wire column names. Every method raises
    RemoteTransientError on network/backend failure.
    """

    async def select(
            self,
            table: RemoteTable,
            *,
            filters: Mapping[str, Any] | None = None,
            order_by: str | None = None,
    ) -> list[RemoteRow]: ...

    async def insert(self, table: RemoteTable, row: Mapping[str, Any]) -> RemoteRow: ...

    async def update(
            self,
            table: RemoteTable,
            filters: Mapping[str, Any],
            values: Mapping[str, Any],
    ) -> None: ...

    async def delete(self, table: RemoteTable, filters: Mapping[str, Any]) -> None: ...

    async def aclose(self) -> None: ...
