# src/offline_tasks/sync/models.py

"""
Records and the wire mapping.

Local records (Topic, Task) are immutable snapshots: every change goes through
dataclasses.replace(...) and a LocalStore write. Remote rows are plain dicts
using the wire names of the two remote tables:

    topics {id, name, sort_order, is_archived}
    tasks  {id, content, is_complete, sort_order, topic_id}
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class RemoteTable(StrEnum):
    TOPICS = "topics"
    TASKS = "tasks"


@dataclass(frozen=True, slots=True)
class Topic:
    id: int
    name: str
    rank: int
    archived: bool = False
    remote_id: int | None = None
    sync_pending: bool = True


@dataclass(frozen=True, slots=True)
class Task:
    id: int
    topic_id: int
    content: str
    rank: int
    done: bool = False
    remote_id: int | None = None
    sync_pending: bool = True


@dataclass(frozen=True, slots=True)
class RemoteTopic:
    remote_id: int
    name: str
    rank: int
    archived: bool


@dataclass(frozen=True, slots=True)
class RemoteTask:
    remote_id: int
    content: str
    done: bool
    rank: int
    remote_topic_id: int


# Engine field name -> wire column name. Only the fields that travel are listed;
# local ids and sync bookkeeping never leave the device.
TOPIC_WIRE_FIELDS: dict[str, str] = {
    "name": "name",
    "rank": "sort_order",
    "archived": "is_archived",
}

TASK_WIRE_FIELDS: dict[str, str] = {
    "content": "content",
    "done": "is_complete",
    "rank": "sort_order",
}

REMOTE_ID_COLUMN = "id"
REMOTE_TOPIC_REF_COLUMN = "topic_id"
RANK_COLUMN = "sort_order"

_WIRE_FIELDS: dict[RemoteTable, dict[str, str]] = {
    RemoteTable.TOPICS: TOPIC_WIRE_FIELDS,
    RemoteTable.TASKS: TASK_WIRE_FIELDS,
}

_SEMANTIC_FIELDS: dict[RemoteTable, dict[str, str]] = {
    table: {wire: field for field, wire in fields.items()} for table, fields in _WIRE_FIELDS.items()
}


def wire_name(table: RemoteTable, field: str) -> str:
    try:
        return _WIRE_FIELDS[table][field]
    except KeyError:
        raise KeyError(f"{table.value}.{field} has no remote column") from None


def field_name(table: RemoteTable, column: str) -> str:
    try:
        return _SEMANTIC_FIELDS[table][column]
    except KeyError:
        raise KeyError(f"{table.value} column {column!r} has no engine field") from None


def to_wire(table: RemoteTable, changes: Mapping[str, Any]) -> dict[str, Any]:
    """Translate {engine_field: value} into {wire_column: value}."""
    return {wire_name(table, k): v for k, v in changes.items()}


def topic_to_row(topic: Topic) -> dict[str, Any]:
    return {
        "name": topic.name,
        "sort_order": int(topic.rank),
        "is_archived": bool(topic.archived),
    }


def task_to_row(task: Task, *, remote_topic_id: int) -> dict[str, Any]:
    return {
        "content": task.content,
        "is_complete": bool(task.done),
        "sort_order": int(task.rank),
        "topic_id": int(remote_topic_id),
    }


def _req(row: Mapping[str, Any], column: str) -> Any:
    value = row.get(column)
    if value is None:
        raise ValueError(f"remote row is missing {column!r}: {dict(row)!r}")
    return value


def topic_from_row(row: Mapping[str, Any]) -> RemoteTopic:
    """Decode a remote topics row. Raises ValueError on malformed rows."""
    return RemoteTopic(
        remote_id=int(_req(row, REMOTE_ID_COLUMN)),
        name=str(row.get("name") or ""),
        rank=int(row.get("sort_order") or 0),
        archived=bool(row.get("is_archived") or False),
    )


def task_from_row(row: Mapping[str, Any]) -> RemoteTask:
    """Decode a remote tasks row. Raises ValueError on malformed rows."""
    return RemoteTask(
        remote_id=int(_req(row, REMOTE_ID_COLUMN)),
        content=str(row.get("content") or ""),
        done=bool(row.get("is_complete") or False),
        rank=int(row.get("sort_order") or 0),
        remote_topic_id=int(_req(row, REMOTE_TOPIC_REF_COLUMN)),
    )
