# tests/test_models.py

from __future__ import annotations

import pytest

from offline_tasks.sync.models import (
    RemoteTable,
    Task,
    Topic,
    field_name,
    task_from_row,
    task_to_row,
    to_wire,
    topic_from_row,
    topic_to_row,
    wire_name,
)


def test_field_mapping_is_bidirectional() -> None:
    for table, fields in (
        (RemoteTable.TOPICS, ("name", "rank", "archived")),
        (RemoteTable.TASKS, ("content", "done", "rank")),
    ):
        for f in fields:
            assert field_name(table, wire_name(table, f)) == f

    assert to_wire(RemoteTable.TASKS, {"done": True, "rank": 5}) == {"is_complete": True, "sort_order": 5}
    assert to_wire(RemoteTable.TOPICS, {"archived": False}) == {"is_archived": False}


def test_local_only_fields_have_no_wire_name() -> None:
    with pytest.raises(KeyError):
        wire_name(RemoteTable.TASKS, "sync_pending")
    with pytest.raises(KeyError):
        field_name(RemoteTable.TOPICS, "topic_id")


def test_rows_use_wire_names() -> None:
    topic = Topic(id=1, name="Work", rank=-1000, archived=True, remote_id=7)
    assert topic_to_row(topic) == {"name": "Work", "sort_order": -1000, "is_archived": True}

    task = Task(id=3, topic_id=1, content="Buy milk", rank=2000, done=True)
    assert task_to_row(task, remote_topic_id=7) == {
        "content": "Buy milk",
        "is_complete": True,
        "sort_order": 2000,
        "topic_id": 7,
    }


def test_rows_decode_and_reject_missing_ids() -> None:
    t = topic_from_row({"id": 9, "name": "Home", "sort_order": 0, "is_archived": False})
    assert (t.remote_id, t.name, t.rank, t.archived) == (9, "Home", 0, False)

    k = task_from_row({"id": 11, "content": "x", "is_complete": True, "sort_order": 1000, "topic_id": 9})
    assert (k.remote_id, k.done, k.rank, k.remote_topic_id) == (11, True, 1000, 9)

    with pytest.raises(ValueError):
        topic_from_row({"name": "no id"})
    with pytest.raises(ValueError):
        task_from_row({"id": 1, "content": "orphan"})
