# src/offline_tasks/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from ..core.state import AppState
from ..sync.models import Task, Topic

CommandHandler = Callable[[AppState, list[str]], Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /topics, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        return await handler(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


class UsageError(ValueError):
    pass


def _position(args: list[str], i: int, count: int, what: str) -> int:
    """Parse a 1-based list position from args[i]; returns a 0-based index."""
    try:
        n = int(args[i])
    except (IndexError, ValueError):
        raise UsageError(f"Expected a {what} number.") from None
    if not 1 <= n <= count:
        raise UsageError(f"No {what} #{n} (there are {count}).")
    return n - 1


def _format_topics(topics: list[Topic], active_id: int | None) -> str:
    if not topics:
        return "(none)"
    lines = []
    for i, t in enumerate(topics, start=1):
        marker = ">" if t.id == active_id else " "
        pending = " *" if t.sync_pending else ""
        lines.append(f"{marker} {i}. {t.name}{pending}")
    return "\n".join(lines)


def _format_tasks(tasks: list[Task]) -> str:
    if not tasks:
        return "(no tasks)"
    lines = []
    for i, t in enumerate(tasks, start=1):
        box = "[x]" if t.done else "[ ]"
        pending = " *" if t.sync_pending else ""
        lines.append(f"  {i}. {box} {t.content}{pending}")
    return "\n".join(lines)


def _active_topic(state: AppState) -> Topic | None:
    active_id = state.view.active_topic_id.value
    for t in state.view.topics.value + state.view.archived_topics.value:
        if t.id == active_id:
            return t
    return None


# ---- general ----

async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help() + "\n(* = not yet synced; plain text adds a task to the open topic)"


async def cmd_status(state: AppState, args: list[str]) -> str:
    settings = state.settings
    remote = "ON" if getattr(settings, "remote_enabled", False) else "OFF (offline)"
    error = state.view.sync_error.value or "-"
    active = _active_topic(state)
    return (
        "Status:\n"
        f"  Remote: {remote}\n"
        f"  Syncing: {'yes' if state.view.is_syncing.value else 'no'}\n"
        f"  Last sync error: {error}\n"
        f"  Topics: {await state.local.count_topics()}  Tasks: {await state.local.count_tasks()}\n"
        f"  Unsynced: {len(await state.local.list_pending_topics())} topic(s), "
        f"{len(await state.local.list_pending_tasks())} task(s), "
        f"{state.coordinator.pending_remote_deletes} delete(s)\n"
        f"  Open topic: {active.name if active else '-'}"
    )


async def cmd_sync(state: AppState, args: list[str]) -> str:
    ok = await state.coordinator.sync()
    if ok:
        return "Sync done."
    return f"Sync incomplete: {state.view.sync_error.value or 'already running'}"


# ---- topics ----

async def cmd_topics(state: AppState, args: list[str]) -> str:
    return "Topics:\n" + _format_topics(state.view.topics.value, state.view.active_topic_id.value)


async def cmd_archived(state: AppState, args: list[str]) -> str:
    return "Archived topics:\n" + _format_topics(
        state.view.archived_topics.value, state.view.active_topic_id.value
    )


async def cmd_open(state: AppState, args: list[str]) -> str:
    topics = state.view.topics.value
    idx = _position(args, 0, len(topics), "topic")
    topic = topics[idx]
    await state.view.select_topic(topic.id)
    return f"Opened '{topic.name}'."


async def cmd_add_topic(state: AppState, args: list[str]) -> str:
    name = " ".join(args).strip()
    if not name:
        raise UsageError("Usage: /add-topic NAME")
    topic = await state.coordinator.create_topic(name)
    return f"Topic '{topic.name}' created."


async def cmd_rename(state: AppState, args: list[str]) -> str:
    topics = state.view.topics.value
    idx = _position(args, 0, len(topics), "topic")
    name = " ".join(args[1:]).strip()
    if not name:
        raise UsageError("Usage: /rename N NAME")
    updated = await state.coordinator.rename_topic(topics[idx].id, name)
    return f"Renamed to '{name}'." if updated else "Topic not found."


async def cmd_archive(state: AppState, args: list[str]) -> str:
    topics = state.view.topics.value
    idx = _position(args, 0, len(topics), "topic")
    updated = await state.coordinator.archive_topic(topics[idx].id)
    return f"Archived '{topics[idx].name}'." if updated else "Topic not found."


async def cmd_unarchive(state: AppState, args: list[str]) -> str:
    topics = state.view.archived_topics.value
    idx = _position(args, 0, len(topics), "archived topic")
    updated = await state.coordinator.unarchive_topic(topics[idx].id)
    return f"Restored '{topics[idx].name}'." if updated else "Topic not found."


async def cmd_rm_topic(state: AppState, args: list[str]) -> str:
    topics = state.view.topics.value
    idx = _position(args, 0, len(topics), "topic")
    topic = topics[idx]
    if state.view.active_topic_id.value == topic.id:
        await state.view.select_topic(None)
    deleted = await state.coordinator.delete_topic(topic.id)
    return f"Deleted '{topic.name}' and its tasks." if deleted else "Topic not found."


async def cmd_move_topic(state: AppState, args: list[str]) -> str:
    count = len(state.view.topics.value)
    src = _position(args, 0, count, "topic")
    dst = _position(args, 1, count, "topic")
    if not state.ordering.move_topic(src, dst):
        return "Move rejected."
    return "Moved."


# ---- tasks of the open topic ----

def _require_open(state: AppState) -> int:
    topic_id = state.view.active_topic_id.value
    if topic_id is None:
        raise UsageError("No topic open. Use /topics and /open N first.")
    return topic_id


async def cmd_tasks(state: AppState, args: list[str]) -> str:
    _require_open(state)
    active = _active_topic(state)
    title = active.name if active else "Tasks"
    return f"{title}:\n" + _format_tasks(state.view.current_tasks())


async def cmd_add(state: AppState, args: list[str]) -> str:
    topic_id = _require_open(state)
    content = " ".join(args).strip()
    if not content:
        raise UsageError("Usage: /add TEXT")
    task = await state.coordinator.create_task(content, topic_id)
    return f"Added '{task.content}'." if task else "Topic not found."


async def cmd_done(state: AppState, args: list[str]) -> str:
    _require_open(state)
    tasks = state.view.current_tasks()
    idx = _position(args, 0, len(tasks), "task")
    updated = await state.coordinator.toggle_task_done(tasks[idx].id)
    if updated is None:
        return "Task not found."
    return f"'{updated.content}' marked {'done' if updated.done else 'not done'}."


async def cmd_edit(state: AppState, args: list[str]) -> str:
    _require_open(state)
    tasks = state.view.current_tasks()
    idx = _position(args, 0, len(tasks), "task")
    content = " ".join(args[1:]).strip()
    if not content:
        raise UsageError("Usage: /edit N TEXT")
    updated = await state.coordinator.update_task_content(tasks[idx].id, content)
    return "Task updated." if updated else "Task not found."


async def cmd_rm(state: AppState, args: list[str]) -> str:
    _require_open(state)
    tasks = state.view.current_tasks()
    idx = _position(args, 0, len(tasks), "task")
    deleted = await state.coordinator.delete_task(tasks[idx].id)
    return f"Deleted '{tasks[idx].content}'." if deleted else "Task not found."


async def cmd_clear(state: AppState, args: list[str]) -> str:
    topic_id = _require_open(state)
    n = await state.coordinator.clear_topic(topic_id)
    return f"Deleted {n} task(s)."


async def cmd_move(state: AppState, args: list[str]) -> str:
    _require_open(state)
    count = len(state.view.current_tasks())
    src = _position(args, 0, count, "task")
    dst = _position(args, 1, count, "task")
    if not state.ordering.move_task(src, dst):
        return "Move rejected."
    return "Moved."


async def cmd_rebalance(state: AppState, args: list[str]) -> str:
    topic_id = _require_open(state)
    ranks = await state.coordinator.rebalance(topic_id)
    return f"Rebalanced {len(ranks)} task(s)."


def _usage_guard(handler: CommandHandler) -> CommandHandler:
    async def _wrapped(state: AppState, args: list[str]) -> str:
        try:
            return await handler(state, args)
        except UsageError as e:
            return str(e)
        except ValueError as e:
            logger.debug("Command rejected: %s", e)
            return f"Rejected: {e}"

    return _wrapped


for _name, _handler, _help, _aliases in (
    ("help", cmd_help, "Show available commands.", ["h", "?"]),
    ("status", cmd_status, "Show sync status and counts.", None),
    ("sync", cmd_sync, "Push unsynced changes, then pull.", None),
    ("topics", cmd_topics, "List topics.", ["ls"]),
    ("archived", cmd_archived, "List archived topics.", None),
    ("open", cmd_open, "Open a topic: /open N.", None),
    ("add-topic", cmd_add_topic, "Create a topic at the top: /add-topic NAME.", None),
    ("rename", cmd_rename, "Rename a topic: /rename N NAME.", None),
    ("archive", cmd_archive, "Archive a topic: /archive N.", None),
    ("unarchive", cmd_unarchive, "Restore an archived topic: /unarchive N.", None),
    ("rm-topic", cmd_rm_topic, "Delete a topic and its tasks: /rm-topic N.", None),
    ("move-topic", cmd_move_topic, "Reorder topics: /move-topic FROM TO.", None),
    ("tasks", cmd_tasks, "List tasks of the open topic.", ["t"]),
    ("add", cmd_add, "Add a task to the open topic: /add TEXT.", None),
    ("done", cmd_done, "Toggle a task's done flag: /done N.", None),
    ("edit", cmd_edit, "Edit a task: /edit N TEXT.", None),
    ("rm", cmd_rm, "Delete a task: /rm N.", None),
    ("clear", cmd_clear, "Delete every task of the open topic.", None),
    ("move", cmd_move, "Reorder tasks: /move FROM TO.", None),
    ("rebalance", cmd_rebalance, "Re-rank the open topic's tasks.", None),
):
    registry.register(_name, _usage_guard(_handler), help_text=_help, aliases=_aliases)
