# tests/test_commands.py

from __future__ import annotations

import pytest

from offline_tasks.cli.commands import CommandRegistry
from offline_tasks.connectors.console_connector import handle_line
from offline_tasks.core.state import AppState

from .fakes import wait_until


@pytest.mark.asyncio
async def test_command_registry_routes_and_aliases(state: AppState) -> None:
    reg = CommandRegistry()
    called: list[list[str]] = []

    async def h(state, args):
        called.append(args)
        return "ok"

    reg.register("a", h, "a", aliases=["alpha"])

    assert await reg.handle(state, "/a x y") == "ok"
    assert await reg.handle(state, "/ALPHA") == "ok"
    assert called == [["x", "y"], []]
    assert "/a - a" in reg.build_help()


@pytest.mark.asyncio
async def test_command_registry_unknown_and_non_command(state: AppState) -> None:
    reg = CommandRegistry()
    assert await reg.handle(state, "hello") is None
    assert "Unknown command" in (await reg.handle(state, "/nope") or "")
    assert "Empty command" in (await reg.handle(state, "/") or "")


@pytest.mark.asyncio
async def test_console_flow_over_the_engine(state: AppState) -> None:
    await state.view.start()
    try:
        assert "No topic open" in await handle_line(state, "just text")

        assert "created" in await handle_line(state, "/add-topic Groceries")
        await wait_until(lambda: len(state.view.topics.value) == 1)
        assert "Groceries" in await handle_line(state, "/topics")

        assert "Opened" in await handle_line(state, "/open 1")
        assert "Added" in await handle_line(state, "Buy milk")
        assert "Added" in await handle_line(state, "/add Buy bread")
        await wait_until(lambda: len(state.view.current_tasks()) == 2)

        assert "marked done" in await handle_line(state, "/done 1")
        await wait_until(lambda: state.view.current_tasks()[0].done)
        assert "[x] Buy milk" in await handle_line(state, "/tasks")

        assert "No task #9" in await handle_line(state, "/done 9")
        assert "Expected a task number" in await handle_line(state, "/rm x")

        assert "Deleted 'Buy milk'" in await handle_line(state, "/rm 1")
        await wait_until(lambda: len(state.view.current_tasks()) == 1)

        status = await handle_line(state, "/status")
        assert "Topics: 1" in status
        assert "Tasks: 1" in status
    finally:
        await state.coordinator.wait_idle()
        await state.view.close()


@pytest.mark.asyncio
async def test_sync_command_reports_failure(state: AppState) -> None:
    state.remote.failing = {"select"}
    reply = await handle_line(state, "/sync")
    assert reply.startswith("Sync incomplete")
