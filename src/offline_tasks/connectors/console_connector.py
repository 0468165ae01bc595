# src/offline_tasks/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    if sys.stdout.isatty():
        sys.stdout.write("\033[1A\033[2K\r")
        sys.stdout.write(line + "\n")
        sys.stdout.flush()
    else:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


async def handle_line(state: AppState, line: str) -> str:
    """One console input line -> reply text. Plain text adds a task to the open topic."""
    reply = await command_registry.handle(state, line)
    if reply is not None:
        return reply

    topic_id = state.view.active_topic_id.value
    if topic_id is None:
        return "No topic open. Use /add-topic NAME, /topics and /open N (or /help)."

    task = await state.coordinator.create_task(line, topic_id)
    return f"Added '{task.content}'." if task else "Topic not found."


async def run_console_loop(state: AppState) -> None:
    """
    Read lines in a worker thread so the event loop keeps running
    (debounce timers, background pushes, the sync loop) while waiting for input.
    """
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    while True:
        try:
            user_input = (await asyncio.to_thread(input, ">>> ")).strip()
            _rewrite_prev_line(f"[{_ts_local()}] >>> {user_input}")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            reply = await handle_line(state, user_input)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        _print_ts(reply)

    logger.info("Console connector finished.")
