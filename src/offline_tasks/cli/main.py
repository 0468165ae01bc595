# src/offline_tasks/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, starts the published state and the
periodic sync loop, then runs the console REPL until /exit or EOF.
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state, shutdown_state, start_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _run(settings) -> None:
    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)
    try:
        await start_state(state)
        await run_console_loop(state)
    finally:
        await shutdown_state(state)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/offline_tasks")
    setup_logging(log_dir=log_dir, console_level=console_level, http_debug=console_level <= logging.DEBUG)

    logger.info("Starting %s...", getattr(settings, "app_name", "offline-tasks"))

    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
