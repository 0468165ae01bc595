# src/offline_tasks/ui_state/debounce.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class DebouncedAction:
    """
    Run an async action once activity has been quiet for delay_seconds.

    trigger() restarts the quiet period. A run that has already started is
    never cancelled by a later trigger(); the next one is simply scheduled
    after it.
    """

    def __init__(
        self,
        delay_seconds: float,
        action: Callable[[], Awaitable[None]],
        *,
        name: str = "debounced",
    ) -> None:
        self._delay = max(0.0, float(delay_seconds))
        self._action = action
        self._name = name
        self._timer: asyncio.Task[None] | None = None
        self._runs: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def running(self) -> bool:
        return bool(self._runs)

    def trigger(self) -> None:
        self.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._wait_then_run())

    def cancel(self) -> None:
        """Drop the scheduled run, if any. Running actions are left alone."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _wait_then_run(self) -> None:
        await asyncio.sleep(self._delay)
        self._timer = None
        self._start_run()

    def _start_run(self) -> asyncio.Task[None]:
        run = asyncio.get_running_loop().create_task(self._run())
        self._runs.add(run)
        run.add_done_callback(self._runs.discard)
        return run

    async def _run(self) -> None:
        try:
            await self._action()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s: action failed", self._name)

    async def flush(self) -> None:
        """Run a scheduled action now and wait for every started run to finish."""
        if self.pending:
            self.cancel()
            self._start_run()
        while self._runs:
            await asyncio.gather(*list(self._runs), return_exceptions=True)
