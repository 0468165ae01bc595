# src/offline_tasks/ui_state/drag_guard.py

from __future__ import annotations

import logging
from enum import StrEnum

from ..core.observable import Observable

logger = logging.getLogger(__name__)


class DragPhase(StrEnum):
    IDLE = "idle"
    DRAGGING = "dragging"
    SETTLING = "settling"


class DragGuard:
    """
    Tracks one reorder gesture.

    While the phase is DRAGGING or SETTLING, store snapshots must not replace
    the displayed order. Every begin() starts a new epoch; settling()/release()
    only act for the epoch they were handed, so a late persist from an old
    gesture can't end a newer one.
    """

    def __init__(self, name: str = "drag") -> None:
        self.phase: Observable[DragPhase] = Observable(DragPhase.IDLE, name=f"{name}.phase")
        self._name = name
        self._epoch = 0

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def suppressing(self) -> bool:
        return self.phase.value is not DragPhase.IDLE

    def begin(self) -> int:
        self._epoch += 1
        self.phase.set(DragPhase.DRAGGING)
        return self._epoch

    def settling(self, epoch: int) -> bool:
        if epoch != self._epoch:
            return False
        self.phase.set(DragPhase.SETTLING)
        return True

    def release(self, epoch: int) -> bool:
        if epoch != self._epoch:
            logger.debug("%s: stale release epoch=%s current=%s", self._name, epoch, self._epoch)
            return False
        self.phase.set(DragPhase.IDLE)
        return True

    def reset(self) -> None:
        self._epoch += 1
        self.phase.set(DragPhase.IDLE)
