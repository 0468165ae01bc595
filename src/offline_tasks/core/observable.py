# src/offline_tasks/core/observable.py

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class Observable(Generic[T]):
    """
    A published value.

    Handlers are called synchronously with the new value whenever it changes
    (or on every set() when force=True). A failing handler is logged and does
    not stop the others.
    """

    def __init__(self, value: T, *, name: str = "value") -> None:
        self._value = value
        self._name = name
        self._handlers: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T, *, force: bool = False) -> bool:
        changed = value != self._value
        self._value = value
        if not (changed or force):
            return False

        for handler in list(self._handlers):
            try:
                handler(value)
            except Exception:
                logger.exception("Observable %s: handler failed", self._name)
        return changed

    def subscribe(self, handler: Callable[[T], None]) -> Callable[[], None]:
        """Register handler; returns a callable that unsubscribes it."""
        if handler not in self._handlers:
            self._handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unsubscribe

    def __repr__(self) -> str:
        return f"Observable({self._name}={self._value!r})"
