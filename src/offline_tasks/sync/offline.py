# src/offline_tasks/sync/offline.py

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..core.errors import RemoteTransientError
from .models import RemoteTable


class OfflineRemoteStore:
    """
    RemoteStore used when no remote endpoint is configured.

    Behavior:
    - every call raises RemoteTransientError, exactly like an unreachable backend
    - so every local write stays sync_pending and is pushed by the pending
      sweep once a real remote is configured
    """

    _MESSAGE = (
        "remote store is not configured "
        "(set OFFLINE_TASKS_REMOTE_URL and OFFLINE_TASKS_REMOTE_API_KEY)"
    )

    async def select(
        self,
        table: RemoteTable,
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        raise RemoteTransientError(self._MESSAGE)

    async def insert(self, table: RemoteTable, row: Mapping[str, Any]) -> dict[str, Any]:
        raise RemoteTransientError(self._MESSAGE)

    async def update(
        self,
        table: RemoteTable,
        filters: Mapping[str, Any],
        values: Mapping[str, Any],
    ) -> None:
        raise RemoteTransientError(self._MESSAGE)

    async def delete(self, table: RemoteTable, filters: Mapping[str, Any]) -> None:
        raise RemoteTransientError(self._MESSAGE)

    async def aclose(self) -> None:
        return
