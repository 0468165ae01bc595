# src/offline_tasks/core/state.py

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from ..sync.coordinator import SyncCoordinator
from ..ui_state.ordering import OrderingController
from ..ui_state.reconciliation import ReconciliationState
from .ports import LocalStore, RemoteStore


@dataclass
class AppState:
    # Settings are kept here so commands/connectors can read them without globals.
    settings: object

    local: LocalStore
    remote: RemoteStore
    coordinator: SyncCoordinator
    view: ReconciliationState
    ordering: OrderingController

    sync_task: asyncio.Task[None] | None = None
