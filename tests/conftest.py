# tests/conftest.py

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from types import SimpleNamespace

import pytest

from offline_tasks.core.state import AppState
from offline_tasks.sync.coordinator import SyncCoordinator
from offline_tasks.sync.local_store import SQLiteLocalStore
from offline_tasks.ui_state.ordering import OrderingController
from offline_tasks.ui_state.reconciliation import ReconciliationState

from .fakes import FakeRemoteStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="offline-tasks-test",
        log_level="DEBUG",
        data_dir=tmp_path,
        db_path=tmp_path / "tasks.sqlite3",
        remote_url="",
        remote_api_key="",
        remote_enabled=False,
        remote_timeout_seconds=1.0,
        # No background loop in tests; they call sync() themselves.
        sync_interval_seconds=0.0,
        # Short timings keep ordering tests fast.
        reorder_debounce_seconds=0.05,
        reorder_settle_seconds=0.01,
    )


@pytest.fixture()
def local(settings: SimpleNamespace) -> Iterator[SQLiteLocalStore]:
    """Real SQLite store: its constraints (cascade, unique remote_id) are part of what we test."""
    store = SQLiteLocalStore(settings.db_path)
    yield store
    store.close()


@pytest.fixture()
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture()
def coordinator(local: SQLiteLocalStore, remote: FakeRemoteStore) -> SyncCoordinator:
    return SyncCoordinator(local, remote)


@pytest.fixture()
def view(local: SQLiteLocalStore, coordinator: SyncCoordinator) -> ReconciliationState:
    # Not started: async tests call `await view.start()` inside their own loop.
    return ReconciliationState(local, coordinator)


@pytest.fixture()
def ordering(
    settings: SimpleNamespace,
    local: SQLiteLocalStore,
    coordinator: SyncCoordinator,
    view: ReconciliationState,
) -> OrderingController:
    return OrderingController(
        local,
        coordinator,
        view,
        debounce_seconds=settings.reorder_debounce_seconds,
        settle_seconds=settings.reorder_settle_seconds,
    )


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    local: SQLiteLocalStore,
    remote: FakeRemoteStore,
    coordinator: SyncCoordinator,
    view: ReconciliationState,
    ordering: OrderingController,
) -> AppState:
    return AppState(
        settings=settings,
        local=local,
        remote=remote,
        coordinator=coordinator,
        view=view,
        ordering=ordering,
    )
