# tests/test_config_logging.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from offline_tasks.config import Settings
from offline_tasks.logging_setup import _ConsoleNoiseFilter, setup_logging

_VARS = (
    "OFFLINE_TASKS_REMOTE_URL",
    "OFFLINE_TASKS_REMOTE_API_KEY",
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "OFFLINE_TASKS_SYNC_ENABLED",
    "OFFLINE_TASKS_SYNC_INTERVAL_SECONDS",
    "OFFLINE_TASKS_REORDER_DEBOUNCE_MS",
    "OFFLINE_TASKS_REORDER_SETTLE_MS",
    "OFFLINE_TASKS_DATA_DIR",
    "OFFLINE_TASKS_DB_PATH",
)


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults_run_offline(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    clean_env.setenv("OFFLINE_TASKS_DATA_DIR", str(tmp_path))
    s = Settings.from_env()

    assert s.remote_enabled is False
    assert s.db_path == tmp_path / "offline_tasks.sqlite3"
    assert s.sync_interval_seconds == 60.0
    assert s.reorder_debounce_seconds == 0.5
    assert s.reorder_settle_seconds == 0.1


def test_supabase_names_are_accepted(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("SUPABASE_URL", "https://x.supabase.co")
    clean_env.setenv("SUPABASE_KEY", "anon")
    s = Settings.from_env()

    assert s.remote_enabled is True
    assert (s.remote_url, s.remote_api_key) == ("https://x.supabase.co", "anon")


def test_tuning_values_and_disabled_sync(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("OFFLINE_TASKS_SYNC_ENABLED", "false")
    clean_env.setenv("OFFLINE_TASKS_REORDER_DEBOUNCE_MS", "250")
    clean_env.setenv("OFFLINE_TASKS_REORDER_SETTLE_MS", "garbage")
    s = Settings.from_env()

    assert s.sync_interval_seconds == 0.0
    assert s.reorder_debounce_seconds == 0.25
    assert s.reorder_settle_seconds == 0.1


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


def test_console_filter_keeps_package_logs_and_drops_noise() -> None:
    f = _ConsoleNoiseFilter()

    assert f.filter(_record("offline_tasks.sync.coordinator", logging.INFO))
    assert not f.filter(_record("offline_tasks.sync.scheduler", logging.INFO))
    assert f.filter(_record("offline_tasks.sync.scheduler", logging.WARNING))
    assert not f.filter(_record("httpx", logging.WARNING))
    assert f.filter(_record("httpx", logging.ERROR))
    assert not f.filter(_record("py.warnings", logging.WARNING))


def test_setup_logging_writes_log_file(tmp_path: Path) -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    saved_http = logging.getLogger("httpx").level
    try:
        log_file = setup_logging(log_dir=tmp_path, console_level=logging.WARNING)
        assert log_file == tmp_path / "offline_tasks.log"
        assert logging.getLogger("httpx").level == logging.WARNING

        logging.getLogger("offline_tasks.test").info("hello file")
        for h in root.handlers:
            h.flush()
        assert "hello file" in log_file.read_text("utf-8")

        setup_logging(log_dir=tmp_path, http_debug=True)
        assert len(root.handlers) == 2
        assert logging.getLogger("httpx").level == logging.DEBUG
    finally:
        logging.getLogger("httpx").setLevel(saved_http)
        logging.getLogger("httpcore").setLevel(saved_http)
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        for h in saved_handlers:
            root.addHandler(h)
        root.setLevel(saved_level)
        logging.captureWarnings(False)
