# src/offline_tasks/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time (no remote URL -> offline mode).
- Components receive plain values from Settings through their constructors.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "OFFLINE_TASKS"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data ----
    data_dir: Path
    db_path: Path

    # ---- Remote store (PostgREST / Supabase) ----
    remote_url: str
    remote_api_key: str
    remote_timeout_seconds: float

    # ---- Sync / ordering tuning ----
    sync_interval_seconds: float
    reorder_debounce_seconds: float
    reorder_settle_seconds: float

    @property
    def remote_enabled(self) -> bool:
        return bool(self.remote_url)

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "offline-tasks")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/offline_tasks"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "offline_tasks.sqlite3")

        # Accept the Supabase-style names as well, they are what most setups already export.
        remote_url = (_first_env(_k("REMOTE_URL"), "SUPABASE_URL", default="") or "").strip()
        remote_api_key = (_first_env(_k("REMOTE_API_KEY"), "SUPABASE_KEY", default="") or "").strip()
        remote_timeout_seconds = _env_float(_k("REMOTE_TIMEOUT_SECONDS"), 10.0)

        sync_interval_seconds = _env_float(_k("SYNC_INTERVAL_SECONDS"), 60.0)
        if not _env_bool(_k("SYNC_ENABLED"), True):
            sync_interval_seconds = 0.0

        debounce_ms = _env_int(_k("REORDER_DEBOUNCE_MS"), 500)
        settle_ms = _env_int(_k("REORDER_SETTLE_MS"), 100)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            db_path=db_path,
            remote_url=remote_url,
            remote_api_key=remote_api_key,
            remote_timeout_seconds=max(0.5, remote_timeout_seconds),
            sync_interval_seconds=max(0.0, sync_interval_seconds),
            reorder_debounce_seconds=max(0, debounce_ms) / 1000.0,
            reorder_settle_seconds=max(0, settle_ms) / 1000.0,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
