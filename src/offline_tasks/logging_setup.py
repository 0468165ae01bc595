# src/offline_tasks/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Loggers that report every background pass; the console only shows their problems.
_BACKGROUND_LOGGERS = ("offline_tasks.sync.scheduler",)

# HTTP client loggers; one line per PostgREST request at INFO/DEBUG.
_HTTP_LOGGERS = ("httpx", "httpcore")


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the console readable while typing commands:
    - offline_tasks logs pass
    - background sync passes only at WARNING+
    - captured Python warnings and every third-party logger only at ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name.startswith("offline_tasks."):
            if name in _BACKGROUND_LOGGERS:
                return record.levelno >= logging.WARNING
            return True

        # warnings.warn(...) routed through captureWarnings.
        if name == "py.warnings":
            return record.levelno >= logging.ERROR

        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/offline_tasks",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    http_debug: bool = False,
) -> Path:
    """
    Configure the root logger:
    - console (stderr): filtered for the interactive console
    - file (offline_tasks.log in log_dir): everything down to file_level

    Request logs of the HTTP client reach the file only with http_debug=True.
    Call once, before the first log line. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "offline_tasks.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Re-running replaces the handlers instead of stacking them.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Console
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    # File
    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)

    http_level = logging.DEBUG if http_debug else logging.WARNING
    for name in _HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)

    return log_file
