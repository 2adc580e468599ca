"""
Logging bootstrap for habprov.

Creates a run-scoped directory in the user log folder and attaches rotating file + console handlers.
"""

from __future__ import annotations

import datetime
import logging
import os
import pathlib
from logging.handlers import RotatingFileHandler
from typing import Tuple

from platformdirs import PlatformDirs

APP_NAME = "habprov"
_LOG_DIR_ENV = "HABPROV_LOG_DIR"
_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def logs_dir() -> pathlib.Path:
    override = os.getenv(_LOG_DIR_ENV)
    if override:
        return pathlib.Path(override).expanduser().resolve()
    return pathlib.Path(PlatformDirs(appname=APP_NAME, appauthor=False).user_log_path)


def _coerce_level(level: str) -> int:
    try:
        return getattr(logging, level.upper())
    except AttributeError:
        return logging.INFO


def init_logging(run_tag: str = "session", *, level: str = "INFO") -> Tuple[pathlib.Path, str]:
    logs_root = logs_dir()
    logs_root.mkdir(parents=True, exist_ok=True)
    run_id = datetime.datetime.now(datetime.timezone.utc).strftime("%Y%m%d_%H%M%S")
    run_dir = logs_root / f"run-{run_id}"
    run_dir.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(_FORMAT)

    root = logging.getLogger()
    root.setLevel(_coerce_level(level))
    for handler in list(root.handlers):
        if getattr(handler, "_habprov", False):
            root.removeHandler(handler)
            handler.close()

    file_handler = RotatingFileHandler(
        run_dir / "run.log",
        maxBytes=2_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    file_handler._habprov = True  # type: ignore[attr-defined]
    root.addHandler(file_handler)

    # Remote output already reaches the console through the output sink.
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(logging.WARNING)
    console_handler._habprov = True  # type: ignore[attr-defined]
    root.addHandler(console_handler)

    logging.getLogger("paramiko").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging initialized (run_id=%s, tag=%s)", run_id, run_tag
    )
    return run_dir, run_id
