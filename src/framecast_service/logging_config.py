"""Logging helpers for the render service."""
from __future__ import annotations

import logging
import os
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

SERVICE_ROOT = Path(__file__).resolve().parents[2]

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_state_lock = threading.Lock()
_active_log_file: Optional[Path] = None


def _resolve_log_dir(log_dir: Optional[Path]) -> Path:
    if log_dir is not None:
        return Path(log_dir)
    from_env = os.getenv("FRAMECAST_LOG_DIR")
    return Path(from_env).expanduser() if from_env else SERVICE_ROOT / "logs"


def _build_handlers(log_file: Path) -> List[logging.Handler]:
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    handlers: List[logging.Handler] = [
        logging.FileHandler(log_file, encoding="utf-8"),
        logging.StreamHandler(sys.stdout),
    ]
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def configure_logging(prefix: str, *, log_dir: Optional[Path] = None, level: int = logging.INFO) -> Path:
    """Route root logging to ``<log_dir>/<prefix>-<utc stamp>.log`` and stdout.

    Only the first call configures anything; later calls return the same file.
    """

    global _active_log_file

    with _state_lock:
        if _active_log_file is not None:
            return _active_log_file

        directory = _resolve_log_dir(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        log_file = directory / f"{prefix}-{datetime.now(timezone.utc):%Y%m%d-%H%M%S}.log"

        logging.basicConfig(level=level, handlers=_build_handlers(log_file), force=True)
        _active_log_file = log_file

    logging.getLogger(__name__).info("Writing logs to %s", log_file)
    return log_file


def current_log_file() -> Optional[Path]:
    """Return the file chosen by :func:`configure_logging`, or ``None`` before it runs."""

    return _active_log_file


__all__ = ["LOG_FORMAT", "configure_logging", "current_log_file"]
