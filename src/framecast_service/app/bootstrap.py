"""Bootstrap helpers for the render service Flask application."""
from __future__ import annotations

import atexit
import logging
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Mapping, Optional

from flask import Flask

from ..logging_config import configure_logging
from ..services.render_session import RenderRuntime
from .config import build_default_config

LOGGER = logging.getLogger(__name__)


def init_logging(app: Flask) -> None:
    """Configure file and console logging for the render service."""

    log_dir = app.config.get("FRAMECAST_LOG_DIR")
    configure_logging("framecast", log_dir=Path(log_dir).expanduser() if log_dir else None)


def load_configuration(app: Flask, overrides: Optional[Mapping[str, Any]] = None) -> None:
    """Populate the default configuration values on the Flask app."""

    app.config.from_mapping(build_default_config())
    if overrides:
        app.config.from_mapping(dict(overrides))


def ensure_single_worker() -> None:
    """Refuse to start under a multi-process server.

    Jobs live in process memory, so a second worker would answer status and
    download requests for jobs it never saw.
    """

    worker_count = 1
    raw_worker_count = (
        os.getenv("FRAMECAST_WORKER_PROCESSES")
        or os.getenv("GUNICORN_WORKERS")
        or os.getenv("WEB_CONCURRENCY")
    )
    if raw_worker_count:
        try:
            worker_count = max(1, int(raw_worker_count))
        except ValueError:
            worker_count = 1
    if worker_count != 1:
        raise RuntimeError(
            "The render service keeps jobs in memory and requires a single worker process. "
            "Set GUNICORN_WORKERS=1 (or WEB_CONCURRENCY=1) and scale with threads instead. "
            f"Detected {worker_count}."
        )


def install_shutdown_hooks(app: Flask, runtime: RenderRuntime) -> None:
    """Drain the dispatcher on SIGTERM and at interpreter exit."""

    atexit.register(runtime.shutdown)

    if not app.config.get("FRAMECAST_INSTALL_SIGNAL_HANDLERS", True):
        return
    if threading.current_thread() is not threading.main_thread():
        LOGGER.debug("Not on the main thread; SIGTERM handler not installed")
        return

    def _handle_sigterm(signum, _frame) -> None:
        LOGGER.info("Received signal %s, shutting down gracefully", signum)
        runtime.shutdown()
        sys.exit(0)

    signal.signal(signal.SIGTERM, _handle_sigterm)


__all__ = [
    "ensure_single_worker",
    "init_logging",
    "install_shutdown_hooks",
    "load_configuration",
]
