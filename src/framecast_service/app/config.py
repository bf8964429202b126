"""Configuration defaults for the render service.

Values come from the process environment, optionally seeded from a ``.env``
file found relative to the working directory. Variables already set in the
environment win over the file.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

from dotenv import find_dotenv, load_dotenv

from ..utils import coerce_float, coerce_int, split_csv, to_bool, to_optional_str

SERVICE_ROOT = Path(__file__).resolve().parents[3]

SHUTDOWN_POLICIES = ("finish", "abandon")


def _ensure_dotenv_loaded() -> None:
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path, override=False)


_ensure_dotenv_loaded()


def _env(name: str) -> Any:
    return os.getenv(name)


def build_default_config() -> Dict[str, Any]:
    """Return the Flask config mapping derived from the current environment."""

    work_dir = to_optional_str(_env("FRAMECAST_WORK_DIR")) or str(SERVICE_ROOT / "storage" / "temp")
    shutdown_policy = (to_optional_str(_env("FRAMECAST_SHUTDOWN_POLICY")) or "finish").lower()
    if shutdown_policy not in SHUTDOWN_POLICIES:
        shutdown_policy = "finish"

    return {
        "FRAMECAST_WORK_DIR": work_dir,
        "FRAMECAST_MAX_CONCURRENT_JOBS": max(1, coerce_int(_env("FRAMECAST_MAX_CONCURRENT_JOBS"), 3)),
        "FRAMECAST_MAX_FRAMES_PER_JOB": max(1, coerce_int(_env("FRAMECAST_MAX_FRAMES_PER_JOB"), 300)),
        "FRAMECAST_MAX_RESOLUTION": max(1, coerce_int(_env("FRAMECAST_MAX_RESOLUTION"), 4)),
        "FRAMECAST_DEFAULT_FPS": coerce_int(_env("FRAMECAST_DEFAULT_FPS"), 30),
        "FRAMECAST_DEFAULT_DURATION": coerce_float(_env("FRAMECAST_DEFAULT_DURATION"), 3.0),
        "FRAMECAST_DEFAULT_WIDTH": coerce_int(_env("FRAMECAST_DEFAULT_WIDTH"), 1920),
        "FRAMECAST_DEFAULT_HEIGHT": coerce_int(_env("FRAMECAST_DEFAULT_HEIGHT"), 1080),
        "FRAMECAST_DEFAULT_RESOLUTION": coerce_int(_env("FRAMECAST_DEFAULT_RESOLUTION"), 2),
        "FRAMECAST_JOB_TIMEOUT_SECONDS": coerce_float(_env("FRAMECAST_JOB_TIMEOUT_SECONDS"), 300.0),
        "FRAMECAST_SETTLE_SECONDS": coerce_float(_env("FRAMECAST_SETTLE_SECONDS"), 0.05),
        "FRAMECAST_CONTENT_READY_SECONDS": coerce_float(_env("FRAMECAST_CONTENT_READY_SECONDS"), 0.5),
        "FRAMECAST_KEEP_FRAMES": to_bool(_env("FRAMECAST_KEEP_FRAMES")),
        "FRAMECAST_FFMPEG_BINARY": to_optional_str(_env("FRAMECAST_FFMPEG_BINARY")) or "ffmpeg",
        "FRAMECAST_BROWSER_HEADLESS": to_bool(_env("FRAMECAST_BROWSER_HEADLESS"), default=True),
        "FRAMECAST_BROWSER_ARGS": split_csv(_env("FRAMECAST_BROWSER_ARGS")),
        "FRAMECAST_BROWSER_EXECUTABLE": to_optional_str(_env("FRAMECAST_BROWSER_EXECUTABLE")),
        "FRAMECAST_CORS_ORIGIN": to_optional_str(_env("FRAMECAST_CORS_ORIGIN")) or "*",
        "FRAMECAST_STATUS_REDIS_URL": to_optional_str(_env("FRAMECAST_STATUS_REDIS_URL")),
        "FRAMECAST_STATUS_PREFIX": to_optional_str(_env("FRAMECAST_STATUS_PREFIX")) or "framecast",
        "FRAMECAST_STATUS_CHANNEL": to_optional_str(_env("FRAMECAST_STATUS_CHANNEL")) or "framecast:jobs",
        "FRAMECAST_STATUS_TTL_SECONDS": coerce_int(_env("FRAMECAST_STATUS_TTL_SECONDS"), 3600),
        "FRAMECAST_STATUS_HEARTBEAT_SECONDS": coerce_float(_env("FRAMECAST_STATUS_HEARTBEAT_SECONDS"), 5.0),
        "FRAMECAST_SHUTDOWN_POLICY": shutdown_policy,
        "FRAMECAST_SHUTDOWN_GRACE_SECONDS": coerce_float(_env("FRAMECAST_SHUTDOWN_GRACE_SECONDS"), 30.0),
        "FRAMECAST_INSTALL_SIGNAL_HANDLERS": to_bool(_env("FRAMECAST_INSTALL_SIGNAL_HANDLERS"), default=True),
        "FRAMECAST_LOG_DIR": to_optional_str(_env("FRAMECAST_LOG_DIR")),
        "MAX_CONTENT_LENGTH": coerce_int(_env("FRAMECAST_MAX_REQUEST_BYTES"), 50 * 1024 * 1024),
    }


__all__ = ["SERVICE_ROOT", "SHUTDOWN_POLICIES", "build_default_config"]
