"""Runtime helpers shared by the HTTP surface and the shutdown hooks."""
from __future__ import annotations

import logging
import platform
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import psutil
from flask import Flask

from framecast import OutputAssembler
from framecast.browser import EnginePool
from framecast.exceptions import ArtifactNotFoundError, JobStateError
from framecast.formats import download_filename, formats_payload

from ..engine import JobDispatcher, JobState, StatsHeartbeat
from ..engine.status import JobStatusBroadcaster
from ..logging_config import current_log_file
from .validation import SubmissionLimits, build_render_spec

LOGGER = logging.getLogger(__name__)

SERVICE_NAME = "framecast render service"
SERVICE_VERSION = "1.0.0"


@dataclass(frozen=True, slots=True)
class DownloadArtifact:
    """A completed job's artifact, ready to stream."""

    path: Path
    content_type: str
    filename: str
    size_bytes: int


class RenderRuntime:
    """Domain-facing operations over the dispatcher, store and engine pool."""

    def __init__(self, app: Flask) -> None:
        dispatcher = app.extensions.get("framecast_dispatcher")
        if not isinstance(dispatcher, JobDispatcher):
            raise RuntimeError("Job dispatcher not initialised on Flask app.")
        self._app = app
        self._dispatcher = dispatcher
        self._assembler: OutputAssembler = app.extensions["framecast_assembler"]
        self._pool: EnginePool = app.extensions["framecast_engine_pool"]
        self._broadcaster: Optional[JobStatusBroadcaster] = app.extensions.get("framecast_status_broadcaster")
        self._heartbeat: Optional[StatsHeartbeat] = app.extensions.get("framecast_heartbeat")
        self._limits = SubmissionLimits.from_config(app.config)
        self._started = time.monotonic()
        self._shutdown_lock = threading.Lock()
        self._shutdown_done = False

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------
    def submit(self, payload: Any) -> Dict[str, Any]:
        spec = build_render_spec(
            payload,
            self._limits,
            available_formats=self._assembler.available_formats(),
        )
        job = self._dispatcher.submit(spec)
        return {
            "jobId": job.id,
            "status": job.status.value,
            "totalFrames": job.total_frames,
            "captureFrames": job.capture_frames,
            "message": "Job created successfully",
        }

    def status_payload(self, job_id: str) -> Dict[str, Any]:
        return self._dispatcher.store.get(job_id).to_status()

    def artifact(self, job_id: str) -> DownloadArtifact:
        """Return the downloadable artifact of a completed job."""

        job = self._dispatcher.store.get(job_id)
        if job.status is not JobState.COMPLETED:
            raise JobStateError(
                f"Job is {job.status.value}. Downloads are only available for completed jobs."
            )
        path = Path(job.artifact_locator or "")
        if not job.artifact_locator or not path.is_file():
            raise ArtifactNotFoundError(
                f"Download file not found. It may have been cleaned up. Looking for: {path.name}"
            )
        filename = download_filename(
            job.spec.tool_name,
            job.spec.export_format,
            int(time.time() * 1000),
        )
        return DownloadArtifact(
            path=path,
            content_type=job.content_type or "application/octet-stream",
            filename=filename,
            size_bytes=job.size_bytes or path.stat().st_size,
        )

    # ------------------------------------------------------------------
    # Service metadata
    # ------------------------------------------------------------------
    def index_payload(self) -> Dict[str, Any]:
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "status": "online" if self._dispatcher.accepting else "draining",
            "endpoints": {
                "render": "POST /render",
                "status": "GET /status/<jobId>",
                "download": "GET /download/<jobId>",
                "health": "GET /health",
                "formats": "GET /formats",
            },
        }

    def formats_payload(self) -> Dict[str, Any]:
        payload = formats_payload(self._assembler.available_formats())
        payload["qualities"] = ["low", "medium", "high", "lossless"]
        return payload

    def health_payload(self) -> Dict[str, Any]:
        log_path = current_log_file()
        return {
            "status": "healthy" if self._dispatcher.accepting else "draining",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "uptime": int(time.monotonic() - self._started),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "jobs": self._dispatcher.stats(),
            "engine": self._pool.stats(),
            "statusBroadcast": {
                "enabled": bool(self._broadcaster and self._broadcaster.enabled),
                "lastError": self._broadcaster.last_error if self._broadcaster else None,
            },
            "logFile": str(log_path) if log_path else None,
            "system": _system_snapshot(),
        }

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------
    def shutdown(self, *, policy: Optional[str] = None, grace_seconds: Optional[float] = None) -> Mapping[str, Any]:
        """Drain the queue, settle in-flight jobs per ``policy`` and stop collaborators.

        ``finish`` waits up to ``grace_seconds`` for processing jobs; ``abandon``
        stops the engine immediately, which fails whatever is still capturing.
        """

        with self._shutdown_lock:
            if self._shutdown_done:
                return {"cancelled": [], "idle": True}
            self._shutdown_done = True

        policy = policy or self._app.config.get("FRAMECAST_SHUTDOWN_POLICY", "finish")
        if grace_seconds is None:
            grace_seconds = float(self._app.config.get("FRAMECAST_SHUTDOWN_GRACE_SECONDS", 30.0))

        LOGGER.info("Shutting down render service (policy=%s)", policy)
        cancelled = self._dispatcher.drain()
        if policy == "finish":
            idle = self._dispatcher.wait_idle(grace_seconds)
            if not idle:
                LOGGER.warning(
                    "%s job(s) still processing after %.1fs grace period",
                    self._dispatcher.active_count(),
                    grace_seconds,
                )
        else:
            idle = self._dispatcher.active_count() == 0

        if self._heartbeat is not None:
            self._heartbeat.stop()
        self._pool.shutdown()
        if self._broadcaster is not None:
            self._broadcaster.publish_stats(self._dispatcher.stats())
            self._broadcaster.close()
        return {"cancelled": cancelled, "idle": idle}


def _system_snapshot() -> Dict[str, Any]:
    memory = psutil.virtual_memory()
    try:
        load_average = [round(value, 2) for value in psutil.getloadavg()]
    except (AttributeError, OSError):
        load_average = None
    return {
        "platform": platform.system().lower(),
        "memory": {
            "used": (memory.total - memory.available) // 1024**2,
            "total": memory.total // 1024**2,
            "unit": "MB",
        },
        "loadAverage": load_average,
    }


def get_runtime(app: Flask) -> RenderRuntime:
    runtime = app.extensions.get("framecast_runtime")
    if isinstance(runtime, RenderRuntime):
        return runtime
    runtime = RenderRuntime(app)
    app.extensions["framecast_runtime"] = runtime
    return runtime


def init_render_services(app: Flask) -> RenderRuntime:
    return get_runtime(app)


__all__ = [
    "DownloadArtifact",
    "RenderRuntime",
    "SERVICE_NAME",
    "SERVICE_VERSION",
    "get_runtime",
    "init_render_services",
]
