"""Extension wiring for the render service Flask application."""
from __future__ import annotations

import logging
from http import HTTPStatus
from pathlib import Path
from typing import Optional

from flask import Flask, Response, jsonify, request

from framecast import FFmpegFrameEncoder, OutputAssembler
from framecast.assembler import FrameEncoder
from framecast.browser import DEFAULT_BROWSER_ARGS, EngineFactory, EnginePool, PlaywrightEngine, RenderEngine

from ..engine import (
    JobDispatcher,
    JobRunner,
    JobStatusBroadcaster,
    JobStore,
    RenderSessionDriver,
    StatsHeartbeat,
)
from ..routes import api_bp

LOGGER = logging.getLogger(__name__)


def default_engine_factory(app: Flask) -> EngineFactory:
    """Return a factory that launches Chromium with the app's browser settings."""

    headless = bool(app.config.get("FRAMECAST_BROWSER_HEADLESS", True))
    args = tuple(app.config.get("FRAMECAST_BROWSER_ARGS") or DEFAULT_BROWSER_ARGS)
    executable = app.config.get("FRAMECAST_BROWSER_EXECUTABLE")
    content_ready = float(app.config.get("FRAMECAST_CONTENT_READY_SECONDS", 0.5))

    def _factory() -> RenderEngine:
        return PlaywrightEngine(
            headless=headless,
            args=args,
            executable_path=executable,
            content_ready_seconds=content_ready,
        )

    return _factory


def init_status_broadcaster(app: Flask) -> JobStatusBroadcaster:
    broadcaster = JobStatusBroadcaster(
        redis_url=app.config.get("FRAMECAST_STATUS_REDIS_URL"),
        prefix=app.config.get("FRAMECAST_STATUS_PREFIX", "framecast"),
        channel=app.config.get("FRAMECAST_STATUS_CHANNEL"),
        ttl_seconds=int(app.config.get("FRAMECAST_STATUS_TTL_SECONDS", 3600) or 0),
    )
    app.extensions["framecast_status_broadcaster"] = broadcaster
    if broadcaster.enabled and not broadcaster.available:
        LOGGER.warning("Status broadcasting unavailable: %s", broadcaster.last_error)
    return broadcaster


def init_engine_pool(app: Flask, engine_factory: Optional[EngineFactory] = None) -> EnginePool:
    pool = EnginePool(engine_factory or default_engine_factory(app))
    app.extensions["framecast_engine_pool"] = pool
    return pool


def init_assembler(app: Flask, encoder: Optional[FrameEncoder] = None) -> OutputAssembler:
    if encoder is None:
        encoder = FFmpegFrameEncoder(app.config.get("FRAMECAST_FFMPEG_BINARY", "ffmpeg"))
    assembler = OutputAssembler(encoder)
    app.extensions["framecast_assembler"] = assembler
    return assembler


def init_job_engine(
    app: Flask,
    *,
    pool: EnginePool,
    assembler: OutputAssembler,
    status_broadcaster: JobStatusBroadcaster,
) -> JobDispatcher:
    store = JobStore()
    if status_broadcaster.enabled:
        store.add_listener(status_broadcaster.publish_job)

    work_dir = Path(app.config["FRAMECAST_WORK_DIR"]).expanduser()
    work_dir.mkdir(parents=True, exist_ok=True)

    driver = RenderSessionDriver(
        pool,
        store,
        settle_seconds=float(app.config.get("FRAMECAST_SETTLE_SECONDS", 0.05)),
    )
    runner = JobRunner(
        driver=driver,
        assembler=assembler,
        work_dir=work_dir,
        job_timeout_seconds=float(app.config.get("FRAMECAST_JOB_TIMEOUT_SECONDS", 300.0)),
        keep_frames=bool(app.config.get("FRAMECAST_KEEP_FRAMES", False)),
    )
    dispatcher = JobDispatcher(
        store,
        runner,
        max_concurrent=int(app.config.get("FRAMECAST_MAX_CONCURRENT_JOBS", 3)),
    )
    app.extensions["framecast_store"] = store
    app.extensions["framecast_dispatcher"] = dispatcher
    LOGGER.info(
        "Job engine ready (max_concurrent=%s, work_dir=%s)",
        dispatcher.max_concurrent,
        work_dir,
    )
    return dispatcher


def init_heartbeat(
    app: Flask,
    *,
    dispatcher: JobDispatcher,
    status_broadcaster: JobStatusBroadcaster,
) -> Optional[StatsHeartbeat]:
    if not status_broadcaster.enabled:
        return None
    heartbeat = StatsHeartbeat(
        dispatcher.stats,
        status_broadcaster.publish_stats,
        interval_seconds=float(app.config.get("FRAMECAST_STATUS_HEARTBEAT_SECONDS", 5.0)),
    )
    app.extensions["framecast_heartbeat"] = heartbeat
    heartbeat.start()
    return heartbeat


def register_blueprints(app: Flask) -> None:
    app.register_blueprint(api_bp)


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(HTTPStatus.NOT_FOUND)
    def _not_found(_exc):
        return jsonify({"error": "Endpoint not found", "status": HTTPStatus.NOT_FOUND.value}), HTTPStatus.NOT_FOUND

    @app.errorhandler(HTTPStatus.REQUEST_ENTITY_TOO_LARGE)
    def _too_large(_exc):
        status = HTTPStatus.REQUEST_ENTITY_TOO_LARGE
        return jsonify({"error": "Request body too large", "status": status.value}), status


def configure_cors(app: Flask, cors_origin: str | None) -> None:
    allowed = [origin.strip() for origin in (cors_origin or "*").split(",") if origin.strip()] or ["*"]

    @app.after_request
    def add_cors_headers(response: Response) -> Response:
        origin = request.headers.get("Origin")
        if "*" in allowed:
            allowed_origin = origin or "*"
        elif origin in allowed:
            allowed_origin = origin
        else:
            return response
        response.headers["Access-Control-Allow-Origin"] = allowed_origin
        response.headers.setdefault("Access-Control-Allow-Headers", "Content-Type, Authorization")
        response.headers.setdefault("Access-Control-Allow-Methods", "GET,POST,OPTIONS")
        response.headers.setdefault("Access-Control-Expose-Headers", "Content-Disposition")
        if allowed_origin != "*":
            response.headers.setdefault("Access-Control-Allow-Credentials", "true")
        if origin:
            response.headers.add("Vary", "Origin")
        return response


__all__ = [
    "configure_cors",
    "default_engine_factory",
    "init_assembler",
    "init_engine_pool",
    "init_heartbeat",
    "init_job_engine",
    "init_status_broadcaster",
    "register_blueprints",
    "register_error_handlers",
]
