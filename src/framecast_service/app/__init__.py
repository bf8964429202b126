"""Render service application factory."""
from __future__ import annotations

from typing import Any, Mapping, Optional

from flask import Flask

from framecast.assembler import FrameEncoder
from framecast.browser import EngineFactory

from .bootstrap import ensure_single_worker, init_logging, install_shutdown_hooks, load_configuration
from .extensions import (
    configure_cors,
    init_assembler,
    init_engine_pool,
    init_heartbeat,
    init_job_engine,
    init_status_broadcaster,
    register_blueprints,
    register_error_handlers,
)
from ..services import init_render_services


def create_app(
    config_overrides: Optional[Mapping[str, Any]] = None,
    *,
    engine_factory: Optional[EngineFactory] = None,
    encoder: Optional[FrameEncoder] = None,
) -> Flask:
    """Create and configure the render service Flask application.

    ``engine_factory`` and ``encoder`` replace the Chromium and FFmpeg
    collaborators, which is how the test suite runs without either installed.
    """

    app = Flask(__name__)
    load_configuration(app, config_overrides)
    init_logging(app)
    ensure_single_worker()

    status_broadcaster = init_status_broadcaster(app)
    pool = init_engine_pool(app, engine_factory)
    assembler = init_assembler(app, encoder)
    dispatcher = init_job_engine(
        app,
        pool=pool,
        assembler=assembler,
        status_broadcaster=status_broadcaster,
    )
    init_heartbeat(app, dispatcher=dispatcher, status_broadcaster=status_broadcaster)
    runtime = init_render_services(app)

    register_blueprints(app)
    register_error_handlers(app)
    configure_cors(app, app.config.get("FRAMECAST_CORS_ORIGIN", "*"))
    install_shutdown_hooks(app, runtime)

    return app


__all__ = ["create_app"]
