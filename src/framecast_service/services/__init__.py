"""Service layer for the render application."""
from __future__ import annotations

from .render_session import DownloadArtifact, RenderRuntime, get_runtime, init_render_services
from .validation import SubmissionLimits, build_render_spec

__all__ = [
    "DownloadArtifact",
    "RenderRuntime",
    "SubmissionLimits",
    "build_render_spec",
    "get_runtime",
    "init_render_services",
]
