"""Root package for the framecast render service."""
from __future__ import annotations

from .app import create_app
from .engine import JobDispatcher, JobState, JobStore, RenderSessionDriver
from .routes import api_bp

__all__ = [
    "JobDispatcher",
    "JobState",
    "JobStore",
    "RenderSessionDriver",
    "api_bp",
    "create_app",
]
