"""Job lifecycle engine for the render service."""
from __future__ import annotations

from .dispatcher import JobDispatcher, SHUTDOWN_MESSAGE
from .driver import DriverState, RenderSessionDriver
from .heartbeat import StatsHeartbeat
from .models import JobState, RenderJob
from .runner import JobRunner, RunCallbacks
from .status import JobStatusBroadcaster
from .store import JobStore

__all__ = [
    "DriverState",
    "JobDispatcher",
    "JobRunner",
    "JobState",
    "JobStatusBroadcaster",
    "JobStore",
    "RenderJob",
    "RenderSessionDriver",
    "RunCallbacks",
    "SHUTDOWN_MESSAGE",
    "StatsHeartbeat",
]
