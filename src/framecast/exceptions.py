"""Custom exceptions raised by the framecast package."""
from __future__ import annotations

from typing import Optional


class FramecastError(RuntimeError):
    """Base error for the framecast package.

    ``phase`` names the lifecycle step that failed and is recorded on the job
    record alongside the message.
    """

    phase = "internal"


class ValidationError(FramecastError):
    """Raised when a submission is rejected before a job is created."""

    phase = "validation"


class JobNotFoundError(FramecastError, LookupError):
    """Raised when a job id is unknown to the store."""

    phase = "lookup"

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class ArtifactNotFoundError(FramecastError, LookupError):
    """Raised when a completed job's artifact is no longer on disk."""

    phase = "retrieval"


class JobStateError(FramecastError):
    """Raised when a job update would break the lifecycle rules."""

    phase = "state"


class EngineError(FramecastError):
    """Raised when the rendering engine cannot start or load a document."""

    phase = "initializing"


class FrameCaptureError(FramecastError):
    """Raised when a single frame cannot be timed, captured or persisted."""

    phase = "capturing"

    def __init__(self, message: str, *, frame_index: Optional[int] = None) -> None:
        super().__init__(message)
        self.frame_index = frame_index


class PackagingError(FramecastError):
    """Raised when captured frames cannot be turned into an artifact."""

    phase = "packaging"


class EncodingError(PackagingError):
    """Raised when the FFmpeg process fails or exits unexpectedly."""


class ShutdownError(FramecastError):
    """Raised when work is refused because the service is draining."""

    phase = "shutdown"


class JobTimeoutError(FramecastError):
    """Raised when a job exceeds its wall-clock budget."""

    phase = "timeout"


def error_phase(exc: BaseException) -> str:
    """Return the lifecycle phase recorded for ``exc``."""

    if isinstance(exc, FramecastError):
        return exc.phase
    return "internal"


__all__ = [
    "ArtifactNotFoundError",
    "EncodingError",
    "EngineError",
    "FrameCaptureError",
    "FramecastError",
    "JobNotFoundError",
    "JobStateError",
    "JobTimeoutError",
    "PackagingError",
    "ShutdownError",
    "ValidationError",
    "error_phase",
]
