"""Job records tracked by the render dispatcher."""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from framecast import RenderSpec


class JobState(str, Enum):
    """Lifecycle states of a render job."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS: Dict[JobState, FrozenSet[JobState]] = {
    JobState.QUEUED: frozenset({JobState.PROCESSING, JobState.CANCELLED}),
    JobState.PROCESSING: frozenset({JobState.COMPLETED, JobState.FAILED}),
    JobState.COMPLETED: frozenset(),
    JobState.FAILED: frozenset(),
    JobState.CANCELLED: frozenset(),
}


@dataclass(slots=True)
class RenderJob:
    """Mutable record for one submitted render.

    Instances handed out by the store are copies; only the store mutates the
    canonical record.
    """

    id: str
    spec: RenderSpec
    total_frames: int
    capture_frames: int
    created_at: datetime
    status: JobState = JobState.QUEUED
    progress: int = 0
    current_frame: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    error_phase: Optional[str] = None
    artifact_locator: Optional[str] = None
    size_bytes: Optional[int] = None
    content_type: Optional[str] = None

    def snapshot(self) -> "RenderJob":
        return dataclasses.replace(self)

    def to_status(self) -> Dict[str, Any]:
        """Return the public status payload for this job."""

        payload: Dict[str, Any] = {
            "jobId": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "currentFrame": self.current_frame,
            "totalFrames": self.total_frames,
            "captureFrames": self.capture_frames,
            "exportFormat": self.spec.export_format.value,
            "createdAt": _isoformat(self.created_at),
            "startedAt": _isoformat(self.started_at),
            "completedAt": _isoformat(self.completed_at),
            "error": self.error,
        }
        if self.error_phase:
            payload["errorPhase"] = self.error_phase
        if self.status is JobState.COMPLETED:
            payload["downloadUrl"] = f"/download/{self.id}"
            payload["artifactLocator"] = self.artifact_locator
            payload["sizeBytes"] = self.size_bytes
            payload["fileSize"] = _human_size(self.size_bytes)
        return payload


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _human_size(size_bytes: Optional[int]) -> Optional[str]:
    if size_bytes is None:
        return None
    return f"{round(size_bytes / 1024 / 1024)}MB"


__all__ = ["ALLOWED_TRANSITIONS", "JobState", "RenderJob"]
