"""Thread-safe in-memory store of render jobs."""
from __future__ import annotations

import logging
import math
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from framecast import RenderSpec, capture_frame_count, nominal_frame_count
from framecast.exceptions import JobNotFoundError, JobStateError

from .models import ALLOWED_TRANSITIONS, JobState, RenderJob

LOGGER = logging.getLogger(__name__)

JobListener = Callable[[RenderJob], None]

_MUTABLE_FIELDS = frozenset(
    {
        "status",
        "current_frame",
        "started_at",
        "completed_at",
        "error",
        "error_phase",
        "artifact_locator",
        "size_bytes",
        "content_type",
    }
)
_ARTIFACT_FIELDS = ("artifact_locator", "size_bytes")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_progress(current_frame: int, total_frames: int) -> int:
    """Percentage of ``total_frames`` captured, rounded half up."""

    if total_frames <= 0:
        return 0
    return int(math.floor(current_frame * 100 / total_frames + 0.5))


class JobStore:
    """Own every :class:`RenderJob` for the lifetime of the process.

    All reads return snapshots and all writes go through :meth:`update`, which
    enforces the lifecycle rules under a single lock.
    """

    def __init__(
        self,
        *,
        id_factory: Optional[Callable[[], str]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._jobs: Dict[str, RenderJob] = {}
        self._listeners: List[JobListener] = []
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._clock = clock or _utcnow

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_listener(self, listener: JobListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def _notify(self, job: RenderJob) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(job)
            except Exception:
                LOGGER.exception("Job listener failed for %s", job.id)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def now(self) -> datetime:
        return self._clock()

    def insert(self, spec: RenderSpec) -> RenderJob:
        """Create a queued job for ``spec`` and return a snapshot of it."""

        with self._lock:
            job_id = self._id_factory()
            while job_id in self._jobs:
                job_id = self._id_factory()
            job = RenderJob(
                id=job_id,
                spec=spec,
                total_frames=nominal_frame_count(spec),
                capture_frames=capture_frame_count(spec),
                created_at=self._clock(),
            )
            self._jobs[job_id] = job
            snapshot = job.snapshot()
        self._notify(snapshot)
        return snapshot

    def get(self, job_id: str) -> RenderJob:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job.snapshot()

    def status_of(self, job_id: str) -> Optional[JobState]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.status if job is not None else None

    def update(self, job_id: str, **changes: Any) -> Optional[RenderJob]:
        """Atomically merge ``changes`` into the job.

        Unknown ids are ignored and return ``None``. Illegal status edges,
        artifact fields on a non-completed job and frame updates outside
        ``processing`` raise :class:`JobStateError`.
        """

        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise JobStateError(f"Cannot update job fields: {', '.join(sorted(unknown))}")

        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                LOGGER.debug("Ignoring update for unknown job %s", job_id)
                return None

            target = job.status
            if "status" in changes:
                target = JobState(changes["status"])
                if target not in ALLOWED_TRANSITIONS[job.status]:
                    raise JobStateError(
                        f"Job {job_id} cannot move from {job.status.value} to {target.value}"
                    )

            if "current_frame" in changes and job.status is not JobState.PROCESSING:
                raise JobStateError(
                    f"Job {job_id} is {job.status.value}; frame progress is only accepted while processing"
                )

            if any(changes.get(name) is not None for name in _ARTIFACT_FIELDS) and target is not JobState.COMPLETED:
                raise JobStateError(f"Artifact fields require job {job_id} to be completed")

            for name, value in changes.items():
                setattr(job, name, value)
            job.status = target
            if "current_frame" in changes:
                job.progress = compute_progress(job.current_frame, job.total_frames)
            if target is JobState.COMPLETED:
                job.progress = 100
            snapshot = job.snapshot()

        self._notify(snapshot)
        return snapshot

    def counts(self) -> Dict[str, int]:
        with self._lock:
            counts = {state.value: 0 for state in JobState}
            for job in self._jobs.values():
                counts[job.status.value] += 1
            counts["total"] = len(self._jobs)
            return counts


__all__ = ["JobListener", "JobStore", "compute_progress"]
