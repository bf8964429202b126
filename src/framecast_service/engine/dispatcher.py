"""Admission queue and bounded concurrency for render jobs."""
from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Deque, Dict, List, Optional, Protocol, Set

from framecast import Artifact, RenderSpec
from framecast.exceptions import JobStateError, ShutdownError, error_phase

from .models import JobState, RenderJob
from .runner import RunCallbacks
from .store import JobStore

LOGGER = logging.getLogger(__name__)

SHUTDOWN_MESSAGE = "service shutting down"


class JobLauncher(Protocol):
    def launch(self, job: RenderJob, callbacks: RunCallbacks) -> object:
        ...


class JobDispatcher:
    """Hand queued jobs to the launcher while fewer than ``max_concurrent`` run.

    There is no worker pool: a counted slot is taken when a job moves to
    ``processing`` and given back when its runner reports an outcome, at which
    point the next queued job is admitted.
    """

    def __init__(self, store: JobStore, launcher: JobLauncher, *, max_concurrent: int = 3) -> None:
        self._store = store
        self._launcher = launcher
        self._max_concurrent = max(1, int(max_concurrent))
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._queue: Deque[str] = deque()
        self._active: Set[str] = set()
        self._accepting = True

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def accepting(self) -> bool:
        with self._lock:
            return self._accepting

    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def submit(self, spec: RenderSpec) -> RenderJob:
        """Create a queued job for ``spec`` and try to start it immediately.

        The store is only called outside the dispatcher lock: store listeners
        may do network I/O and must never stall admission or stats.
        """

        if not self.accepting:
            raise ShutdownError("Service is shutting down; new jobs are not accepted")
        job = self._store.insert(spec)
        with self._lock:
            admitted = self._accepting
            if admitted:
                self._queue.append(job.id)
        if not admitted:
            self._cancel(job.id)
            raise ShutdownError("Service is shutting down; new jobs are not accepted")
        LOGGER.info(
            "Queued job %s (%s frames, format=%s)",
            job.id,
            job.capture_frames,
            spec.export_format.value,
        )
        self.dispatch()
        return self._store.get(job.id)

    def dispatch(self) -> None:
        """Start queued jobs until every slot is taken or the queue is empty."""

        while True:
            job_id = self._reserve_slot()
            if job_id is None:
                return
            job = self._mark_processing(job_id)
            if job is None:
                self._free_slot(job_id)
                continue
            LOGGER.info("Starting job %s", job.id)
            try:
                self._launcher.launch(job, RunCallbacks(on_completed=self._on_completed))
            except Exception as exc:
                LOGGER.exception("Failed to launch job %s", job.id)
                self._record_outcome(job.id, None, exc)
                self._free_slot(job.id)

    def drain(self) -> List[str]:
        """Cancel every queued job and refuse new submissions.

        Jobs already processing are left to finish.
        """

        with self._lock:
            self._accepting = False
            pending = list(self._queue)
            self._queue.clear()

        cancelled = [job_id for job_id in pending if self._cancel(job_id)]
        if cancelled:
            LOGGER.info("Cancelled %s queued job(s) for shutdown", len(cancelled))
        return cancelled

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no job is processing; ``False`` if ``timeout`` expires first."""

        with self._idle:
            return self._idle.wait_for(lambda: not self._active, timeout)

    def stats(self) -> Dict[str, int]:
        counts = self._store.counts()
        with self._lock:
            counts["activeJobs"] = len(self._active)
            counts["queueLength"] = len(self._queue)
            counts["maxConcurrent"] = self._max_concurrent
        return counts

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _reserve_slot(self) -> Optional[str]:
        """Pop the next queued job and count it against the limit."""

        with self._lock:
            while len(self._active) < self._max_concurrent and self._queue:
                job_id = self._queue.popleft()
                if self._store.status_of(job_id) is not JobState.QUEUED:
                    LOGGER.debug("Skipping job %s; no longer queued", job_id)
                    continue
                self._active.add(job_id)
                return job_id
        return None

    def _free_slot(self, job_id: str) -> None:
        with self._idle:
            self._active.discard(job_id)
            self._idle.notify_all()

    def _mark_processing(self, job_id: str) -> Optional[RenderJob]:
        try:
            return self._store.update(
                job_id,
                status=JobState.PROCESSING,
                started_at=self._store.now(),
            )
        except JobStateError:
            LOGGER.debug("Job %s left the queue before it could start", job_id)
            return None

    def _cancel(self, job_id: str) -> bool:
        try:
            job = self._store.update(
                job_id,
                status=JobState.CANCELLED,
                completed_at=self._store.now(),
                error=SHUTDOWN_MESSAGE,
                error_phase=ShutdownError.phase,
            )
        except JobStateError:
            LOGGER.debug("Job %s left the queue before it could be cancelled", job_id)
            return False
        return job is not None

    def _on_completed(
        self,
        job_id: str,
        artifact: Optional[Artifact],
        exc: Optional[BaseException],
    ) -> None:
        try:
            self._record_outcome(job_id, artifact, exc)
        finally:
            self._free_slot(job_id)
            self.dispatch()

    def _record_outcome(
        self,
        job_id: str,
        artifact: Optional[Artifact],
        exc: Optional[BaseException],
    ) -> None:
        try:
            if exc is None and artifact is not None:
                self._store.update(
                    job_id,
                    status=JobState.COMPLETED,
                    completed_at=self._store.now(),
                    artifact_locator=str(artifact.path),
                    size_bytes=artifact.size_bytes,
                    content_type=artifact.content_type,
                )
            else:
                message = str(exc) if exc is not None else "Job finished without an artifact"
                self._store.update(
                    job_id,
                    status=JobState.FAILED,
                    completed_at=self._store.now(),
                    error=message or exc.__class__.__name__,
                    error_phase=error_phase(exc) if exc is not None else "internal",
                )
        except Exception:
            LOGGER.exception("Failed to record outcome for job %s", job_id)


__all__ = ["JobDispatcher", "JobLauncher", "SHUTDOWN_MESSAGE"]
