"""Drive one render session frame by frame."""
from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, Optional

from framecast import FrameStore, frame_plan
from framecast.browser import EnginePool, RenderSession
from framecast.document import build_document
from framecast.exceptions import EngineError, FrameCaptureError, FramecastError, JobTimeoutError

from .models import RenderJob
from .store import JobStore

LOGGER = logging.getLogger(__name__)

PROGRESS_LOG_INTERVAL = 10


class DriverState(str, Enum):
    """Phases a session passes through while a job is captured."""

    INITIALIZING = "initializing"
    CONTENT_LOADED = "content_loaded"
    CAPTURING = "capturing"
    FINALIZING = "finalizing"
    PACKAGING_HANDOFF = "packaging_handoff"
    ABORTED = "aborted"


StateListener = Callable[[str, DriverState], None]


class RenderSessionDriver:
    """Capture every frame of a job, in order, through a pooled engine.

    Each frame is timed, captured, written to disk and reported to the store
    before the next one starts. The first failure aborts the job; the session
    is closed and the engine released on every path.
    """

    def __init__(
        self,
        pool: EnginePool,
        store: JobStore,
        *,
        settle_seconds: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        on_state: Optional[StateListener] = None,
    ) -> None:
        self._pool = pool
        self._store = store
        self._settle_seconds = max(0.0, settle_seconds)
        self._sleep = sleep
        self._clock = clock
        self._on_state = on_state

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------
    def run(self, job: RenderJob, frames: FrameStore, *, deadline: Optional[float] = None) -> int:
        """Capture ``job`` into ``frames`` and return the number of frames written."""

        spec = job.spec
        plan = frame_plan(spec)
        self._enter(job.id, DriverState.INITIALIZING)
        frames.prepare()

        engine = self._pool.acquire()
        session: Optional[RenderSession] = None
        try:
            session = self._open(engine, job, deadline)
            self._enter(job.id, DriverState.CONTENT_LOADED)

            LOGGER.info("Starting capture of %s frames for job %s", len(plan), job.id)
            self._enter(job.id, DriverState.CAPTURING)
            for timing in plan:
                try:
                    session.set_time(timing.applied_time, timeout=self._budget(job.id, deadline))
                    if self._settle_seconds:
                        self._sleep(self._settle_seconds)
                    data = session.capture_frame(
                        transparent=spec.transparent,
                        timeout=self._budget(job.id, deadline),
                    )
                    frames.write_frame(timing.index, data)
                except JobTimeoutError:
                    raise
                except Exception as exc:
                    raise FrameCaptureError(
                        f"Frame {timing.index} failed: {exc}",
                        frame_index=timing.index,
                    ) from exc
                captured = timing.index + 1
                self._store.update(job.id, current_frame=captured)
                if captured % PROGRESS_LOG_INTERVAL == 0:
                    LOGGER.info("Job %s: captured frame %s/%s", job.id, captured, len(plan))

            self._enter(job.id, DriverState.FINALIZING)
            self._close(job.id, session)
            session = None
            self._enter(job.id, DriverState.PACKAGING_HANDOFF)
            return len(plan)
        except BaseException:
            self._enter(job.id, DriverState.ABORTED)
            raise
        finally:
            if session is not None:
                self._close(job.id, session)
            self._pool.release(engine)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _open(self, engine, job: RenderJob, deadline: Optional[float]) -> RenderSession:
        spec = job.spec
        try:
            session = engine.open_session(
                build_document(spec),
                spec.viewport,
                spec.animation_script,
                timeout=self._budget(job.id, deadline),
            )
        except FramecastError:
            raise
        except Exception as exc:
            raise EngineError(f"Failed to load content for job {job.id}: {exc}") from exc
        try:
            session.install_time_hook(timeout=self._budget(job.id, deadline))
        except FramecastError:
            self._close(job.id, session)
            raise
        except Exception as exc:
            self._close(job.id, session)
            raise EngineError(f"Failed to install time hook for job {job.id}: {exc}") from exc
        return session

    def _budget(self, job_id: str, deadline: Optional[float]) -> Optional[float]:
        """Seconds the next engine call may take, or ``None`` without a deadline."""

        if deadline is None:
            return None
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise JobTimeoutError(f"Job {job_id} exceeded its time budget during capture")
        return remaining

    def _close(self, job_id: str, session: RenderSession) -> None:
        try:
            session.close()
        except Exception as exc:
            LOGGER.warning("Failed to close render session for job %s: %s", job_id, exc)

    def _enter(self, job_id: str, state: DriverState) -> None:
        LOGGER.debug("Job %s session %s", job_id, state.value)
        if self._on_state is not None:
            self._on_state(job_id, state)


__all__ = ["DriverState", "RenderSessionDriver"]
