"""Run admitted jobs on background threads."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from framecast import Artifact, FrameStore, OutputAssembler
from framecast.exceptions import FramecastError, JobTimeoutError

from .driver import RenderSessionDriver
from .models import RenderJob

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunCallbacks:
    """Callbacks used to surface lifecycle events from the runner thread."""

    on_completed: Callable[[str, Optional[Artifact], Optional[BaseException]], None]
    on_started: Optional[Callable[[str], None]] = None


class JobRunner:
    """Capture and package one job per background thread."""

    def __init__(
        self,
        *,
        driver: RenderSessionDriver,
        assembler: OutputAssembler,
        work_dir: Path,
        job_timeout_seconds: float = 300.0,
        keep_frames: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._driver = driver
        self._assembler = assembler
        self._work_dir = Path(work_dir)
        self._timeout = max(0.0, float(job_timeout_seconds))
        self._keep_frames = keep_frames
        self._clock = clock

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------
    def launch(self, job: RenderJob, callbacks: RunCallbacks) -> threading.Thread:
        """Start ``job`` in a daemon thread; the outcome goes to ``callbacks``."""

        thread = threading.Thread(
            target=self.run,
            args=(job, callbacks),
            name=f"framecast-job-{job.id[:8]}",
            daemon=True,
        )
        thread.start()
        return thread

    def run(self, job: RenderJob, callbacks: RunCallbacks) -> None:
        frames = FrameStore(self._work_dir / job.id, job.capture_frames)
        deadline = self._clock() + self._timeout if self._timeout else None
        try:
            if callbacks.on_started is not None:
                callbacks.on_started(job.id)
            self._driver.run(job, frames, deadline=deadline)
            artifact = self._assembler.assemble(
                job.id,
                job.spec,
                frames,
                created_at=job.created_at,
                timeout=self._remaining(job.id, deadline),
            )
        except FramecastError as exc:
            LOGGER.error("Job %s failed during %s: %s", job.id, exc.phase, exc)
            frames.remove_all()
            callbacks.on_completed(job.id, None, exc)
            return
        except Exception as exc:
            LOGGER.exception("Job %s failed unexpectedly", job.id)
            frames.remove_all()
            callbacks.on_completed(job.id, None, exc)
            return

        if not self._keep_frames:
            frames.remove_frames()
        LOGGER.info("Job %s completed successfully", job.id)
        callbacks.on_completed(job.id, artifact, None)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _remaining(self, job_id: str, deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise JobTimeoutError(f"Job {job_id} exceeded its time budget before packaging")
        return remaining


__all__ = ["JobRunner", "RunCallbacks"]
