from __future__ import annotations

import threading
import time
import zipfile
from pathlib import Path

from framecast import ExportFormat, OutputAssembler
from framecast.browser import EnginePool
from framecast.exceptions import EncodingError, JobTimeoutError
from framecast_service.engine import JobRunner, JobState, JobStore, RenderSessionDriver, RunCallbacks


class Outcome:
    def __init__(self) -> None:
        self.started = []
        self.results = []

    def callbacks(self) -> RunCallbacks:
        return RunCallbacks(
            on_completed=lambda job_id, artifact, exc: self.results.append((job_id, artifact, exc)),
            on_started=self.started.append,
        )


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _runner(engine_pool, store, tmp_path, encoder=None, clock=None, **kwargs) -> JobRunner:
    clock = clock or FakeClock()
    return JobRunner(
        driver=RenderSessionDriver(engine_pool, store, settle_seconds=0, clock=clock),
        clock=clock,
        assembler=OutputAssembler(encoder),
        work_dir=tmp_path / "work",
        **kwargs,
    )


def _processing_job(store: JobStore, spec):
    job = store.insert(spec)
    return store.update(job.id, status=JobState.PROCESSING)


def test_successful_run_keeps_artifact_and_removes_frames(engine_pool, make_spec, tmp_path: Path) -> None:
    store = JobStore()
    job = _processing_job(store, make_spec(duration=0.5, fps=10))
    outcome = Outcome()

    _runner(engine_pool, store, tmp_path).run(job, outcome.callbacks())

    [(job_id, artifact, exc)] = outcome.results
    assert outcome.started == [job.id]
    assert exc is None and job_id == job.id
    assert artifact.path == tmp_path / "work" / job.id / f"{job.id}.zip"
    assert artifact.content_type == "application/zip"
    with zipfile.ZipFile(artifact.path) as archive:
        assert len([name for name in archive.namelist() if name.startswith("frames/")]) == 5
    assert not (tmp_path / "work" / job.id / "frames").exists()


def test_keep_frames_leaves_capture_directory(engine_pool, make_spec, tmp_path: Path) -> None:
    store = JobStore()
    job = _processing_job(store, make_spec(duration=0.2, fps=10))
    outcome = Outcome()

    _runner(engine_pool, store, tmp_path, keep_frames=True).run(job, outcome.callbacks())

    assert len(list((tmp_path / "work" / job.id / "frames").iterdir())) == 2


def test_failed_run_removes_job_directory(engine_pool, fake_engine, fake_encoder, make_spec, tmp_path: Path) -> None:
    store = JobStore()
    job = _processing_job(store, make_spec(duration=0.3, fps=10, export_format=ExportFormat.WEBM))
    fake_encoder.fail_with = EncodingError("FFmpeg exited with 1: bad pixel format")
    outcome = Outcome()

    _runner(engine_pool, store, tmp_path, encoder=fake_encoder).run(job, outcome.callbacks())

    [(_, artifact, exc)] = outcome.results
    assert artifact is None
    assert isinstance(exc, EncodingError)
    assert not (tmp_path / "work" / job.id).exists()


def test_media_export_passes_remaining_budget_to_encoder(engine_pool, fake_encoder, make_spec, tmp_path: Path) -> None:
    store = JobStore()
    spec = make_spec(duration=0.2, fps=10, export_format=ExportFormat.GIF, resolution_multiplier=2)
    job = _processing_job(store, spec)
    clock = FakeClock(100.0)
    results = []

    def _started(_job_id: str) -> None:
        clock.now = 110.0

    runner = _runner(
        engine_pool,
        store,
        tmp_path,
        encoder=fake_encoder,
        job_timeout_seconds=60,
        clock=clock,
    )
    runner.run(job, RunCallbacks(on_completed=lambda *args: results.append(args), on_started=_started))

    [(request, names, timeout)] = fake_encoder.requests
    assert request.export_format is ExportFormat.GIF
    assert (request.width, request.height, request.fps) == (128, 64, 10)
    assert names == ["frame_0000.png", "frame_0001.png"]
    assert timeout == 50.0
    [(_, artifact, exc)] = results
    assert exc is None
    assert artifact.content_type == "image/gif"


def test_spent_budget_fails_job_with_timeout_phase(engine_pool, fake_engine, make_spec, tmp_path: Path) -> None:
    store = JobStore()
    job = _processing_job(store, make_spec(duration=0.1, fps=10))
    clock = FakeClock(0.0)
    results = []

    def _started(_job_id: str) -> None:
        clock.now = 500.0

    runner = _runner(engine_pool, store, tmp_path, job_timeout_seconds=10, clock=clock)
    runner.run(job, RunCallbacks(on_completed=lambda *args: results.append(args), on_started=_started))

    [(_, artifact, exc)] = results
    assert artifact is None
    assert isinstance(exc, JobTimeoutError)
    assert exc.phase == "timeout"
    assert fake_engine.sessions == []
    assert not (tmp_path / "work" / job.id).exists()


def test_job_stuck_in_engine_call_fails_within_its_budget(engine_factory, make_spec, tmp_path: Path) -> None:
    pool = EnginePool(engine_factory)
    store = JobStore()
    job = _processing_job(store, make_spec(duration=0.5, fps=10))
    engine = pool.acquire()
    pool.release(engine)
    engine.hang = threading.Event()
    done = threading.Event()
    results = []

    def _completed(*args) -> None:
        results.append(args)
        done.set()

    runner = JobRunner(
        driver=RenderSessionDriver(pool, store, settle_seconds=0),
        assembler=OutputAssembler(None),
        work_dir=tmp_path / "work",
        job_timeout_seconds=0.2,
    )
    started = time.monotonic()
    try:
        runner.launch(job, RunCallbacks(on_completed=_completed))
        assert done.wait(timeout=1.0)
    finally:
        engine.hang.set()

    assert time.monotonic() - started < 1.0
    [(_, artifact, exc)] = results
    assert artifact is None
    assert isinstance(exc, JobTimeoutError)
    assert pool.acquire() is not engine
    assert pool.stats()["restarts"] == 1
