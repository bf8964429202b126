from __future__ import annotations

import threading
from pathlib import Path
from typing import List, Optional

import pytest

from framecast import ExportFormat, RenderSpec, Viewport
from framecast.browser import EnginePool, EngineThread

PNG_HEADER = b"\x89PNG\r\n\x1a\n"


class FakeSession:
    def __init__(self, engine: "FakeEngine") -> None:
        self.engine = engine
        self.times: List[float] = []
        self.timeouts: List[Optional[float]] = []
        self.captures = 0
        self.hook_installed = False
        self.closed = False

    def install_time_hook(self, *, timeout: Optional[float] = None) -> None:
        if self.engine.fail_on_hook:
            raise RuntimeError("hook exploded")
        self.hook_installed = True

    def set_time(self, seconds: float, *, timeout: Optional[float] = None) -> None:
        self.timeouts.append(timeout)
        self.engine.worker.call(self._apply_time, seconds, call_timeout=timeout)

    def capture_frame(self, *, transparent: bool, timeout: Optional[float] = None) -> bytes:
        index = self.captures
        if self.engine.gate is not None:
            self.engine.gate.wait(timeout=5)
        if self.engine.killed:
            raise RuntimeError("Target page, context or browser has been closed")
        if self.engine.fail_at_frame is not None and index == self.engine.fail_at_frame:
            raise RuntimeError(f"screenshot failed at {index}")
        self.captures += 1
        return PNG_HEADER + f"frame-{index}".encode("ascii")

    def close(self) -> None:
        self.closed = True

    def _apply_time(self, seconds: float) -> None:
        # Stands in for an animation script stuck in an endless loop.
        if self.engine.hang is not None:
            self.engine.hang.wait(timeout=5)
        if self.engine.killed:
            raise RuntimeError("Target page, context or browser has been closed")
        self.times.append(seconds)


class FakeEngine:
    def __init__(self) -> None:
        self.sessions: List[FakeSession] = []
        self.documents: List[str] = []
        self.viewports: List[Viewport] = []
        self.scripts: List[Optional[str]] = []
        self.open_timeouts: List[Optional[float]] = []
        self.alive = True
        self.killed = False
        self.shutdown_called = False
        self.fail_on_open = False
        self.fail_on_hook = False
        self.fail_at_frame: Optional[int] = None
        self.gate: Optional[threading.Event] = None
        self.hang: Optional[threading.Event] = None
        self.worker = EngineThread("fake-engine", on_hang=self._kill)

    def open_session(
        self,
        document: str,
        viewport: Viewport,
        animation_script: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
    ) -> FakeSession:
        if self.fail_on_open:
            raise RuntimeError("page crashed while loading")
        self.documents.append(document)
        self.viewports.append(viewport)
        self.scripts.append(animation_script)
        self.open_timeouts.append(timeout)
        session = FakeSession(self)
        self.sessions.append(session)
        return session

    def is_alive(self) -> bool:
        return self.alive and not self.worker.hung

    def shutdown(self) -> None:
        self.shutdown_called = True
        self._kill()
        self.worker.shutdown()

    def _kill(self) -> None:
        self.alive = False
        self.killed = True
        for event in (self.gate, self.hang):
            if event is not None:
                event.set()


class FakeEncoder:
    def __init__(self) -> None:
        self.formats = frozenset({ExportFormat.MOV, ExportFormat.WEBM, ExportFormat.GIF})
        self.requests = []
        self.fail_with: Optional[BaseException] = None

    def available_formats(self):
        return self.formats

    def encode(self, frames, request, output_path: Path, *, timeout=None) -> Path:
        self.requests.append((request, [path.name for path in frames.ordered_frames()], timeout))
        output_path.write_bytes(b"partial-media")
        if self.fail_with is not None:
            raise self.fail_with
        output_path.write_bytes(b"media:" + str(len(frames.ordered_frames())).encode("ascii"))
        return output_path


class EngineFactory:
    """Create a fresh FakeEngine per launch and remember each one."""

    def __init__(self) -> None:
        self.created: List[FakeEngine] = []

    def __call__(self) -> FakeEngine:
        engine = FakeEngine()
        self.created.append(engine)
        return engine


@pytest.fixture()
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture()
def engine_pool(fake_engine: FakeEngine) -> EnginePool:
    return EnginePool(lambda: fake_engine)


@pytest.fixture()
def engine_factory() -> EngineFactory:
    return EngineFactory()


@pytest.fixture()
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest.fixture()
def make_spec():
    def _make_spec(**overrides) -> RenderSpec:
        values = {
            "content": "<canvas id='stage'></canvas>",
            "duration": 1.0,
            "fps": 10,
            "width": 64,
            "height": 32,
            "resolution_multiplier": 1,
        }
        values.update(overrides)
        return RenderSpec(**values)

    return _make_spec
