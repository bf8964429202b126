"""Headless-browser rendering engine used to capture frames.

Playwright's synchronous objects are bound to the thread that created them,
so :class:`PlaywrightEngine` confines every browser call to one
:class:`EngineThread`. Job threads wait on that thread with a timeout taken
from their own deadline; a call that never returns marks the engine hung,
its browser processes are killed and the pool relaunches it on the next
acquisition.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, List, Optional, Protocol, Sequence, TypeVar

import psutil
from playwright.sync_api import Browser, BrowserContext, Page, Playwright, sync_playwright

from .config import Viewport
from .document import SET_TIME_SCRIPT, TIME_HOOK_SCRIPT
from .exceptions import EngineError, JobTimeoutError

LOGGER = logging.getLogger(__name__)

DEFAULT_BROWSER_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
)

LAUNCH_TIMEOUT_SECONDS = 60.0
LIVENESS_TIMEOUT_SECONDS = 5.0
CLOSE_TIMEOUT_SECONDS = 10.0
TERMINATE_TIMEOUT_SECONDS = 3.0

T = TypeVar("T")


class RenderSession(Protocol):
    """One loaded document inside a rendering engine.

    ``timeout`` is the number of seconds the caller is prepared to wait; an
    engine that cannot answer in time raises :class:`JobTimeoutError`.
    """

    def install_time_hook(self, *, timeout: Optional[float] = None) -> None:
        ...

    def set_time(self, seconds: float, *, timeout: Optional[float] = None) -> None:
        ...

    def capture_frame(self, *, transparent: bool, timeout: Optional[float] = None) -> bytes:
        ...

    def close(self) -> None:
        ...


class RenderEngine(Protocol):
    """A long-lived rendering process able to open sessions."""

    def open_session(
        self,
        document: str,
        viewport: Viewport,
        animation_script: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
    ) -> RenderSession:
        ...

    def is_alive(self) -> bool:
        ...

    def shutdown(self) -> None:
        ...


EngineFactory = Callable[[], RenderEngine]


class EngineThread:
    """Run an engine's calls one at a time on a dedicated thread.

    Callers wait at most ``call_timeout`` seconds. The first call to overrun
    marks the thread hung and invokes ``on_hang``, which must unblock the
    stuck call (normally by killing the engine process). Every later call
    fails immediately with :class:`EngineError`.
    """

    def __init__(self, name: str, *, on_hang: Optional[Callable[[], None]] = None) -> None:
        self._name = name
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._on_hang = on_hang
        self._lock = threading.Lock()
        self._hung = False

    @property
    def hung(self) -> bool:
        return self._hung

    def call(self, func: Callable[..., T], *args: Any, call_timeout: Optional[float] = None, **kwargs: Any) -> T:
        """Run ``func`` on the engine thread and wait for its result."""

        if self._hung:
            raise EngineError(f"{self._name} stopped responding and must be restarted")
        if call_timeout is not None and call_timeout <= 0:
            raise JobTimeoutError(f"No time left to call {_describe(func)}")
        future = self._executor.submit(func, *args, **kwargs)
        try:
            return future.result(timeout=call_timeout)
        except FutureTimeoutError as exc:
            self._mark_hung(func, call_timeout)
            raise JobTimeoutError(
                f"{_describe(func)} did not return within {call_timeout:.2f}s"
            ) from exc

    def shutdown(self) -> None:
        self._executor.shutdown(wait=not self._hung, cancel_futures=True)

    def _mark_hung(self, func: Callable[..., Any], call_timeout: Optional[float]) -> None:
        with self._lock:
            if self._hung:
                return
            self._hung = True
        LOGGER.error("%s is stuck in %s after %.2fs; abandoning it", self._name, _describe(func), call_timeout)
        if self._on_hang is None:
            return
        try:
            self._on_hang()
        except Exception:
            LOGGER.exception("Failed to stop hung %s", self._name)


def _describe(func: Callable[..., Any]) -> str:
    return getattr(func, "__qualname__", None) or getattr(func, "__name__", None) or repr(func)


class EnginePool:
    """Keep one engine warm and restart it when it stops responding."""

    def __init__(self, factory: EngineFactory) -> None:
        self._factory = factory
        self._lock = threading.Lock()
        self._engine: Optional[RenderEngine] = None
        self._leases = 0
        self._restarts = 0
        self._closed = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def acquire(self) -> RenderEngine:
        """Return a live engine, launching or relaunching it when needed."""

        with self._lock:
            if self._closed:
                raise EngineError("Engine pool has been shut down")
            engine = self._engine
            if engine is not None and not self._responds(engine):
                LOGGER.warning("Rendering engine is no longer alive; restarting")
                self._discard(engine)
                self._engine = engine = None
                self._restarts += 1
            if engine is None:
                LOGGER.info("Launching rendering engine")
                try:
                    engine = self._factory()
                except EngineError:
                    raise
                except Exception as exc:
                    raise EngineError(f"Failed to launch rendering engine: {exc}") from exc
                self._engine = engine
            self._leases += 1
            return engine

    def release(self, engine: RenderEngine) -> None:
        with self._lock:
            if self._leases > 0:
                self._leases -= 1

    def shutdown(self) -> None:
        """Stop the warm engine; later acquisitions fail."""

        with self._lock:
            engine = self._engine
            self._engine = None
            self._closed = True
        if engine is not None:
            LOGGER.info("Shutting down rendering engine")
            self._discard(engine)

    def stats(self) -> dict:
        with self._lock:
            return {
                "running": self._engine is not None,
                "leases": self._leases,
                "restarts": self._restarts,
            }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _responds(engine: RenderEngine) -> bool:
        try:
            return bool(engine.is_alive())
        except Exception:
            LOGGER.debug("Engine liveness check raised", exc_info=True)
            return False

    @staticmethod
    def _discard(engine: RenderEngine) -> None:
        try:
            engine.shutdown()
        except Exception as exc:
            LOGGER.warning("Failed to stop rendering engine cleanly: %s", exc)



class PlaywrightSession:
    """A Chromium page with the frame-time hook installed."""

    def __init__(
        self,
        engine: "PlaywrightEngine",
        context: BrowserContext,
        page: Page,
        animation_script: Optional[str],
    ) -> None:
        self._engine = engine
        self._context = context
        self._page = page
        self._animation_script = animation_script or ""
        self._closed = False

    def install_time_hook(self, *, timeout: Optional[float] = None) -> None:
        self._engine.call(self._page.evaluate, TIME_HOOK_SCRIPT, self._animation_script, call_timeout=timeout)

    def set_time(self, seconds: float, *, timeout: Optional[float] = None) -> None:
        self._engine.call(self._page.evaluate, SET_TIME_SCRIPT, seconds, call_timeout=timeout)

    def capture_frame(self, *, transparent: bool, timeout: Optional[float] = None) -> bytes:
        options: dict = {"type": "png", "omit_background": transparent}
        if timeout is not None:
            options["timeout"] = max(1.0, timeout * 1000)
        return self._engine.call(self._page.screenshot, call_timeout=timeout, **options)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._engine.call(self._context.close, call_timeout=CLOSE_TIMEOUT_SECONDS)


class PlaywrightEngine:
    """Chromium driven through Playwright's synchronous API."""

    def __init__(
        self,
        *,
        headless: bool = True,
        args: Sequence[str] = DEFAULT_BROWSER_ARGS,
        executable_path: Optional[str] = None,
        content_ready_seconds: float = 0.5,
        navigation_timeout_ms: float = 30_000,
    ) -> None:
        self._headless = headless
        self._args = list(args)
        self._executable_path = executable_path
        self._content_ready_ms = max(0.0, content_ready_seconds) * 1000
        self._navigation_timeout_ms = navigation_timeout_ms
        self._thread = EngineThread("framecast-browser", on_hang=self._kill_processes)
        self._processes: List[psutil.Process] = []
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        try:
            self.call(self._launch, call_timeout=LAUNCH_TIMEOUT_SECONDS)
        except Exception as exc:
            self._kill_processes()
            self._thread.shutdown()
            raise EngineError(f"Failed to launch Chromium: {exc}") from exc

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def _launch(self) -> None:
        before = {child.pid for child in _children()}
        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(
            headless=self._headless,
            args=self._args,
            executable_path=self._executable_path,
        )
        # Only the driver process is a direct child; Chromium runs beneath it.
        self._processes = [
            child
            for child in _children(recursive=False)
            if child.pid not in before and not _is_ffmpeg(child)
        ]
        LOGGER.info("Chromium %s launched", self._browser.version)

    def _teardown(self) -> None:
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None
        if browser is not None and browser.is_connected():
            browser.close()
        if playwright is not None:
            playwright.stop()

    def _kill_processes(self) -> None:
        """Terminate the Playwright driver and its browser, then SIGKILL survivors."""

        processes: List[psutil.Process] = []
        for process in self._processes:
            try:
                processes.extend(process.children(recursive=True))
            except psutil.Error as exc:
                LOGGER.debug("Cannot list children of browser process %s: %s", process.pid, exc)
            processes.append(process)
        self._processes = []
        if not processes:
            return

        LOGGER.warning("Terminating %s browser processes", len(processes))
        for process in processes:
            try:
                process.terminate()
            except psutil.NoSuchProcess:
                continue
            except psutil.Error as exc:
                LOGGER.warning("Failed to terminate browser process %s: %s", process.pid, exc)
        _, alive = psutil.wait_procs(processes, timeout=TERMINATE_TIMEOUT_SECONDS)
        for process in alive:
            LOGGER.error("Browser process %s ignored SIGTERM; sending SIGKILL", process.pid)
            try:
                process.kill()
            except psutil.Error as exc:
                LOGGER.warning("Failed to kill browser process %s: %s", process.pid, exc)

    def shutdown(self) -> None:
        if self._thread.hung:
            self._kill_processes()
            self._thread.shutdown()
            return
        try:
            self.call(self._teardown, call_timeout=CLOSE_TIMEOUT_SECONDS)
        finally:
            self._thread.shutdown()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def call(self, func: Callable[..., T], *args: Any, call_timeout: Optional[float] = None, **kwargs: Any) -> T:
        """Run ``func`` on the browser thread, waiting at most ``call_timeout`` seconds."""

        return self._thread.call(func, *args, call_timeout=call_timeout, **kwargs)

    def is_alive(self) -> bool:
        browser = self._browser
        if browser is None or self._thread.hung:
            return False
        try:
            return bool(self.call(browser.is_connected, call_timeout=LIVENESS_TIMEOUT_SECONDS))
        except JobTimeoutError:
            return False

    def open_session(
        self,
        document: str,
        viewport: Viewport,
        animation_script: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
    ) -> PlaywrightSession:
        context, page = self.call(self._new_page, document, viewport, call_timeout=timeout)
        return PlaywrightSession(self, context, page, animation_script)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _new_page(self, document: str, viewport: Viewport) -> tuple:
        if self._browser is None:
            raise EngineError("Chromium is not running")
        context = self._browser.new_context(
            viewport={"width": viewport.width, "height": viewport.height},
            device_scale_factor=viewport.device_scale_factor,
        )
        try:
            page = context.new_page()
            page.set_default_timeout(self._navigation_timeout_ms)
            page.set_content(document, wait_until="networkidle")
            if self._content_ready_ms:
                page.wait_for_timeout(self._content_ready_ms)
        except Exception:
            context.close()
            raise
        return context, page


def _children(*, recursive: bool = True) -> List[psutil.Process]:
    try:
        return psutil.Process().children(recursive=recursive)
    except psutil.Error:
        return []


def _is_ffmpeg(process: psutil.Process) -> bool:
    try:
        return process.name().startswith(("ffmpeg", "ffprobe"))
    except psutil.Error:
        return False


__all__ = [
    "DEFAULT_BROWSER_ARGS",
    "EngineFactory",
    "EnginePool",
    "EngineThread",
    "PlaywrightEngine",
    "PlaywrightSession",
    "RenderEngine",
    "RenderSession",
]
