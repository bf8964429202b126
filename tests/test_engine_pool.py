from __future__ import annotations

import threading
import time

import pytest

from framecast.browser import EnginePool, EngineThread
from framecast.exceptions import EngineError, JobTimeoutError


def test_engine_is_launched_lazily_and_reused(engine_factory) -> None:
    pool = EnginePool(engine_factory)
    assert engine_factory.created == []

    first = pool.acquire()
    second = pool.acquire()

    assert first is second
    assert len(engine_factory.created) == 1
    assert pool.stats() == {"running": True, "leases": 2, "restarts": 0}

    pool.release(first)
    pool.release(second)
    pool.release(second)
    assert pool.stats()["leases"] == 0


def test_dead_engine_is_restarted(engine_factory) -> None:
    pool = EnginePool(engine_factory)
    first = pool.acquire()
    first.alive = False

    second = pool.acquire()

    assert second is not first
    assert first.shutdown_called
    assert pool.stats()["restarts"] == 1


def test_launch_failure_is_an_engine_error() -> None:
    def _factory():
        raise OSError("chromium binary missing")

    pool = EnginePool(_factory)

    with pytest.raises(EngineError, match="chromium binary missing"):
        pool.acquire()
    assert pool.stats()["running"] is False


def test_shutdown_stops_engine_and_refuses_new_leases(engine_factory) -> None:
    pool = EnginePool(engine_factory)
    engine = pool.acquire()

    pool.shutdown()

    assert engine.shutdown_called
    with pytest.raises(EngineError):
        pool.acquire()


def test_engine_thread_returns_results_and_reraises_errors() -> None:
    worker = EngineThread("test-engine")
    try:
        assert worker.call(lambda a, b=0: a + b, 2, b=3, call_timeout=1) == 5
        with pytest.raises(ValueError, match="bad frame"):
            worker.call(_raise_value_error, call_timeout=1)
        assert worker.hung is False
    finally:
        worker.shutdown()


def test_engine_thread_gives_up_on_a_stuck_call_and_unblocks_it() -> None:
    stuck = threading.Event()
    hangs = []

    def _on_hang() -> None:
        hangs.append(True)
        stuck.set()

    worker = EngineThread("test-engine", on_hang=_on_hang)
    started = time.monotonic()
    try:
        with pytest.raises(JobTimeoutError):
            worker.call(stuck.wait, 5, call_timeout=0.2)
        assert time.monotonic() - started < 1.0
        assert worker.hung is True
        assert hangs == [True]
        with pytest.raises(EngineError):
            worker.call(lambda: None)
    finally:
        stuck.set()
        worker.shutdown()


def test_engine_thread_refuses_calls_without_budget() -> None:
    calls = []
    worker = EngineThread("test-engine")
    try:
        with pytest.raises(JobTimeoutError):
            worker.call(calls.append, 1, call_timeout=0)
        assert calls == []
        assert worker.hung is False
    finally:
        worker.shutdown()


def test_hung_engine_is_replaced_on_next_acquire(engine_factory) -> None:
    pool = EnginePool(engine_factory)
    first = pool.acquire()
    first.hang = threading.Event()
    session = first.open_session("<p></p>", None)

    with pytest.raises(JobTimeoutError):
        session.set_time(0.0, timeout=0.1)
    pool.release(first)

    second = pool.acquire()
    assert second is not first
    assert first.shutdown_called
    assert pool.stats()["restarts"] == 1


def _raise_value_error() -> None:
    raise ValueError("bad frame")
