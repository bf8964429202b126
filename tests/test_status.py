from __future__ import annotations

import json
import threading

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from framecast_service.engine import JobState, JobStatusBroadcaster, JobStore, StatsHeartbeat
from framecast_service.engine import status as status_module


class FakeRedis:
    def __init__(self, fail_writes: bool = False) -> None:
        self.values = {}
        self.published = []
        self.fail_writes = fail_writes
        self.closed = False

    def ping(self) -> bool:
        return True

    def set(self, key, value, ex=None):
        if self.fail_writes:
            raise RedisConnectionError("connection reset")
        self.values[key] = (json.loads(value), ex)

    def publish(self, channel, value):
        self.published.append((channel, json.loads(value)))

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def fake_redis(monkeypatch):
    client = FakeRedis()
    monkeypatch.setattr(status_module.redis, "from_url", lambda url, **kwargs: client)
    return client


def test_disabled_without_url() -> None:
    broadcaster = JobStatusBroadcaster(redis_url=None)

    broadcaster.publish_stats({"total": 0})

    assert broadcaster.enabled is False
    assert broadcaster.available is False


def test_job_snapshots_are_stored_and_published(fake_redis, make_spec) -> None:
    broadcaster = JobStatusBroadcaster(redis_url="redis://cache:6379/0", channel="framecast:jobs", ttl_seconds=60)
    store = JobStore()
    store.add_listener(broadcaster.publish_job)

    job = store.insert(make_spec())
    store.update(job.id, status=JobState.PROCESSING)

    stored, ttl = fake_redis.values[f"framecast:jobs:{job.id}"]
    assert ttl == 60
    assert stored["type"] == "job"
    assert stored["job"]["status"] == "processing"
    assert [body["job"]["status"] for _, body in fake_redis.published] == ["queued", "processing"]
    assert all(channel == "framecast:jobs" for channel, _ in fake_redis.published)


def test_write_failures_are_recorded_not_raised(fake_redis) -> None:
    broadcaster = JobStatusBroadcaster(redis_url="redis://cache:6379/0")
    fake_redis.fail_writes = True

    broadcaster.publish_stats({"total": 1})

    assert "connection reset" in broadcaster.last_error
    assert fake_redis.closed is True


def test_heartbeat_publishes_until_stopped() -> None:
    published = []
    beat = threading.Event()

    def _sink(stats):
        published.append(stats)
        beat.set()

    heartbeat = StatsHeartbeat(lambda: {"activeJobs": 0}, _sink, interval_seconds=60)
    heartbeat.start()
    try:
        assert beat.wait(5)
        assert heartbeat.running()
    finally:
        heartbeat.stop()

    assert published[0] == {"activeJobs": 0}
    assert heartbeat.last_beat is not None
    assert not heartbeat.running()


def test_heartbeat_survives_sink_failures() -> None:
    def _sink(_stats):
        raise RuntimeError("redis down")

    heartbeat = StatsHeartbeat(dict, _sink)
    heartbeat.beat()

    assert heartbeat.last_beat is None
