"""Redis-backed broadcaster for render job status updates."""
from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

import redis
from redis import Redis
from redis.exceptions import RedisError

from .models import RenderJob

LOGGER = logging.getLogger(__name__)

SOCKET_TIMEOUT_SECONDS = 3
HEALTH_CHECK_INTERVAL_SECONDS = 30


class JobStatusBroadcaster:
    """Mirror job snapshots and dispatcher stats into Redis.

    Each payload is stored under a per-job (or stats) key with a TTL and
    published on ``channel`` so dashboards can follow jobs without polling
    the HTTP API. Without a Redis URL every publish is a no-op; connection and
    write failures are remembered in :attr:`last_error` and never raised.
    """

    def __init__(
        self,
        *,
        redis_url: Optional[str],
        prefix: str = "framecast",
        channel: Optional[str] = None,
        ttl_seconds: int = 3600,
    ) -> None:
        self._url = (redis_url or "").strip()
        self._prefix = prefix.strip() or "framecast"
        self._channel = (channel or "").strip() or None
        self._ttl = max(0, int(ttl_seconds))
        self._lock = threading.Lock()
        self._redis: Optional[Redis] = None
        self._error: Optional[str] = None if self._url else "Redis URL not configured"
        if self._url:
            with self._lock:
                self._redis = self._open()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def enabled(self) -> bool:
        return bool(self._url)

    @property
    def available(self) -> bool:
        with self._lock:
            return self._client() is not None

    @property
    def last_error(self) -> Optional[str]:
        return self._error

    def publish_job(self, job: RenderJob) -> None:
        """Persist and broadcast the latest snapshot of ``job``."""

        self._write(self.job_key(job.id), {"type": "job", "job": job.to_status()})

    def publish_stats(self, stats: Mapping[str, Any]) -> None:
        self._write(self.stats_key(), {"type": "stats", "stats": dict(stats)})

    def job_key(self, job_id: str) -> str:
        return f"{self._prefix}:jobs:{job_id}"

    def stats_key(self) -> str:
        return f"{self._prefix}:stats"

    def close(self) -> None:
        with self._lock:
            self._drop()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _open(self) -> Optional[Redis]:
        try:
            connection = redis.from_url(
                self._url,
                socket_timeout=SOCKET_TIMEOUT_SECONDS,
                health_check_interval=HEALTH_CHECK_INTERVAL_SECONDS,
            )
            connection.ping()
        except (RedisError, ValueError) as exc:
            self._error = f"Failed to connect to Redis: {exc}"
            LOGGER.warning("Status broadcasting disabled until Redis is reachable: %s", exc)
            return None
        self._error = None
        LOGGER.info("Broadcasting job status to Redis (prefix=%s)", self._prefix)
        return connection

    def _client(self) -> Optional[Redis]:
        if self._redis is None and self._url:
            self._redis = self._open()
        return self._redis

    def _drop(self) -> None:
        connection, self._redis = self._redis, None
        if connection is None:
            return
        try:
            connection.close()
        except RedisError as exc:
            LOGGER.debug("Error closing Redis connection: %s", exc)

    def _write(self, key: str, body: Dict[str, Any]) -> None:
        if not self._url:
            return
        body["updatedAt"] = datetime.now(timezone.utc).isoformat()
        payload = json.dumps(body, ensure_ascii=False, separators=(",", ":"), default=str)
        with self._lock:
            connection = self._client()
            if connection is None:
                return
            try:
                connection.set(key, payload, ex=self._ttl or None)
                if self._channel:
                    connection.publish(self._channel, payload)
            except RedisError as exc:
                self._error = f"Failed to write status: {exc}"
                LOGGER.debug("Status write to Redis failed: %s", exc)
                self._drop()
                return
            self._error = None


__all__ = ["JobStatusBroadcaster"]
