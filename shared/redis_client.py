"""
redis_client.py – optional Redis connection + helpers
=====================================================

• 100 % lazy: first call triggers connect; gives up after a few attempts
  and tries again a minute later.
• Disabled entirely when `REDIS_URL` is empty.
• `heartbeat(service)` once per status loop; ops tooling watches these keys.
• `publish_status(snapshot)` stores the latest engine status as JSON.
"""

from __future__ import annotations

import json
import os
import time
from typing import Any, Callable, Mapping, Optional

import redis

from .constants import KEY_HEARTBEAT, KEY_STATUS, STATUS_TTL
from .logging import get_logger

# ───── CONFIG ──────────────────────────────────────────────────────────
REDIS_URL = os.getenv("REDIS_URL", "")
CONNECT_ATTEMPTS = int(os.getenv("REDIS_CONNECT_ATTEMPTS", 3))
RETRY_AFTER_SEC = 60
log = get_logger("shared.redis")

# ───── LAZY SINGLETON ─────────────────────────────────────────────────
class _LazyRedis:
    """Proxy object that connects on first attribute access (bounded retry)."""
    _client: Optional[redis.Redis] = None
    _next_attempt: float = 0.0

    def __init__(self, url: str = REDIS_URL) -> None:
        self.url = url

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def __getattr__(self, name: str) -> Callable[..., Any]:  # noqa: D401
        if self._client is None:
            self._connect()
        if self._client is None:
            raise redis.ConnectionError(f"Redis unavailable at {self.url}")
        return getattr(self._client, name)

    def _connect(self) -> None:
        if not self.enabled or time.monotonic() < self._next_attempt:
            return
        for attempt in range(1, CONNECT_ATTEMPTS + 1):
            try:
                client = redis.Redis.from_url(
                    self.url,
                    decode_responses=True,
                    socket_timeout=2,
                )
                client.ping()
                self._client = client
                log.info("Connected to Redis at %s", self.url)
                return
            except redis.RedisError as exc:
                log.warning("Redis unavailable (attempt %d/%d) – %s", attempt, CONNECT_ATTEMPTS, exc)
                time.sleep(0.5)
        # at most one failed connect round per minute while Redis is down
        self._next_attempt = time.monotonic() + RETRY_AFTER_SEC

# Exposed singleton used by all services
rds = _LazyRedis()

# ───── HELPER FUNCTIONS ───────────────────────────────────────────────
def heartbeat(service: str) -> None:
    """Store current epoch-seconds in `heartbeat:<service>`."""
    if not rds.enabled:
        return
    try:
        rds.set(KEY_HEARTBEAT.format(service), time.time())
    except redis.RedisError as exc:
        log.error("heartbeat failed – %s", exc)


def publish_status(snapshot: Mapping[str, Any]) -> None:
    """Overwrite `live:engine:status` with the latest snapshot (expires)."""
    if not rds.enabled:
        return
    try:
        rds.set(KEY_STATUS, json.dumps(snapshot, default=str), ex=STATUS_TTL)
    except redis.RedisError as exc:
        log.error("status publish failed – %s", exc)
