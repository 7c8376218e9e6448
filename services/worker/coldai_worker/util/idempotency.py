"""Idempotency utilities for task execution.

Uses Redis keys:
- coldai:task:{dedupe_key}:lock - held while a task runs
- coldai:task:{dedupe_key}:done - set once a task completed
"""

import hashlib
import json
from typing import Any, Optional, Protocol

KEY_PREFIX = "coldai:task"


def compute_dedupe_key(job_type: str, payload: dict[str, Any]) -> str:
    """Compute a deduplication key for a job."""
    payload_str = json.dumps(payload, sort_keys=True, default=str)
    content = f"{job_type}:{payload_str}"
    return hashlib.sha256(content.encode()).hexdigest()[:32]


class SyncRedisProtocol(Protocol):
    def set(self, name: str, value: str, ex: Optional[int] = None, nx: bool = False) -> Any: ...
    def get(self, name: str) -> Any: ...
    def delete(self, *names: str) -> int: ...


class IdempotencyManager:
    """Manage task idempotency with Redis locks and completion markers."""

    def __init__(
        self,
        redis: SyncRedisProtocol,
        lock_ttl_seconds: int = 600,
        done_ttl_seconds: int = 24 * 3600,
    ) -> None:
        self.redis = redis
        self.lock_ttl_seconds = lock_ttl_seconds
        self.done_ttl_seconds = done_ttl_seconds

    @staticmethod
    def _key(dedupe_key: str, suffix: str) -> str:
        return f"{KEY_PREFIX}:{dedupe_key}:{suffix}"

    def acquire_lock(self, dedupe_key: str) -> bool:
        """Attempt to acquire a lock for a job.

        Returns False if the job is running elsewhere or already completed.
        """
        if self.is_complete(dedupe_key):
            return False
        return bool(
            self.redis.set(
                self._key(dedupe_key, "lock"), "1", ex=self.lock_ttl_seconds, nx=True
            )
        )

    def release_lock(self, dedupe_key: str) -> None:
        self.redis.delete(self._key(dedupe_key, "lock"))

    def mark_complete(self, dedupe_key: str) -> None:
        self.redis.set(self._key(dedupe_key, "done"), "1", ex=self.done_ttl_seconds)

    def is_complete(self, dedupe_key: str) -> bool:
        return self.redis.get(self._key(dedupe_key, "done")) is not None


def get_idempotency_manager() -> IdempotencyManager:
    """Create an IdempotencyManager from settings."""
    import redis

    from coldai_core.config import get_settings

    return IdempotencyManager(redis.Redis.from_url(get_settings().redis_url))
