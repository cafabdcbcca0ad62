"""
Redis lock that keeps one tree sync per repository running at a time.

Celery does not deduplicate tasks, so a sync queued twice would run twice.
The lock value is the holding task's id, and only that task may release it.
The pending-delete sweep is idempotent and runs unlocked.
"""

import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional

import redis

logger = logging.getLogger(__name__)


class TaskLock:
    KEY_PREFIX = "repodesk:tasklock:"

    def __init__(self, redis_url: str = None, client: Optional[redis.Redis] = None):
        self.redis = client or redis.from_url(
            redis_url or os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
            decode_responses=True,
        )

    def acquire(self, lock_key: str, ttl_seconds: int, task_id: str) -> bool:
        # EX so a crashed worker's lock expires on its own
        return bool(self.redis.set(self.KEY_PREFIX + lock_key, task_id, nx=True, ex=ttl_seconds))

    def holder(self, lock_key: str) -> Optional[str]:
        return self.redis.get(self.KEY_PREFIX + lock_key)

    def release(self, lock_key: str, task_id: str) -> bool:
        current = self.holder(lock_key)
        if current != task_id:
            logger.warning(f"Lock {lock_key} is held by {current}, not {task_id}")
            return False
        return bool(self.redis.delete(self.KEY_PREFIX + lock_key))

    @contextmanager
    def lock(self, lock_key: str, ttl_seconds: int, task_id: str) -> Iterator[bool]:
        """
        Usage:
            with task_lock.lock("tree_sync:42", 900, ctx.task_id) as acquired:
                if not acquired:
                    raise Reject(...)
                sync()
        """
        acquired = self.acquire(lock_key, ttl_seconds, task_id)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(lock_key, task_id)


_task_lock: Optional[TaskLock] = None


def get_task_lock() -> TaskLock:
    global _task_lock
    if _task_lock is None:
        _task_lock = TaskLock()
    return _task_lock
