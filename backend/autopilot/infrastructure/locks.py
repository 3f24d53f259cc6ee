"""Per-content-type mutual exclusion for queue writers.

Every unit of work that reads queue positions and then writes them holds the
lock of the content type it touches for the whole read-modify-write sequence.
Two implementations share one contract:

* ``RedisQueueLock`` - a short-lived lease (``SET NX EX``) released with a
  compare-and-delete script, safe across API processes and Celery workers.
* ``LocalQueueLock`` - a ``threading.Lock`` per type, for single-process
  deployments and tests.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from functools import lru_cache
from uuid import uuid4

from redis import Redis

from autopilot.core.config import settings
from autopilot.core.errors import ConflictError
from autopilot.infrastructure.cache.redis_client import get_redis_client
from autopilot.infrastructure.observability.metrics import measure_redis

logger = logging.getLogger(__name__)

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class QueueLock(ABC):
    @abstractmethod
    def acquire(self, content_type: str, *, wait_seconds: float) -> str | None:
        """Return a release token, or None when the lock was not obtained in time."""
        raise NotImplementedError

    @abstractmethod
    def release(self, content_type: str, token: str) -> None:
        raise NotImplementedError

    @contextmanager
    def hold(self, content_types: Iterable[str], *, wait_seconds: float | None = None) -> Iterator[None]:
        """Hold the locks of all given types, acquired in sorted order."""
        wait = settings.queue_lock_wait_seconds if wait_seconds is None else wait_seconds
        acquired: list[tuple[str, str]] = []
        try:
            for content_type in sorted(set(content_types)):
                token = self.acquire(content_type, wait_seconds=wait)
                if token is None:
                    logger.warning("queue_lock_timeout content_type=%s wait_seconds=%s", content_type, wait)
                    raise ConflictError(
                        f"Queue for '{content_type}' is busy, retry the operation",
                        error_code="queue_locked",
                    )
                acquired.append((content_type, token))
            yield
        finally:
            for content_type, token in reversed(acquired):
                self.release(content_type, token)

    @contextmanager
    def try_hold(self, content_type: str) -> Iterator[bool]:
        token = self.acquire(content_type, wait_seconds=0)
        try:
            yield token is not None
        finally:
            if token is not None:
                self.release(content_type, token)


class LocalQueueLock(QueueLock):
    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._tokens: dict[str, str] = {}

    def _lock_for(self, content_type: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(content_type)
            if lock is None:
                lock = threading.Lock()
                self._locks[content_type] = lock
            return lock

    def acquire(self, content_type: str, *, wait_seconds: float) -> str | None:
        lock = self._lock_for(content_type)
        if wait_seconds <= 0:
            acquired = lock.acquire(blocking=False)
        else:
            acquired = lock.acquire(timeout=wait_seconds)
        if not acquired:
            return None
        token = str(uuid4())
        self._tokens[content_type] = token
        return token

    def release(self, content_type: str, token: str) -> None:
        if self._tokens.get(content_type) != token:
            logger.warning("queue_lock_release_token_mismatch content_type=%s", content_type)
            return
        del self._tokens[content_type]
        self._lock_for(content_type).release()


class RedisQueueLock(QueueLock):
    def __init__(
        self,
        redis_client: Redis | None = None,
        *,
        ttl_seconds: int | None = None,
        poll_interval_seconds: float = 0.05,
    ) -> None:
        self.redis_client = redis_client or get_redis_client()
        self.ttl_seconds = ttl_seconds or settings.queue_lock_ttl_seconds
        self.poll_interval_seconds = poll_interval_seconds

    @staticmethod
    def _key(content_type: str) -> str:
        return f"lock:queue:{content_type}"

    def acquire(self, content_type: str, *, wait_seconds: float) -> str | None:
        token = str(uuid4())
        deadline = time.monotonic() + max(0.0, wait_seconds)
        while True:
            with measure_redis("queue_lock_acquire"):
                acquired = self.redis_client.set(self._key(content_type), token, nx=True, ex=self.ttl_seconds)
            if acquired:
                return token
            if time.monotonic() >= deadline:
                return None
            time.sleep(self.poll_interval_seconds)

    def release(self, content_type: str, token: str) -> None:
        try:
            with measure_redis("queue_lock_release"):
                self.redis_client.eval(_RELEASE_SCRIPT, 1, self._key(content_type), token)
        except Exception:
            # The lease expires on its own after ttl_seconds.
            logger.exception("queue_lock_release_failed content_type=%s", content_type)


@lru_cache(maxsize=1)
def get_queue_lock() -> QueueLock:
    backend = settings.queue_lock_backend.strip().lower()
    if backend == "local":
        return LocalQueueLock()
    if backend == "redis":
        return RedisQueueLock()
    raise ValueError(f"Unsupported queue lock backend: {settings.queue_lock_backend}")
