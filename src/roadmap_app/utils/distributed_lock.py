"""Cross-process generation locks backed by Redis.

The in-process single-flight registry collapses identical requests inside
one worker. With ``REDIS_URL`` set, generation for a prompt fingerprint is
also serialized across workers: the lock holder generates, and everyone who
waited on it finds the result through the store's fingerprint lookup. A
worker that cannot get the lock in time gives up instead of generating too.
"""

import time
from contextlib import contextmanager
from typing import Iterator, Optional

import redis

from .logging_config import get_logger

logger = get_logger("lock")

LOCK_PREFIX = 'generation:'


class LockNotAcquiredError(Exception):
    """Another worker kept the generation lock past the blocking timeout."""


def get_redis_client(redis_url: Optional[str], connect_timeout: float = 2.0) -> Optional[redis.Redis]:
    """Return a connected client, or None when the URL is empty or the server does not answer."""
    if not redis_url:
        return None
    client = redis.Redis.from_url(redis_url, socket_timeout=connect_timeout,
                                  socket_connect_timeout=connect_timeout)
    try:
        client.ping()
    except redis.exceptions.RedisError as e:
        logger.warning(f"Redis at {redis_url} unavailable for generation locks: {e}")
        return None
    return client


class GenerationLockFactory:
    """Hands out per-fingerprint Redis locks; a no-op when Redis is not configured."""

    def __init__(self, redis_url: Optional[str], timeout: float = 300.0, blocking_timeout: float = 120.0,
                 reconnect_interval: float = 30.0):
        self.redis_url = redis_url
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout
        self.reconnect_interval = reconnect_interval
        self._client: Optional[redis.Redis] = None
        self._last_failure: Optional[float] = None

    @property
    def enabled(self) -> bool:
        return bool(self.redis_url)

    def client(self) -> Optional[redis.Redis]:
        if self._client is not None or not self.enabled:
            return self._client
        if self._last_failure is not None and time.monotonic() - self._last_failure < self.reconnect_interval:
            return None
        self._client = get_redis_client(self.redis_url)
        if self._client is None:
            self._last_failure = time.monotonic()
        return self._client

    @contextmanager
    def hold(self, fingerprint: str) -> Iterator[bool]:
        """Run the block while holding the fingerprint's lock.

        Yields True when the lock is held, and False when Redis is off or
        unreachable (generation then relies on the in-process single-flight
        only). Raises ``LockNotAcquiredError`` when another worker keeps the
        lock past ``blocking_timeout``; the block does not run in that case.
        """
        client = self.client()
        if client is None:
            yield False
            return

        lock = client.lock(LOCK_PREFIX + fingerprint, timeout=self.timeout,
                           blocking_timeout=self.blocking_timeout)
        try:
            acquired = bool(lock.acquire())
        except redis.exceptions.RedisError as e:
            logger.warning(f"Redis failed while locking '{fingerprint}', generating without a cross-process lock: {e}")
            yield False
            return
        if not acquired:
            raise LockNotAcquiredError(
                f"Generation lock for '{fingerprint}' still held by another worker after {self.blocking_timeout}s"
            )

        try:
            yield True
        finally:
            try:
                lock.release()
            except redis.exceptions.LockError:
                logger.debug(f"Generation lock for '{fingerprint}' expired before release")
            except redis.exceptions.RedisError as e:
                logger.warning(f"Could not release generation lock for '{fingerprint}': {e}")
