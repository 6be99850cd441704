from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import Lock
from typing import Iterator, Protocol

import redis

from app.core.config import settings

_LOG = logging.getLogger("app.request_locks")


class RequestLockTimeout(Exception):
    pass


class RequestLocks(Protocol):
    def hold(self, key: str, *, timeout_seconds: int) -> Iterator[None]:
        ...


class InMemoryRequestLocks:
    def __init__(self):
        self._locks: dict[str, tuple[Lock, int]] = {}
        self._guard = Lock()

    def _checkout(self, key: str) -> Lock:
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = Lock()
            self._locks[key] = (lock, users + 1)
            return lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                return
            if users <= 1:
                self._locks.pop(key, None)
            else:
                self._locks[key] = (lock, users - 1)

    @contextmanager
    def hold(self, key: str, *, timeout_seconds: int) -> Iterator[None]:
        lock = self._checkout(key)
        try:
            if not lock.acquire(timeout=max(int(timeout_seconds), 1)):
                raise RequestLockTimeout(key)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(key)


class RedisRequestLocks:
    def __init__(self, client: redis.Redis):
        self.client = client

    @contextmanager
    def hold(self, key: str, *, timeout_seconds: int) -> Iterator[None]:
        lock = self.client.lock(
            f"lock:{key}",
            timeout=max(int(timeout_seconds), 1),
            blocking_timeout=max(int(timeout_seconds), 1),
        )
        if not lock.acquire():
            raise RequestLockTimeout(key)
        try:
            yield
        finally:
            try:
                lock.release()
            except redis.exceptions.LockError:
                _LOG.warning("Request lock %s expired before release", key)


_cached_locks: RequestLocks | None = None


def _build_locks() -> RequestLocks:
    try:
        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=0.4,
            socket_connect_timeout=0.4,
        )
        client.ping()
        return RedisRequestLocks(client)
    except Exception:
        _LOG.warning("Redis locks unavailable; fallback to in-process request locks")
        return InMemoryRequestLocks()


def get_request_locks() -> RequestLocks:
    global _cached_locks
    if _cached_locks is None:
        _cached_locks = _build_locks()
    return _cached_locks


def reset_request_locks_for_tests(locks: RequestLocks | None = None) -> None:
    global _cached_locks
    _cached_locks = locks
