"""
Per-tutor and per-student critical sections.

Every write to a tutor's bookings runs inside ``tutor_lock(tutor_id)``.
Admission additionally holds ``student_lock(student_id)`` so that one
student cannot be admitted twice for the same time by two different tutors.
Each section holds two layers, in order:

1. a process-local ``threading.Lock`` per key, which serialises threads
   of this process;
2. an optional Redis mutex (``SET NX EX``) shared by all processes, when
   ``settings.redis_url`` is configured.

Lock order is always tutor, then student. No code path waits for a tutor
lock while holding a student lock.

The repository additionally takes a row lock on the tutor's schedule inside
the database transaction, so a Redis outage degrades to the database lock
rather than to no lock at all.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
import time
from typing import Iterator, Optional
import uuid
import weakref

from redis import Redis

from ..monitoring.prometheus_metrics import prometheus_metrics
from .config import settings
from .exceptions import LockUnavailableException

logger = logging.getLogger(__name__)

# Entries disappear once no thread holds or waits on the lock
_LOCAL_LOCKS: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
_LOCAL_LOCKS_GUARD = threading.Lock()

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()

_REDIS_POLL_INTERVAL_S = 0.05

# Delete the key only while it still holds our token.
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


def _lock_key(scope: str, owner_id: str) -> str:
    return f"tutorbook:lock:{scope}:{owner_id}:bookings"


def _local_lock_for(key: str) -> threading.Lock:
    with _LOCAL_LOCKS_GUARD:
        lock = _LOCAL_LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _LOCAL_LOCKS[key] = lock
        return lock


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS
    if not settings.redis_url:
        return None
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        try:
            client = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            client.ping()
        except Exception as exc:
            logger.warning("tutor_lock_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


def set_redis_client(client: Optional[Redis]) -> None:
    """Override the Redis client (None disables the distributed layer until next lookup)."""
    global _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        _SYNC_REDIS = client


def _acquire_redis(client: Redis, key: str, deadline: float, ttl_s: int) -> Optional[str]:
    """Spin on SET NX until the deadline. Returns the owner token, or None if Redis failed."""
    token = uuid.uuid4().hex
    while True:
        try:
            if client.set(key, token, nx=True, ex=ttl_s):
                return token
        except Exception as exc:
            prometheus_metrics.record_tutor_lock("acquire", "redis_error")
            logger.warning(
                "tutor_lock_redis_acquire_failed",
                extra={"lock_key": key, "error": str(exc), "error_type": type(exc).__name__},
            )
            return None
        if time.monotonic() >= deadline:
            raise TimeoutError(key)
        time.sleep(_REDIS_POLL_INTERVAL_S)


def _release_redis(client: Redis, key: str, token: str) -> None:
    try:
        released = client.eval(_RELEASE_SCRIPT, 1, key, token)
        prometheus_metrics.record_tutor_lock("release", "success" if released else "not_owner")
    except Exception as exc:
        prometheus_metrics.record_tutor_lock("release", "redis_error")
        logger.warning(
            "tutor_lock_redis_release_failed",
            extra={"lock_key": key, "error": str(exc), "error_type": type(exc).__name__},
        )


@contextmanager
def _critical_section(
    scope: str,
    owner_id: str,
    timeout_s: Optional[float],
    ttl_s: Optional[int],
) -> Iterator[None]:
    timeout = timeout_s if timeout_s is not None else settings.booking_lock_acquire_timeout_seconds
    ttl = ttl_s if ttl_s is not None else settings.booking_lock_ttl_seconds
    deadline = time.monotonic() + timeout
    key = _lock_key(scope, owner_id)

    local = _local_lock_for(key)
    if not local.acquire(timeout=timeout):
        prometheus_metrics.record_tutor_lock("acquire", "timeout")
        logger.warning("tutor_lock_local_timeout", extra={"lock_key": key})
        raise LockUnavailableException(owner_id, timeout, scope=scope)

    client = _get_sync_redis()
    token: Optional[str] = None
    try:
        if client is not None:
            try:
                token = _acquire_redis(client, key, deadline, ttl)
            except TimeoutError:
                prometheus_metrics.record_tutor_lock("acquire", "timeout")
                raise LockUnavailableException(owner_id, timeout, scope=scope)
        prometheus_metrics.record_tutor_lock("acquire", "success")
        try:
            yield
        finally:
            if client is not None and token is not None:
                _release_redis(client, key, token)
    finally:
        local.release()


def tutor_lock(
    tutor_id: str,
    timeout_s: Optional[float] = None,
    ttl_s: Optional[int] = None,
):
    """
    Hold the exclusive critical section for one tutor's bookings.

    Raises:
        LockUnavailableException: If the section cannot be entered within timeout_s
    """
    return _critical_section("tutor", tutor_id, timeout_s, ttl_s)


def student_lock(
    student_id: str,
    timeout_s: Optional[float] = None,
    ttl_s: Optional[int] = None,
):
    """Hold the exclusive critical section for one student's bookings."""
    return _critical_section("student", student_id, timeout_s, ttl_s)


@contextmanager
def admission_lock(
    tutor_id: str,
    student_id: str,
    timeout_s: Optional[float] = None,
) -> Iterator[None]:
    """Tutor section, then student section, for admitting a new booking."""
    with tutor_lock(tutor_id, timeout_s=timeout_s):
        with student_lock(student_id, timeout_s=timeout_s):
            yield
