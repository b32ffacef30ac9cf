# seminar_registration/background_tasks/common.py
"""
Shared plumbing for the periodic jobs.

`run_job` gives every job the same guard rails:
- a fresh database session, closed afterwards
- a Redis lock (SET NX EX) so only one instance runs a given job at a time
- exponential back-off while the database is unreachable, instead of
  hammering it every interval
"""

import logging
import threading
import time
import uuid
from typing import Callable, Dict, Optional, TypeVar

import redis
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from seminar_registration.core.config import settings
from seminar_registration.db.redis import get_redis_client
from seminar_registration.db.session import SessionLocal

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOCK_PREFIX = "seminar_registration:job_lock:"


class JobBackoff:
    """Tracks consecutive store failures per job and when it may run again."""

    def __init__(self, base_seconds: float = 5.0, max_seconds: Optional[float] = None):
        self.base_seconds = base_seconds
        self.max_seconds = max_seconds if max_seconds is not None else settings.JOB_MAX_BACKOFF_SECONDS
        self._failures: Dict[str, int] = {}
        self._resume_at: Dict[str, float] = {}
        self._lock = threading.Lock()

    def should_skip(self, name: str, now: Optional[float] = None) -> bool:
        now = time.monotonic() if now is None else now
        with self._lock:
            return now < self._resume_at.get(name, 0.0)

    def record_failure(self, name: str, now: Optional[float] = None) -> float:
        """Returns the delay before the job may run again."""
        now = time.monotonic() if now is None else now
        with self._lock:
            failures = self._failures.get(name, 0) + 1
            self._failures[name] = failures
            delay = min(self.base_seconds * (2 ** (failures - 1)), self.max_seconds)
            self._resume_at[name] = now + delay
            return delay

    def record_success(self, name: str) -> None:
        with self._lock:
            self._failures.pop(name, None)
            self._resume_at.pop(name, None)

    def failures(self, name: str) -> int:
        with self._lock:
            return self._failures.get(name, 0)


backoff = JobBackoff()


def acquire_job_lock(client: redis.Redis, name: str, ttl_seconds: int) -> Optional[str]:
    """Returns the lock token if acquired, None if another instance holds it."""
    token = uuid.uuid4().hex
    if client.set(f"{LOCK_PREFIX}{name}", token, nx=True, ex=ttl_seconds):
        return token
    return None


def release_job_lock(client: redis.Redis, name: str, token: str) -> None:
    key = f"{LOCK_PREFIX}{name}"
    try:
        # Only release our own lock; after a TTL expiry it may belong to another instance.
        if client.get(key) == token:
            client.delete(key)
    except redis.RedisError as e:
        # The TTL frees it anyway.
        logger.warning(f"Could not release lock for job {name}: {e}")


def run_job(
    name: str,
    work: Callable[[Session], T],
    session_factory: Callable[[], Session] = SessionLocal,
    redis_client: Optional[redis.Redis] = None,
    job_backoff: Optional[JobBackoff] = None,
    lock_ttl_seconds: Optional[int] = None,
) -> Optional[T]:
    """
    Run `work(db)` under the job guard rails.

    Returns the work's result, or None when the job was skipped (lock held
    elsewhere, backing off, or the store is unreachable). Any other error
    propagates to the scheduler's error listener.

    `lock_ttl_seconds` must outlast the slowest run of `work`; it defaults to
    JOB_LOCK_TTL_SECONDS.
    """
    job_backoff = job_backoff or backoff
    if job_backoff.should_skip(name):
        logger.debug(f"Job {name} is backing off; skipped")
        return None

    client = redis_client if redis_client is not None else get_redis_client()
    lock_token = None
    if client is not None:
        try:
            lock_token = acquire_job_lock(client, name, lock_ttl_seconds or settings.JOB_LOCK_TTL_SECONDS)
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable for job {name} lock, skipping run: {e}")
            return None
        if lock_token is None:
            logger.debug(f"Job {name} is running on another instance; skipped")
            return None

    db = session_factory()
    try:
        result = work(db)
        job_backoff.record_success(name)
        return result
    except OperationalError as e:
        db.rollback()
        delay = job_backoff.record_failure(name)
        logger.error(f"Database unavailable during job {name}; backing off {delay:.0f}s: {e}")
        return None
    finally:
        db.close()
        if lock_token is not None:
            release_job_lock(client, name, lock_token)
