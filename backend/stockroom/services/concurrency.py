# Overview: Concurrency safeguards for ledger writes; row locks, keyed locks and retry.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


class KeyedLocks:
    """
    Registry of one threading.Lock per key.

    Serializes read-compute-write cycles on the same (store_id, article_id)
    inside this process. Cross-process safety comes from the row lock and
    StoreStock.version_id.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict = {}

    def _lock_for(self, key) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *keys):
        """Acquire the locks for keys in sorted order (deadlock-free)."""
        ordered = sorted(set(keys))
        acquired = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


key_locks = KeyedLocks()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Domain errors propagate immediately.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
