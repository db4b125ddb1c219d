# apps/core/locks.py
"""
Keyed advisory locks.

Booking writes serialize on ``staff:<id>:<date>`` and ``room:<id>:<date>``,
ledger writes on ``package:<id>``. Keys are acquired in sorted order with one
shared deadline; a key already held by the current thread is re-entered
instead of acquired again. Running out of time raises RetryableError.
"""

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Dict, Iterable, Optional

from django.core.cache import cache

from .conf import clinic_setting

logger = logging.getLogger(__name__)


def staff_key(staff_id, slot_date) -> str:
    return f"staff:{staff_id}:{slot_date.isoformat()}"


def room_key(room_id, slot_date) -> str:
    return f"room:{room_id}:{slot_date.isoformat()}"


def package_key(package_id) -> str:
    return f"package:{package_id}"


class KeyedLockManager:
    """Base class: re-entrant, deadline-bounded acquisition of many keys."""

    def __init__(self):
        self._local = threading.local()

    def _held(self) -> Dict[str, int]:
        held = getattr(self._local, 'held', None)
        if held is None:
            held = self._local.held = {}
        return held

    def _acquire(self, key: str, deadline: float) -> bool:
        raise NotImplementedError

    def _release(self, key: str) -> None:
        raise NotImplementedError

    @contextmanager
    def hold(self, keys: Iterable[str], timeout: Optional[float] = None):
        if timeout is None:
            timeout = clinic_setting('LOCK_TIMEOUT_SECONDS')
        deadline = time.monotonic() + timeout
        held = self._held()
        entered = []
        try:
            for key in sorted(set(keys)):
                if held.get(key):
                    held[key] += 1
                elif self._acquire(key, deadline):
                    held[key] = 1
                else:
                    from .services.exceptions import RetryableError
                    logger.warning(
                        f"Timed out waiting for lock {key}",
                        extra={'lock_key': key, 'timeout_seconds': timeout}
                    )
                    raise RetryableError(
                        f"Resource is busy, retry later ({key})",
                        details={'lock_key': key, 'timeout_seconds': timeout}
                    )
                entered.append(key)
            yield
        finally:
            for key in reversed(entered):
                held[key] -= 1
                if not held[key]:
                    del held[key]
                    self._release(key)


class CacheLockManager(KeyedLockManager):
    """
    Locks stored in the Django cache (Redis in production).

    ``cache.add`` only sets a missing key, so it works as a test-and-set.
    Entries expire after ``LOCK_TTL_SECONDS`` in case a holder dies.
    """

    prefix = 'clinic:lock'
    poll_interval = 0.02

    def __init__(self, cache_backend=None):
        super().__init__()
        self.cache = cache_backend or cache
        self._tokens: Dict[str, str] = {}

    def _cache_key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def _acquire(self, key: str, deadline: float) -> bool:
        token = uuid.uuid4().hex
        ttl = clinic_setting('LOCK_TTL_SECONDS')
        while True:
            if self.cache.add(self._cache_key(key), token, ttl):
                self._tokens[key] = token
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(self.poll_interval)

    def _release(self, key: str) -> None:
        token = self._tokens.pop(key, None)
        if token and self.cache.get(self._cache_key(key)) == token:
            self.cache.delete(self._cache_key(key))


class ThreadLockManager(KeyedLockManager):
    """
    In-process locks, one ``threading.Lock`` per key.

    A key's lock only lives while some thread holds or waits for it.
    """

    def __init__(self):
        super().__init__()
        self._guard = threading.Lock()
        # key -> [lock, holders and waiters]
        self._locks: Dict[str, list] = {}

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: str, release: bool) -> None:
        with self._guard:
            entry = self._locks[key]
            if release:
                entry[0].release()
            entry[1] -= 1
            if not entry[1]:
                del self._locks[key]

    def _acquire(self, key: str, deadline: float) -> bool:
        lock = self._checkout(key)
        if lock.acquire(timeout=max(0.0, deadline - time.monotonic())):
            return True
        self._checkin(key, release=False)
        return False

    def _release(self, key: str) -> None:
        self._checkin(key, release=True)
