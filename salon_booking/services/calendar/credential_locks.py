# salon_booking/services/calendar/credential_locks.py
"""Per-credential critical sections for OAuth token refresh"""
import threading
from contextlib import contextmanager
from typing import Dict

from salon_booking.config.redis import RedisKeys, get_sync_redis
from salon_booking.config.settings import Settings, get_settings
from salon_booking.core.exceptions import ExternalSyncError


class LocalCredentialLocks:
    """One threading.Lock per credential, shared by every session in the process"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]

    @contextmanager
    def hold(self, key: str, timeout: float = 30):
        lock = self._lock_for(key)
        if not lock.acquire(timeout=timeout):
            raise ExternalSyncError("Timed out waiting for token refresh", code="refresh_lock_timeout")
        try:
            yield
        finally:
            lock.release()


class RedisCredentialLocks:
    """Redis lock per credential, for several API/worker processes sharing a credential"""

    def __init__(self, client=None, lease_seconds: int = 30):
        self.client = client or get_sync_redis()
        self.lease_seconds = lease_seconds

    @contextmanager
    def hold(self, key: str, timeout: float = 30):
        lock = self.client.lock(
            RedisKeys.CREDENTIAL_REFRESH_LOCK.format(owner_ref=key),
            timeout=self.lease_seconds,
            blocking_timeout=timeout,
        )
        if not lock.acquire():
            raise ExternalSyncError("Timed out waiting for token refresh", code="refresh_lock_timeout")
        try:
            yield
        finally:
            lock.release()


_local_locks = LocalCredentialLocks()


def get_credential_locks(settings: Settings = None):
    settings = settings or get_settings()
    if settings.CALENDAR_LOCK_BACKEND == "redis":
        return RedisCredentialLocks(lease_seconds=settings.CALENDAR_LOCK_TIMEOUT_SECONDS)
    return _local_locks
