"""
Time-to-live response cache with single-flight recomputation.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Entry:
    value: Any
    expires_at: float


class TTLCache:
    """Thread-safe TTL cache.

    When an entry is missing or expired, exactly one caller recomputes it;
    concurrent callers for the same key block on a per-key lock and then
    reuse the fresh value instead of computing their own.
    """

    def __init__(self, ttl_seconds: float = 3600.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[Hashable, _Entry] = {}
        self._lock = threading.Lock()
        self._key_locks: Dict[Hashable, threading.Lock] = {}

    def _fresh(self, key: Hashable) -> Optional[_Entry]:
        entry = self._entries.get(key)
        if entry is not None and entry.expires_at > self.clock():
            return entry
        return None

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._fresh(key)
        return entry.value if entry else default

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        with self._lock:
            entry = self._fresh(key)
            if entry is not None:
                return entry.value
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            # Another caller may have filled the entry while we waited
            with self._lock:
                entry = self._fresh(key)
            if entry is not None:
                return entry.value

            logger.debug(f"Recomputing cached value for {key!r}")
            try:
                value = compute()
                with self._lock:
                    now = self.clock()
                    self._prune(now)
                    self._entries[key] = _Entry(value, now + self.ttl_seconds)
                return value
            finally:
                # Waiters already hold a reference; later callers start from a fresh lock
                with self._lock:
                    if self._key_locks.get(key) is key_lock:
                        del self._key_locks[key]

    def _prune(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Drop one key, or every entry when *key* is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return sum(1 for key in self._entries if self._fresh(key) is not None)
