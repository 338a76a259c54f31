import copy
import json
import logging
import time
from dataclasses import dataclass
from threading import RLock
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    inserted_at: float
    ttl_seconds: int
    # approximate serialized size, computed once at insert time for stats
    size: int = 0

    def is_expired(self, now: float) -> bool:
        # ttl 0 = never expires
        return bool(self.ttl_seconds) and now - self.inserted_at > self.ttl_seconds


def _approximate_size(value: Any) -> int:
    try:
        return len(json.dumps(value, separators=(",", ":"), default=str))
    except (TypeError, ValueError):
        return 0


class TTLStore:
    """
    Thread-safe key/value store with per-entry TTL and a hard entry cap.
    Values are stored and returned as deep copies, so callers mutating a
    returned payload can never corrupt the cached state.

    Capacity policy is reject-on-full: once `max_entries` live keys exist,
    inserting a new key is a silent no-op (overwriting an existing key still works).
    """

    def __init__(
        self,
        max_entries: int = 1000,
        default_ttl_seconds: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max(1, max_entries)
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._data: Dict[str, CacheEntry] = {}
        self._lock = RLock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(now):
                # Expired: drop it and report a miss
                del self._data[key]
                self._misses += 1
                return None
            self._hits += 1
            return copy.deepcopy(entry.value)

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        now = self._clock()
        stored = copy.deepcopy(value)
        entry = CacheEntry(value=stored, inserted_at=now, ttl_seconds=ttl, size=_approximate_size(stored))
        with self._lock:
            if key not in self._data and len(self._data) >= self.max_entries:
                # Expired entries still occupy slots until swept; reclaim them before rejecting
                self._evict_expired_locked(now)
                if len(self._data) >= self.max_entries:
                    logger.debug("cache full (%d entries), not storing %s", self.max_entries, key)
                    return False
            self._data[key] = entry
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self) -> List[str]:
        now = self._clock()
        with self._lock:
            return [k for k, e in self._data.items() if not e.is_expired(now)]

    def flush(self) -> int:
        with self._lock:
            count = len(self._data)
            self._data.clear()
            return count

    def stats(self) -> Dict[str, int]:
        now = self._clock()
        with self._lock:
            live = [(k, e) for k, e in self._data.items() if not e.is_expired(now)]
            return {
                "keys": len(live),
                "hits": self._hits,
                "misses": self._misses,
                "ksize": sum(len(k) for k, _ in live),
                "vsize": sum(e.size for _, e in live),
            }

    def sweep_expired(self) -> int:
        """
        Remove every expired entry and return how many were dropped.
        The lock is taken per removal so a sweep never stalls request handlers.
        """
        now = self._clock()
        with self._lock:
            candidates = [k for k, e in self._data.items() if e.is_expired(now)]
        removed = 0
        for key in candidates:
            with self._lock:
                entry = self._data.get(key)
                # re-check: the key may have been overwritten since the snapshot
                if entry is not None and entry.is_expired(now):
                    del self._data[key]
                    removed += 1
        return removed

    def _evict_expired_locked(self, now: float) -> None:
        for key in [k for k, e in self._data.items() if e.is_expired(now)]:
            del self._data[key]
