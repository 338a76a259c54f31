from typing import Optional, Any, Dict, List
from .cache import Cache
from .ttl_store import TTLStore

class InProcessCache(Cache):
    """In-process TTL cache backend with a hard entry cap."""
    def __init__(self, max_entries: int, default_ttl_seconds: int, clock=None):
        kwargs = {"clock": clock} if clock is not None else {}
        self._store = TTLStore(max_entries=max_entries, default_ttl_seconds=default_ttl_seconds, **kwargs)

    def get(self, key: str) -> Optional[Any]:
        return self._store.get(key)

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        return self._store.set(key, value, ttl_seconds)

    def delete(self, key: str) -> bool:
        return self._store.delete(key)

    def keys(self) -> List[str]:
        return self._store.keys()

    def flush(self) -> int:
        return self._store.flush()

    def stats(self) -> Dict[str, int]:
        return self._store.stats()

    def sweep_expired(self) -> int:
        return self._store.sweep_expired()


class NoCache(Cache):
    """No-op cache used when caching is disabled: every lookup misses, nothing is stored."""
    def __init__(self):
        self._misses = 0

    def get(self, key: str):
        self._misses += 1
        return None
    def set(self, key: str, value: Any, ttl_seconds: int | None = None): return False
    def delete(self, key: str): return False
    def keys(self): return []
    def flush(self): return 0

    def stats(self) -> Dict[str, int]:
        return {"keys": 0, "hits": 0, "misses": self._misses, "ksize": 0, "vsize": 0}
