import logging

from .cache import Cache
from .cache_backends import InProcessCache, NoCache
from app.config import CACHE_BACKEND, CACHE_MAX_ENTRIES, CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)

def build_cache(backend: str | None = None) -> Cache:
    """
    Build a cache backend based on configuration:
      - "none"   -> no-op backend (always misses)
      - "memory" -> in-process TTL store (single instance, process-local)

    Called once by the application factory; the result is passed by reference
    into the response cache rather than kept as a module-level singleton.
    Unknown backends fall back to "memory".
    """
    backend = (backend or CACHE_BACKEND).lower()

    if backend == "none":
        return NoCache()
    if backend != "memory":
        logger.warning("Unknown CACHE_BACKEND %r; falling back to in-process memory cache", backend)

    return InProcessCache(max_entries=CACHE_MAX_ENTRIES, default_ttl_seconds=CACHE_TTL_SECONDS)
