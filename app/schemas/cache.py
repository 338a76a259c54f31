# app/schemas/cache.py

from pydantic import BaseModel, Field


class CacheStats(BaseModel):
    """Read-only snapshot of the response cache for operational visibility."""
    keyCount: int = Field(..., description="Live (non-expired) entries currently stored.")
    hits: int = Field(..., description="Lookups answered from the cache since start or last restart.")
    misses: int = Field(..., description="Lookups that found no live entry.")
    approximateKeySize: int = Field(..., description="Sum of key lengths, in characters.")
    approximateValueSize: int = Field(..., description="Sum of serialized payload sizes, in characters.")


class InvalidateRequest(BaseModel):
    pattern: str = Field(..., min_length=1, description="Regular expression matched against cache keys.")
