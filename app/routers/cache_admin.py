# app/routers/cache_admin.py

from fastapi import APIRouter, HTTPException

from app.schemas.cache import CacheStats, InvalidateRequest
from app.services.response_cache import InvalidPatternError, ResponseCache


def build_router(response_cache: ResponseCache) -> APIRouter:
    router = APIRouter(prefix="/cache", tags=["cache"])

    @router.get("/stats", response_model=CacheStats)
    def cache_stats():
        return response_cache.get_stats()

    @router.delete("")
    def clear_cache():
        return {"cleared": response_cache.clear()}

    @router.post("/invalidate")
    def invalidate_cache(body: InvalidateRequest):
        """Drop every entry whose key matches `pattern` (regular expression)."""
        try:
            removed = response_cache.invalidate(body.pattern)
        except InvalidPatternError as ex:
            raise HTTPException(status_code=400, detail=str(ex))
        return {"invalidated": removed}

    return router
