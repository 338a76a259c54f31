# app/main.py

from contextlib import asynccontextmanager
import logging
from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from app.config import CACHE_CHECK_PERIOD_SECONDS, CACHE_TTL_SECONDS, DB_AUTO_CREATE
from app.database import Base, engine
from app.identity import CallerIdentityMiddleware
from app.routers import cache_admin, profiles
from app.services.cache import Cache
from app.services.cache_factory import build_cache
from app.services.response_cache import ResponseCache
from app.sweeper import CacheSweeper
from app.models import profile as _profile_model  # noqa: F401  (registers the table on Base.metadata)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(cache: Cache | None = None) -> FastAPI:
    """
    Composition root: the response cache is built exactly once here and handed
    to every router that reads from or invalidates it.
    """
    cache = cache if cache is not None else build_cache()
    response_cache = ResponseCache(cache, default_ttl_seconds=CACHE_TTL_SECONDS)
    sweeper = CacheSweeper(cache, CACHE_CHECK_PERIOD_SECONDS) if CACHE_CHECK_PERIOD_SECONDS > 0 else None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if DB_AUTO_CREATE:
            Base.metadata.create_all(bind=engine)
        # Startup: start expiry sweeper
        if sweeper is not None:
            await sweeper.start()
        try:
            yield
        finally:
            # Shutdown: stop expiry sweeper
            if sweeper is not None:
                await sweeper.stop()

    application = FastAPI(lifespan=lifespan)
    application.state.response_cache = response_cache
    application.state.cache_sweeper = sweeper
    application.add_middleware(CallerIdentityMiddleware)
    application.include_router(profiles.build_router(response_cache))
    application.include_router(cache_admin.build_router(response_cache))

    @application.get("/health")
    def health_check():
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return {"status": "ok", "db": "connected"}
        except SQLAlchemyError as e:
            return {"status": "error", "db": str(e)}

    return application


app = create_app()
