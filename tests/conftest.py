# tests/conftest.py
import os
import pytest
from fastapi.testclient import TestClient

# In-memory SQLite shared through a StaticPool; the sweeper is driven directly by tests.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CACHE_CHECK_PERIOD_SECONDS", "0")

from app.main import create_app  # import after env is set
from app.database import Base, engine


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app():
    """A fresh application (and therefore a fresh, empty response cache) per test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    return create_app()


@pytest.fixture
def client(app):
    """A FastAPI TestClient for calling API endpoints."""
    with TestClient(app) as c:
        yield c
