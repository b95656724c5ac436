import os
import tempfile

# Settings are read at import time, so point them at throwaway resources first.
_TEST_DIR = tempfile.mkdtemp(prefix="review-hub-tests-")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(_TEST_DIR, "test.db")
os.environ["CACHE_TYPE"] = "inmemory"
os.environ["CACHE_ENABLED"] = "true"
os.environ["LOG_DIR"] = os.path.join(_TEST_DIR, "logs")
os.environ.pop("AMQP_URL", None)

import pytest
from fastapi.testclient import TestClient

from app.core.dependencies import get_event_publisher
from app.utils.caching import cache
from main import app


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingPublisher:
    def __init__(self):
        self.events = []

    async def publish(self, event):
        self.events.append(event)

    async def close(self):
        return None


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(scope="module")
def client():
    """TestClient with the app lifespan (tables are created on startup)."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def publisher():
    recorder = RecordingPublisher()
    app.dependency_overrides[get_event_publisher] = lambda: recorder
    yield recorder
    app.dependency_overrides.pop(get_event_publisher, None)


@pytest.fixture
def create_product(client):
    def _create(name: str = "Widget", price: float = 9.99, description: str = "A widget"):
        response = client.post(
            "/api/v1/products",
            json={"name": name, "price": price, "description": description},
        )
        assert response.status_code == 201, response.text
        return response.json()["data"]["id"]

    return _create
