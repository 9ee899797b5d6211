"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from fastapi.testclient import TestClient

from searcher.app import create_app
from searcher.backends.memory import MemoryBackend
from searcher.config import Settings
from searcher.events import EventBus, MutationDispatcher
from searcher.retry import RetryPolicy
from searcher.service import Searcher
from searcher.store import MemoryRecordStore


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(
        host="127.0.0.1",
        port=8000,
        debug=True,
        backend="memory",
        items_per_page=2,
    )


@pytest.fixture
def sleeper() -> SleepRecorder:
    """Record sleeps instead of waiting."""
    return SleepRecorder()


@pytest.fixture
def bus() -> EventBus:
    """Create an unbounded event bus."""
    return EventBus()


@pytest.fixture
def store(bus: EventBus) -> MemoryRecordStore:
    """Create a record store with two test models."""
    store = MemoryRecordStore(bus)
    store.define("user", {"id": {"type": "string"}, "name": {"type": "string"}})
    store.define("test-model", {"id": {"type": "string"}, "name": {"type": "string"}})
    return store


@pytest.fixture
def backend() -> MemoryBackend:
    """Create an empty in-memory search backend."""
    return MemoryBackend()


@pytest.fixture
def searcher(
    store: MemoryRecordStore,
    backend: MemoryBackend,
    bus: EventBus,
    sleeper: SleepRecorder,
) -> Searcher:
    """Create a searcher over the memory store and backend without real sleeps."""
    return Searcher(
        store=store,
        backend=backend,
        dispatcher=MutationDispatcher(bus),
        retry_policy=RetryPolicy(delay_ms=200, factor=4, max_attempts=4),
        sleep=sleeper,
    )


@pytest.fixture
def client(settings: Settings, searcher: Searcher) -> TestClient:
    """Create test client with configured app."""
    app = create_app(settings, searcher=searcher)
    return TestClient(app)
