from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from agent.core.memory import MemoryStore
from app.main import create_app


class FakeClock:
    """Clock that only moves when a test tells it to."""

    def __init__(self, start: datetime = datetime(2025, 9, 1, 9, 30, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1.0) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryStore(clock=clock)


@pytest.fixture
def app(store):
    return create_app(store)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
