"""Shared fixtures for bearerkit tests."""

from datetime import UTC, datetime, timedelta

import pytest

from bearerkit.audit import MemoryAuditDriver
from bearerkit.config import BearerConfig
from bearerkit.manager import BearerManager
from bearerkit.store import InMemoryTokenStore


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 15, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeMonotonic:
    """Controllable monotonic seconds source for rate limiters."""

    def __init__(self):
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryTokenStore()


@pytest.fixture
def audit():
    return MemoryAuditDriver()


@pytest.fixture
def config():
    return BearerConfig()


@pytest.fixture
def manager(config, store, audit, clock):
    return BearerManager(config=config, store=store, audit_driver=audit, clock=clock)


@pytest.fixture
def monotonic():
    return FakeMonotonic()
