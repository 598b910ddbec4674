"""
Shared fixtures for chat store tests.

Provides a controllable clock and a store with a few registered users.
"""

import pytest

from app.config import Settings
from app.core.chat_store import ChatStore

# 01:00 UTC on a day boundary-aligned date, so day buckets are predictable
DAY_START = 1_700_006_400.0
START_TIME = DAY_START + 3600


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def store(settings, clock):
    """Create fresh ChatStore for each test."""
    return ChatStore(settings=settings, clock=clock)


@pytest.fixture
def post(store, clock):
    """Send a message far enough after the previous one to pass the rate limiter."""
    def _post(caller, content="hello", **kwargs):
        clock.advance(2.0)
        result = store.send_message(caller, content, **kwargs)
        assert result.ok, result.message
        return result.value
    return _post


@pytest.fixture
def owner(store):
    """First registered user (becomes owner)."""
    store.register_user("alice", "Alice", username="alice")
    return "alice"


@pytest.fixture
def member(store, owner):
    store.register_user("bob", "Bob", username="bob")
    return "bob"


@pytest.fixture
def moderator(store, owner):
    store.register_user("carol", "Carol", username="carol")
    store.add_moderator(owner, "carol")
    return "carol"
