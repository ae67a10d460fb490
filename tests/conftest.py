"""Shared test fixtures: in-memory doubles and a Redis container.

Unit tests use the doubles from ``fakes`` and never touch the network.

Integration tests use a real Redis container managed by
testcontainers-python.  The container is session-scoped (started once per
test run).  Requires Docker; tests needing it are marked with
``@pytest.mark.integration``.
"""

from __future__ import annotations

import os
from collections.abc import AsyncIterator, Iterator
from datetime import UTC, datetime

import pytest
import redis.asyncio as aioredis
from fakes import FakeRelay, ManualClock, MemoryTokenStore
from testcontainers.redis import RedisContainer

from leavenow.agent.models.oauth2 import StoredToken
from leavenow.agent.settings import _get_settings_cached


def _set_env(key: str, value: str) -> None:
    """Set an env var and invalidate the settings cache."""
    os.environ[key] = value
    _get_settings_cached.cache_clear()


# ---------------------------------------------------------------------------
# Function-scoped fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def relay() -> FakeRelay:
    return FakeRelay()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store() -> MemoryTokenStore:
    return MemoryTokenStore()


@pytest.fixture
def authorized_store() -> MemoryTokenStore:
    """Store holding a refresh token from an earlier authorization."""
    return MemoryTokenStore(StoredToken(refresh_token="1//stored-refresh", stored_at=datetime(2024, 4, 1, tzinfo=UTC)))


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    _get_settings_cached.cache_clear()
    yield
    _get_settings_cached.cache_clear()


# ---------------------------------------------------------------------------
# Session-scoped: containers (started once, shared across all tests)
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def redis_container() -> Iterator[RedisContainer]:
    """Start a Redis 7 container for the test session."""
    with RedisContainer(image="redis:7") as r:
        yield r


@pytest.fixture(scope="session")
def redis_url(redis_container: RedisContainer) -> str:
    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    url = f"redis://{host}:{port}/0"
    _set_env("LEAVENOW_REDIS_URL", url)
    return url


@pytest.fixture
async def redis_client(redis_url: str) -> AsyncIterator[aioredis.Redis]:
    """Async Redis client, flushed after each test."""
    client = aioredis.from_url(redis_url, decode_responses=False)
    yield client
    await client.flushdb()
    await client.aclose()
