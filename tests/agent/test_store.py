"""Unit tests for LocalTokenStore.

No Docker required -- uses a temporary directory.
"""

from __future__ import annotations

import stat
from datetime import UTC, datetime

import pytest

from leavenow.agent.models.oauth2 import StoredToken
from leavenow.agent.store.base import TokenStore
from leavenow.agent.store.local import LocalTokenStore


@pytest.fixture
def token_store(tmp_path) -> LocalTokenStore:
    return LocalTokenStore(tmp_path)


def test_satisfies_protocol(token_store: LocalTokenStore) -> None:
    assert isinstance(token_store, TokenStore)


async def test_read_empty_slot(token_store: LocalTokenStore) -> None:
    assert await token_store.read() is None


async def test_write_and_read(token_store: LocalTokenStore) -> None:
    stored_at = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    await token_store.write(StoredToken(refresh_token="1//refresh", stored_at=stored_at))

    result = await token_store.read()
    assert result is not None
    assert result.refresh_token == "1//refresh"
    assert result.stored_at == stored_at


async def test_write_overwrites(token_store: LocalTokenStore) -> None:
    await token_store.write(StoredToken(refresh_token="first"))
    await token_store.write(StoredToken(refresh_token="second"))

    result = await token_store.read()
    assert result is not None
    assert result.refresh_token == "second"
    assert [p.name for p in token_store.path.parent.iterdir()] == ["token.json"]


async def test_token_file_is_private(token_store: LocalTokenStore) -> None:
    await token_store.write(StoredToken(refresh_token="1//refresh"))
    assert stat.S_IMODE(token_store.path.stat().st_mode) == 0o600


async def test_erase(token_store: LocalTokenStore) -> None:
    await token_store.write(StoredToken(refresh_token="1//refresh"))

    await token_store.erase()
    assert await token_store.read() is None
    assert not token_store.path.exists()

    # Erasing an empty slot is a no-op.
    await token_store.erase()


@pytest.mark.parametrize("content", ["", "   \n", "{not json", '{"refresh_token": ""}', '{"other": 1}'])
async def test_unusable_file_reads_as_empty(token_store: LocalTokenStore, content: str) -> None:
    token_store.path.parent.mkdir(parents=True)
    token_store.path.write_text(content, encoding="utf-8")

    assert await token_store.read() is None
